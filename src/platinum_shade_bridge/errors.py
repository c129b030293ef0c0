"""Exceptions raised by the shade bridge."""


class ShadeBridgeError(Exception):
    """Base exception for the shade bridge."""


class ConnectivityError(ShadeBridgeError):
    """Raised when the shade controller cannot be reached."""


class ProtocolError(ShadeBridgeError):
    """Raised when the shade controller returns a malformed or unexpected response."""


class ValidationError(ShadeBridgeError, ValueError):
    """Raised when a requested shade position is out of range."""


class UnknownShadeError(ShadeBridgeError, KeyError):
    """Raised when a command targets a shade that is not tracked."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep messages readable in logs.
        return str(self.args[0]) if self.args else "Unknown shade"
