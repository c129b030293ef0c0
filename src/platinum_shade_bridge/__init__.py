"""Status polling and command bridge for Hunter Douglas Platinum shades."""

__all__ = ["__version__"]

__version__ = "0.1.0"
