"""Terminal YouTube browser with OAuth device sign-in."""

__version__ = "0.3.0"

__all__ = ["__version__"]
