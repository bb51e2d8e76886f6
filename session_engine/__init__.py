"""Session pool allocation and pricing resolution service."""

__version__ = "1.0.0"
