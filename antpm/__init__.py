"""ANT protocol identifiers, logging and shared helpers."""

__version__ = "0.1.0"