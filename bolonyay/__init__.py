"""Voice-driven legal case filing core."""

__version__ = "0.1.0"
