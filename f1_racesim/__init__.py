"""Time-discrete motor race simulator."""

__version__ = "0.1.0"
