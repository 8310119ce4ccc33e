"""wakegate: wake sleeping hosts on access."""

__version__ = "0.1.0"
