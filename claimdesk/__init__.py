"""Claims review assistant with human-confirmed tool calls."""

__version__ = "0.1.0"
