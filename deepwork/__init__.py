"""Focus-session insight generation and caching."""

__version__ = "0.1.0"
