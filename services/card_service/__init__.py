"""Movie card and cover slide renderer."""

__version__ = "1.0.0"
