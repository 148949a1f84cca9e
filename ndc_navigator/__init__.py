"""Drug identity resolution and NDC package optimization."""

__version__ = "0.1.0"
