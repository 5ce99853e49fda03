"""One-time migration of an OpenCart MySQL store into MongoDB."""

__version__ = "1.0.0"
