"""kvstore: a cache-backed key-value note store."""

__version__ = "0.1.0"
