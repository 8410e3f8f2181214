"""HollyAid wellness booking backend."""

__version__ = "0.1.0"
