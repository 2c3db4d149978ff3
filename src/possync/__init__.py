"""possync - Offline-first cloud synchronization for the point-of-sale database."""

__version__ = "0.1.0"
