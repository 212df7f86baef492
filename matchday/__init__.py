"""Client-side synchronization and cache-coherency engine for the matchday app."""

__version__ = "0.1.0"
