"""Journey sync: versioned journey editing and idempotent publishing to a
remote workflow platform."""

__version__ = "0.1.0"
