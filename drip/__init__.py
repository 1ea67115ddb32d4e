"""drip: paced streaming client for the edge assistant backend."""

__version__ = "0.1.0"
