"""ffrenc - batch re-encoder with a live aggregate progress view."""

__version__ = "0.1.0"
