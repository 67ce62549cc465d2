"""Trial Navigator: match patient profiles against clinical trials."""

__version__ = "0.1.0"
