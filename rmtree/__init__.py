"""Remove a package together with the dependencies nothing else needs."""

__version__ = "0.1.0"
