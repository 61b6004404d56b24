"""StrongBox: encrypted-at-rest file storage with hardened credentials."""

__version__ = "0.1.0"
