"""Host-and-phones social deduction party game server."""

__version__ = "0.1.0"
