"""Admin console backend for the tournament platform wallet ledger."""

__version__ = "0.1.0"
