"""Multi-tenant directory website generator."""

__version__ = "0.4.0"
