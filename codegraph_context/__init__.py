"""Graph intelligence and token-budgeted retrieval over extracted code units."""

__version__ = "0.3.0"
