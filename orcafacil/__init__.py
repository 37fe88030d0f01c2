"""Order-text interpretation and catalog matching for electrical-supply quotes."""

__version__ = "0.3.0"
