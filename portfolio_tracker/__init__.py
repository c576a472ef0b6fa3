"""Multi-asset portfolio valuation with live price resolution and bounded history."""

__version__ = "0.1.0"
