"""solarmap: rooftop solar potential from Solar API data layers."""

__version__ = "0.1.0"
