"""GeoView layer configuration resolver."""

__version__ = "0.1.0"
