"""Domain model, permission model and data-plane configuration exporters for a BFE control plane."""

__version__ = "0.1.0"