"""Chained deployments over the appliance XML management interface."""

__version__ = "0.3.0"
