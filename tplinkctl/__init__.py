"""Discover and control TP-Link smart plugs and bulbs over the local network."""

__version__ = "0.1.0"
