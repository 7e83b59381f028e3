"""Simulated MDB cashless payment reader with an uplink command console."""

__version__ = "0.1.0"