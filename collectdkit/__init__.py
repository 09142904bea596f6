"""Metric types, formats, configuration and helpers for collectd."""

__version__ = "0.1.0"