"""Livestatus daemon core: filters, logging, pid files, cluster nodes and command line."""

__version__ = "2.3.0"