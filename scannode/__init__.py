"""Scan node building blocks: configuration, bot I/O, bot containers and release manifests."""

__version__ = "0.1.0"