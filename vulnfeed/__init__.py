"""Vulnerability feed updaters, dpkg and rpm version formats, NVD metadata and webhook notifications."""

__version__ = "0.1.0"