"""Raspberry Pi SD card cloner."""

from .__version__ import __version__

__all__ = ["__version__"]
