"""Filesystem task relay between independently hosted repositories."""

__version__ = "0.1.0"
