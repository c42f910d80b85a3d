"""Orb conversation core: state machine and reply interpretation."""

__version__ = "0.1.0"
