"""Kaleido multiviewer controller: command queue and reply engine for the Kaleido telnet protocol."""

__version__ = "0.4.0"
