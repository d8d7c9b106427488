"""Canonical streaming bridge over AI coding-assistant CLIs."""

__version__ = "0.1.0"
