"""Relay broker topics into a chat room."""

__version__ = "0.1.0"
