"""Parley: anonymous two-way Telegram relay between users and a staff group."""

__version__ = "0.1.0"
