"""Service layer for a parkour association web API: accounting, HTML sanitising,
Markdown descriptions, users and comments, clubs and membership requests."""

__version__ = "0.1.0"