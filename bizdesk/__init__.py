"""Data-access and synchronization layer for the bizdesk CRM."""

__version__ = "0.1.0"
