"""Syncs invoices between Grist documents through the Grist REST API."""

__version__ = "0.1.0"
