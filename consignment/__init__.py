"""Inventory and transaction schema for a consigned book marketplace."""

__version__ = "1.0.0"
