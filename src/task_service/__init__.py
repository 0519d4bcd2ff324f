"""CRUD HTTP service for task records."""

__version__ = "0.1.0"
