"""
Command-line interface for MDB_ADMIN.

Entry point: ``mdb-admin`` (see main.cli).
"""

from .main import cli

__all__ = ["cli"]
