"""
CLI commands for metabin.

Provides the command-line interface for binning alignment tables and
computing LCAs of id lists.
"""

__all__ = ["binning", "lca", "main"]
