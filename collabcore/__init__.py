"""
collabcore — Collaborative-edit concurrency and audit-reconstruction core.

Detects concurrent modification of a document through versioned
compare-and-swap writes, resolves conflicts with one of three explicit
whole-document strategies, and reconstructs editing sessions from the
append-only audit log.
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "documents", "cli"]
