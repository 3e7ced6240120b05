"""
AuditLiner - audit log to SQLite importer.
"""

__version__ = "0.1.0"
