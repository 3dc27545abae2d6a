"""Core services: database, token signing and validation, lookup, reconciliation.

Import from the subpackages directly; the storage layer depends on
``services.database`` and eager re-exports here would make that circular.
"""
