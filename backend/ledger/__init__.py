"""
Double-entry ledger for the housing backend.

Public operations are re-exported from ledger.api.
"""
