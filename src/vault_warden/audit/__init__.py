"""Audit log following, parsing and classification."""
