"""Vault HTTP API client and unseal reconciliation."""
