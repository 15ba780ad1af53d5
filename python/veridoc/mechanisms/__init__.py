"""Ledger-specific settlement mechanisms."""
