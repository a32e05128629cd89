"""Append-only audit ledger, session workflows, and crash recovery."""
