"""Inbox conversion into tracked issues and the local issue cache."""
