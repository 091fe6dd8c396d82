"""Shared utilities: structured logging, ULIDs, health helpers."""
