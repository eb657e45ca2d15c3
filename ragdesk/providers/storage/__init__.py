"""Relational persistence adapters (aiosqlite)."""
