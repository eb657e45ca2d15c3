"""Shared utilities: error hierarchy, structured logging, retry policy."""
