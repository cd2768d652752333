"""Shared utilities: logging setup and content hashing."""
