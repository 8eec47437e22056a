"""Utilities: file discovery and git access."""
