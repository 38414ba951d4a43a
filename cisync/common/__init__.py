"""Shared helpers used across the sync packages."""
