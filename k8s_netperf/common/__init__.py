"""Shared models, errors and settings."""
