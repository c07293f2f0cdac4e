"""Endpoint resolution and the sample execution loop."""
