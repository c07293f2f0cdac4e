"""Prometheus metrics attached to benchmark results."""
