"""Kubernetes access: remote execution, discovery and network annotations."""
