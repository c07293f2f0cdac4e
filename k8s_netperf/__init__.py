"""k8s-netperf: network benchmark execution and results engine for Kubernetes."""

__version__ = "0.4.0"
