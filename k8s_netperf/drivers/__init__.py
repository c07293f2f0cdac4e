"""Benchmark tool drivers."""

from k8s_netperf.drivers.base import Driver
from k8s_netperf.drivers.registry import new_driver

__all__ = ["Driver", "new_driver"]
