"""
CoreDNS Probe
Continuously probes cluster DNS endpoints and reports per-endpoint latency
"""

from .version import __author__, __version__

__all__ = ["__author__", "__version__"]
