# coredns_probe/version.py
__version__ = "1.0.0"
__author__ = "CoreDNS Probe Team"
