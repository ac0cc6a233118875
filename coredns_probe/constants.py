# coredns_probe/constants.py
# Version: 1.0.0
# Probe constants - all default values in one place for easy configuration

"""
CoreDNS Probe Constants

All defaults are defined here at the top of the module so the
configuration layer, the CLI and the tests agree on them.
"""

# =============================================================================
# DNS PROTOCOL CONSTANTS
# =============================================================================
DNS_DEFAULT_PORT = 53

# =============================================================================
# PROBE SETTINGS
# =============================================================================
PROBE_QUERY_DOMAIN = "bing.com"  # Name resolved through every endpoint
PROBE_QUERY_TIMEOUT = 0.1  # Seconds before a probe counts as a timeout
PROBE_LOOP_INTERVAL = 0.1  # Seconds between probe ticks
SUMMARY_INTERVAL = 10.0  # Seconds between console summaries

# =============================================================================
# DISCOVERY SETTINGS
# =============================================================================
DISCOVERY_NAMESPACE = "kube-system"
DISCOVERY_SERVICE_NAME = "kube-dns"  # most clusters still call the CoreDNS service kube-dns
DISCOVERY_REFRESH_INTERVAL = 0.0  # 0 disables periodic re-discovery
ENDPOINT_SLICE_SERVICE_LABEL = "kubernetes.io/service-name"
KUBECONFIG_ENV = "KUBECONFIG"
KUBECONFIG_DEFAULT_PATH = "~/.kube/config"

# =============================================================================
# METRICS SETTINGS
# =============================================================================
METRICS_LISTEN_ADDRESS = "0.0.0.0"
METRICS_LISTEN_PORT = 9091
METRICS_PATH = b"metrics"
RTT_METRIC_NAME = "coredns_probe_rtt_milliseconds"
RTT_BUCKETS_MS = (0.5, 1, 1.5, 2, 2.5, 3, 3.5, 4, 4.5, 5, 10, 20, 50, 100, 200, 500, 1000)

# =============================================================================
# CONFIGURATION
# =============================================================================
DEFAULT_CONFIG_PATH = "/etc/coredns-probe/coredns-probe.cfg"
ENV_PREFIX = "COREDNS_PROBE"

# Port range validation
MIN_PORT_NUMBER = 1
MAX_PORT_NUMBER = 65535

# =============================================================================
# LOGGING
# =============================================================================
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5
