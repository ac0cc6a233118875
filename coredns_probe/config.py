import configparser
import logging
import os
import sys
from typing import Any, Dict, Optional

from .constants import (
    DEFAULT_CONFIG_PATH,
    DISCOVERY_NAMESPACE,
    DISCOVERY_REFRESH_INTERVAL,
    DISCOVERY_SERVICE_NAME,
    ENV_PREFIX,
    MAX_PORT_NUMBER,
    METRICS_LISTEN_ADDRESS,
    METRICS_LISTEN_PORT,
    MIN_PORT_NUMBER,
    PROBE_LOOP_INTERVAL,
    PROBE_QUERY_DOMAIN,
    PROBE_QUERY_TIMEOUT,
    SUMMARY_INTERVAL,
)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration value that the probe cannot run with"""


class ProbeConfig:
    """Configuration manager for CoreDNS Probe"""

    DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_PATH
    DEFAULT_CONFIG = {
        'probe': {
            'query-domain': PROBE_QUERY_DOMAIN,
            'query-timeout': str(PROBE_QUERY_TIMEOUT),
            'loop-interval': str(PROBE_LOOP_INTERVAL),
            'summary-interval': str(SUMMARY_INTERVAL),
        },
        'discovery': {
            'namespace': DISCOVERY_NAMESPACE,
            'service-name': DISCOVERY_SERVICE_NAME,
            'refresh-interval': str(DISCOVERY_REFRESH_INTERVAL),
            'targets': '',
        },
        'metrics': {
            'enabled': 'true',
            'listen-address': METRICS_LISTEN_ADDRESS,
            'listen-port': str(METRICS_LISTEN_PORT),
        },
        'log-file': {
            'log-file': 'none',
            'debug-level': 'INFO',
            'syslog': 'false',
        }
    }

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self.config = configparser.ConfigParser()
        self._load_defaults()
        self._load_config()
        self._load_environment(os.environ if environ is None else environ)

    def _load_defaults(self):
        """Load default configuration"""
        for section, options in self.DEFAULT_CONFIG.items():
            self.config.add_section(section)
            for key, value in options.items():
                self.config.set(section, key, value)

    def _load_config(self):
        """Load configuration from file"""
        if os.path.exists(self.config_path):
            try:
                self.config.read(self.config_path)
            except configparser.Error as e:
                print(f"Error reading config file {self.config_path}: {e}", file=sys.stderr)
                sys.exit(1)
        else:
            print(f"Warning: Config file {self.config_path} not found, using defaults")

    def _load_environment(self, environ):
        """Apply COREDNS_PROBE_<SECTION>_<OPTION> overrides, e.g. COREDNS_PROBE_PROBE_QUERY_TIMEOUT"""
        for section in self.config.sections():
            for option in self.config.options(section):
                name = f"{ENV_PREFIX}_{section}_{option}".upper().replace('-', '_')
                if name in environ:
                    self.config.set(section, option, environ[name])

    def get(self, section: str, option: str, fallback: Any = None) -> str:
        """Get configuration value"""
        try:
            return self.config.get(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return fallback

    def getint(self, section: str, option: str, fallback: int = 0) -> int:
        """Get integer configuration value"""
        try:
            return self.config.getint(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getfloat(self, section: str, option: str, fallback: float = 0.0) -> float:
        """Get float configuration value"""
        try:
            return self.config.getfloat(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getboolean(self, section: str, option: str, fallback: bool = False) -> bool:
        """Get boolean configuration value"""
        try:
            return self.config.getboolean(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback


def validate_settings(settings: Dict[str, Any]):
    """Reject values the probe loop cannot run with, warn about odd combinations"""
    # Numeric getters return None for values that do not parse
    for key in ('query_timeout', 'loop_interval', 'summary_interval', 'refresh_interval', 'metrics_port'):
        if settings[key] is None:
            raise ConfigError(f"{key.replace('_', '-')} is not a valid number")

    for key in ('query_timeout', 'loop_interval', 'summary_interval'):
        if settings[key] <= 0:
            raise ConfigError(f"{key.replace('_', '-')} must be positive, got {settings[key]}")

    if settings['refresh_interval'] < 0:
        raise ConfigError(f"refresh-interval must be 0 or positive, got {settings['refresh_interval']}")

    port = settings['metrics_port']
    if not MIN_PORT_NUMBER <= port <= MAX_PORT_NUMBER:
        raise ConfigError(f"Metrics port must be between {MIN_PORT_NUMBER} and {MAX_PORT_NUMBER}")

    if not settings['query_domain']:
        raise ConfigError("query-domain must not be empty")

    if settings['query_timeout'] > settings['loop_interval']:
        logger.warning(
            f"Query timeout {settings['query_timeout']}s exceeds loop interval "
            f"{settings['loop_interval']}s; ticks will run back to back"
        )
    if settings['summary_interval'] <= settings['loop_interval']:
        logger.warning("Summary interval is not longer than the loop interval")
