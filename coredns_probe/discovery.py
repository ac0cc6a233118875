# coredns_probe/discovery.py
"""Discovery of DNS endpoint addresses from Kubernetes EndpointSlices"""

import ipaddress
import logging
import os
from typing import List

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .constants import (
    DISCOVERY_NAMESPACE,
    DISCOVERY_SERVICE_NAME,
    ENDPOINT_SLICE_SERVICE_LABEL,
    KUBECONFIG_DEFAULT_PATH,
    KUBECONFIG_ENV,
)

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    """Endpoint discovery failed or found nothing to probe"""


def load_kubernetes_config():
    """Load in-cluster credentials first, else fall back to KUBECONFIG"""
    try:
        config.load_incluster_config()
        logger.info("Using in-cluster Kubernetes configuration")
        return
    except config.ConfigException:
        pass

    kube_config = os.environ.get(KUBECONFIG_ENV) or os.path.expanduser(KUBECONFIG_DEFAULT_PATH)
    try:
        config.load_kube_config(config_file=kube_config)
    except (config.ConfigException, OSError) as e:
        raise DiscoveryError(f"loading kubeconfig {kube_config}: {e}") from e
    logger.info(f"Using Kubernetes configuration from {kube_config}")


def discover_targets(
    namespace: str = DISCOVERY_NAMESPACE,
    service_name: str = DISCOVERY_SERVICE_NAME,
    api=None,
) -> List[str]:
    """
    List the endpoint IPs of a service from its EndpointSlices.

    Args:
        namespace: Namespace of the service
        service_name: Service whose slices are listed
        api: DiscoveryV1Api instance; built from the loaded config if omitted

    Returns:
        Endpoint addresses in slice order, without duplicates

    Raises:
        DiscoveryError: The API call failed or no address was found
    """
    if api is None:
        api = client.DiscoveryV1Api()

    selector = f"{ENDPOINT_SLICE_SERVICE_LABEL}={service_name}"
    try:
        slices = api.list_namespaced_endpoint_slice(namespace, label_selector=selector)
    except ApiException as e:
        raise DiscoveryError(
            f"listing EndpointSlices for {namespace}/{service_name} failed: "
            f"{e.status} {e.reason}"
        ) from e
    except Exception as e:
        raise DiscoveryError(
            f"listing EndpointSlices for {namespace}/{service_name} failed: {e}"
        ) from e

    targets = []
    for endpoint_slice in slices.items or []:
        for endpoint in endpoint_slice.endpoints or []:
            for address in endpoint.addresses or []:
                # Port is fixed to 53 by the transport
                if address not in targets:
                    targets.append(address)

    if not targets:
        raise DiscoveryError(
            f"no DNS endpoint IPs found in EndpointSlices for {namespace}/{service_name}"
        )

    logger.info(f"Found {len(targets)} DNS endpoints: {', '.join(targets)}")
    return targets


def parse_static_targets(value: str) -> List[str]:
    """Split a comma-separated address list, e.g. "10.0.0.10, 10.0.0.11" """
    targets = []
    for item in (value or "").split(","):
        item = item.strip()
        if item.startswith("[") and item.endswith("]"):
            item = item[1:-1]
        if not item:
            continue
        try:
            ipaddress.ip_address(item)
        except ValueError:
            raise DiscoveryError(f"'{item}' is not a valid IP address")
        if item not in targets:
            targets.append(item)
    return targets
