# coredns_probe/transport.py
"""Single bounded DNS lookup through one specific resolver endpoint"""

import logging

from twisted.internet import defer
from twisted.internet import error as internet_error
from twisted.internet.abstract import isIPv6Address
from twisted.names import client, dns, error

from .constants import DNS_DEFAULT_PORT, PROBE_QUERY_DOMAIN, PROBE_QUERY_TIMEOUT
from .stats import ProbeOutcome, ProbeResult

logger = logging.getLogger(__name__)


class ConnectedDNSDatagramProtocol(dns.DNSDatagramProtocol):
    """
    DNS over a connected UDP socket.

    Only a connected socket is told about ICMP port unreachable, which is
    how a host without a DNS listener answers. Pending queries then fail
    with ``ConnectionRefusedError`` instead of waiting for their timeout.
    """

    def __init__(self, reactor=None):
        super().__init__(self, reactor=reactor)

    def connectionRefused(self):
        pending, self.liveMessages = self.liveMessages, {}
        for d, cancel_call in pending.values():
            cancel_call.cancel()
            d.errback(internet_error.ConnectionRefusedError())

    def messageReceived(self, message, protocol, address=None):
        # Answers to queries that already timed out
        logger.debug(f"Ignoring unexpected DNS message {message.id} from {address}")


class ConnectedResolver(client.Resolver):
    """``client.Resolver`` sending each UDP query from its own connected socket"""

    def _query(self, address, *args):
        interface = "::" if isIPv6Address(address[0]) else ""
        protocol = ConnectedDNSDatagramProtocol(reactor=self._reactor)
        port = self._reactor.listenUDP(0, protocol, interface=interface)
        try:
            port.connect(*address)
        except Exception:
            port.stopListening()
            raise

        d = protocol.query(address, *args)

        def query_done(result):
            port.stopListening()
            return result

        d.addBoth(query_done)
        return d


def _default_resolver_factory(address, port, timeout, reactor):
    """Resolver that only ever talks to ``address:port``, never the system resolvers"""
    return ConnectedResolver(servers=[(address, port)], timeout=(timeout,), reactor=reactor)


def classify_failure(reason) -> ProbeOutcome:
    """Map a lookup failure to TIMEOUT or ERROR"""
    # DNSQueryTimeoutError is a defer.TimeoutError subclass
    if reason.check(defer.TimeoutError, error.DNSQueryTimeoutError):
        return ProbeOutcome.TIMEOUT
    return ProbeOutcome.ERROR


class ResolverTransport:
    """
    Issues one A lookup for a fixed domain against a given endpoint.

    Every call builds a resolver pinned to the target, sends exactly one
    query (the resolver timeout tuple has a single element, so there are no
    retransmissions) and enforces the deadline on the caller side with
    ``Deferred.addTimeout``. The returned Deferred always fires with a
    ``ProbeResult``; lookup failures are reported as outcomes, not errbacks.
    """

    def __init__(
        self,
        query_domain: str = PROBE_QUERY_DOMAIN,
        query_timeout: float = PROBE_QUERY_TIMEOUT,
        port: int = DNS_DEFAULT_PORT,
        clock=None,
        resolver_factory=None,
    ):
        if clock is None:
            from twisted.internet import reactor as clock
        self.query_domain = query_domain
        self.query_timeout = query_timeout
        self.port = port
        self.clock = clock
        self.resolver_factory = resolver_factory or _default_resolver_factory

    def probe(self, target: str) -> defer.Deferred:
        """Resolve the configured domain through ``target`` and time it"""
        start = self.clock.seconds()

        d = defer.maybeDeferred(self._lookup, target)
        d.addTimeout(self.query_timeout, self.clock)

        def on_answer(_answer):
            # Answer records are irrelevant; completion and latency are what we measure
            return ProbeResult(target, ProbeOutcome.SUCCESS, self.clock.seconds() - start)

        def on_failure(reason):
            outcome = classify_failure(reason)
            logger.debug(f"Probe via {target} failed: {outcome.value} ({reason.getErrorMessage()})")
            return ProbeResult(target, outcome, self.clock.seconds() - start)

        d.addCallbacks(on_answer, on_failure)
        return d

    def _lookup(self, target):
        resolver = self.resolver_factory(target, self.port, self.query_timeout, self.clock)
        return resolver.lookupAddress(self.query_domain, timeout=(self.query_timeout,))
