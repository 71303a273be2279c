"""Network interface counters and link state using psutil."""

import ipaddress
import logging
import socket
import time
from threading import Event, Thread
from typing import Any, Callable, Optional

import psutil

from netmeter.errors import InterfaceAccessError, NoActiveInterface
from netmeter.models import InterfaceSample, PathStatus

logger = logging.getLogger(__name__)


# Loopback, tunnel, bridge and other virtual interfaces
EXCLUDE_PREFIXES = (
    'lo',
    'utun', 'tun', 'tap', 'wg', 'tailscale', 'zt', 'ppp', 'ipsec',
    'awdl', 'llw', 'p2p',
    'bridge', 'br-', 'docker', 'virbr', 'veth', 'vmnet', 'vboxnet',
    'anpi', 'gif', 'stf',
)

DESCRIPTIONS = {
    'en0': 'Wi-Fi',
    'en1': 'Ethernet',
    'en2': 'Ethernet 2',
    'en3': 'Ethernet 3',
    'en4': 'Thunderbolt Ethernet',
    'en5': 'USB Ethernet',
    'lo0': 'Loopback',
    'lo': 'Loopback',
}

PREFIX_DESCRIPTIONS = (
    ('wl', 'Wi-Fi'),
    ('ww', 'Cellular'),
    ('eth', 'Ethernet'),
    ('en', 'Ethernet'),
    ('utun', 'VPN Tunnel'),
    ('tun', 'VPN Tunnel'),
    ('wg', 'VPN Tunnel'),
    ('tailscale', 'VPN Tunnel'),
    ('awdl', 'Apple Wireless Direct Link'),
    ('bridge', 'Bridge Interface'),
    ('br-', 'Bridge Interface'),
    ('docker', 'Bridge Interface'),
    ('virbr', 'Bridge Interface'),
)


def is_candidate(name: str) -> bool:
    """Check whether an interface may be picked as primary."""
    return not any(name.startswith(p) for p in EXCLUDE_PREFIXES)


def _pick_address(addrs: list) -> Optional[str]:
    """Prefer IPv4, fall back to a routable IPv6 address."""
    ipv6 = None
    for addr in addrs:
        if addr.family == socket.AF_INET:
            return addr.address
        if addr.family == socket.AF_INET6 and ipv6 is None:
            address = addr.address.split('%')[0]
            try:
                if not ipaddress.IPv6Address(address).is_link_local:
                    ipv6 = address
            except ValueError:
                continue
    return ipv6


class InterfaceReader:
    """Reads per-interface byte counters and picks the primary interface."""

    def __init__(
        self,
        cache_ttl: float = 5.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._descriptions: dict[str, str] = {}
        self._cached: Optional[InterfaceSample] = None
        self._cache_time: float = 0.0
        self._last_primary_name: Optional[str] = None
        self._last_count: Optional[int] = None

    def _read_counters(self) -> dict:
        try:
            return psutil.net_io_counters(pernic=True)
        except (OSError, psutil.Error) as e:
            logger.error(f"Failed to read interface counters: {e}")
            raise InterfaceAccessError(f"Failed to read interface counters: {e}") from e

    def list_interfaces(self) -> list[InterfaceSample]:
        """Enumerate all interfaces with their counters.

        Returns:
            List of InterfaceSample objects

        Raises:
            InterfaceAccessError: the interface table cannot be read
        """
        counters = self._read_counters()
        try:
            addrs = psutil.net_if_addrs()
            stats = psutil.net_if_stats()
        except (OSError, psutil.Error) as e:
            logger.error(f"Failed to get network interfaces: {e}")
            raise InterfaceAccessError(f"Failed to get network interfaces: {e}") from e

        interfaces = []
        for name, nic in counters.items():
            ip = _pick_address(addrs.get(name, []))
            nic_stats = stats.get(name)
            is_up = bool(nic_stats and nic_stats.isup)
            interfaces.append(InterfaceSample(
                name=name,
                input_bytes=nic.bytes_recv,
                output_bytes=nic.bytes_sent,
                ip_address=ip,
                is_up=is_up,
                is_active=is_up and ip is not None,
                description=self.describe_interface(name),
            ))

        if self._last_count != len(interfaces):
            logger.debug(f"Found {len(interfaces)} network interfaces")
            self._last_count = len(interfaces)

        return interfaces

    def primary_interface(self) -> InterfaceSample:
        """Return the busiest active physical interface.

        The selection is cached for cache_ttl seconds; counters are
        always read fresh.

        Raises:
            InterfaceAccessError: the interface table cannot be read
            NoActiveInterface: no physical interface is up with an address
        """
        if self._cached is not None and self._clock() - self._cache_time < self.cache_ttl:
            nic = self._read_counters().get(self._cached.name)
            if nic is not None:
                return self._cached.model_copy(update={
                    'input_bytes': nic.bytes_recv,
                    'output_bytes': nic.bytes_sent,
                })
            self.clear_cache()

        candidates = [
            i for i in self.list_interfaces()
            if is_candidate(i.name) and i.is_active
        ]
        if not candidates:
            logger.warning("No active network interfaces found")
            raise NoActiveInterface()

        selected = max(candidates, key=lambda i: i.total_bytes)
        self._cached = selected
        self._cache_time = self._clock()

        if self._last_primary_name != selected.name:
            logger.info(f"Selected primary interface: {selected.name} ({selected.description})")
            self._last_primary_name = selected.name

        return selected

    def describe_interface(self, name: str) -> str:
        """Human readable label for an interface name."""
        cached = self._descriptions.get(name)
        if cached is not None:
            return cached

        description = DESCRIPTIONS.get(name)
        if description is None:
            description = name
            for prefix, label in PREFIX_DESCRIPTIONS:
                if name.startswith(prefix):
                    description = label
                    break

        self._descriptions[name] = description
        return description

    def link_status(self) -> PathStatus:
        """Derive the current path status from link state."""
        try:
            interfaces = self.list_interfaces()
        except InterfaceAccessError:
            return PathStatus.UNKNOWN

        physical = [i for i in interfaces if is_candidate(i.name)]
        if any(i.is_active for i in physical):
            return PathStatus.SATISFIED
        if any(i.is_up for i in physical):
            return PathStatus.REQUIRES_CONNECTION
        return PathStatus.UNSATISFIED

    def interface_summary(self) -> dict[str, Any]:
        """Counts and details of all interfaces."""
        try:
            interfaces = self.list_interfaces()
        except InterfaceAccessError as e:
            return {'error': e.message}

        return {
            'total_interfaces': len(interfaces),
            'active_interfaces': sum(1 for i in interfaces if i.is_active),
            'interfaces': [i.model_dump() for i in interfaces],
        }

    def clear_cache(self) -> None:
        """Drop the cached primary interface selection."""
        self._cached = None
        self._cache_time = 0.0
        logger.debug("Interface cache cleared")


class LinkObserver:
    """Polls link state and reports path status changes."""

    def __init__(
        self,
        reader: InterfaceReader,
        callback: Callable[[PathStatus], None],
        poll_sec: float = 2.0
    ):
        self.reader = reader
        self.callback = callback
        self.poll_sec = poll_sec
        self.shutdown_event = Event()
        self._thread: Optional[Thread] = None
        self._last_status: Optional[PathStatus] = None

    def start(self) -> Thread:
        """Start the observer thread."""
        self.shutdown_event.clear()
        self._thread = Thread(
            target=self._observer_loop,
            daemon=True,
            name='link-observer'
        )
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Stop the observer thread."""
        self.shutdown_event.set()
        logger.info("Link observer stopped")

    def poll(self) -> Optional[PathStatus]:
        """Check link state once; report and return it if changed."""
        status = self.reader.link_status()
        if status == self._last_status:
            return None

        logger.info(f"Path status: {status.value}")
        self._last_status = status
        self.callback(status)
        return status

    def _observer_loop(self) -> None:
        logger.info("Link observer started")

        while not self.shutdown_event.is_set():
            try:
                self.poll()
            except Exception as e:
                logger.error(f"Link observer error: {e}")
            self.shutdown_event.wait(timeout=self.poll_sec)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
