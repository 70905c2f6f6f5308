"""Machines: the clients registered with the control server."""

from __future__ import annotations

import ipaddress
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Sequence, Union

from .exceptions import HostnameTooLong, MachineAddressesInvalid
from .namespaces import LABEL_HOSTNAME_LENGTH, Namespace, normalize_to_fqdn_rules
from .preauth_keys import PreAuthKey

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

MACHINE_GIVEN_NAME_HASH_LENGTH = 8
MACHINE_GIVEN_NAME_TRIM_SIZE = 2
MAX_HOSTNAME_LENGTH = 255

EXIT_ROUTE_V4 = ipaddress.ip_network("0.0.0.0/0")
EXIT_ROUTE_V6 = ipaddress.ip_network("::/0")

DERP_MAGIC_ADDRESS = "127.3.3.40"
CAPABILITY_FILE_SHARING = "file-sharing"
DEFAULT_KEEP_ALIVE_INTERVAL = timedelta(seconds=60)

NODE_KEY_PREFIX = "nodekey:"
MACHINE_KEY_PREFIX = "mkey:"
DISCO_KEY_PREFIX = "discokey:"
_PUBLIC_KEY_BYTES = 32

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_DNS_SAFE_ALPHABET = string.ascii_lowercase + string.digits


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _is_zero_time(moment: datetime | None) -> bool:
    return moment is None or _as_utc(moment) == _ZERO_TIME


def _isoformat(moment: datetime | None) -> str | None:
    return moment.isoformat() if moment is not None else None


def _parse_public_key(value: str, prefix: str, kind: str) -> str:
    """Return the canonical text form of a 32 byte public key given in hex."""
    text = value[len(prefix):] if value.startswith(prefix) else value
    try:
        raw = bytes.fromhex(text)
    except ValueError as exc:
        raise ValueError(f"failed to parse {kind} public key: {exc}") from exc
    if len(raw) != _PUBLIC_KEY_BYTES:
        raise ValueError(
            f"failed to parse {kind} public key: expected {_PUBLIC_KEY_BYTES} bytes, got {len(raw)}"
        )
    return prefix + raw.hex()


def _zero_key(prefix: str) -> str:
    return prefix + "00" * _PUBLIC_KEY_BYTES


def _host_prefix(address: IPAddress) -> IPNetwork:
    return ipaddress.ip_network(f"{address}/{address.max_prefixlen}")


@dataclass
class HostInfo:
    """What a client reports about itself."""

    hostname: str = ""
    os: str = ""
    request_tags: list[str] = field(default_factory=list)
    routable_ips: list[IPNetwork] = field(default_factory=list)
    preferred_derp: int | None = None
    """Preferred relay region; ``None`` when the client sent no network info."""


@dataclass
class FilterRule:
    """A compiled ACL rule: source addresses and destination addresses."""

    src_ips: list[str] = field(default_factory=list)
    dst_ips: list[str] = field(default_factory=list)


@dataclass
class Machine:
    """A client registered with the control server."""

    id: int = 0
    machine_key: str = ""
    node_key: str = ""
    disco_key: str = ""
    ip_addresses: list[IPAddress] = field(default_factory=list)
    hostname: str = ""
    given_name: str = ""
    namespace_id: int = 0
    namespace: Namespace = field(default_factory=Namespace)
    register_method: str = ""
    forced_tags: list[str] = field(default_factory=list)
    auth_key_id: int = 0
    auth_key: PreAuthKey | None = None
    last_seen: datetime | None = None
    last_successful_update: datetime | None = None
    expiry: datetime | None = None
    host_info: HostInfo = field(default_factory=HostInfo)
    endpoints: list[str] = field(default_factory=list)
    enabled_routes: list[IPNetwork] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    def is_expired(self) -> bool:
        """Return whether the registration has expired.

        A machine without an expiry (or with the zero time) never expires.
        """
        if _is_zero_time(self.expiry):
            return False
        return datetime.now(timezone.utc) > _as_utc(self.expiry)

    def is_routes_enabled(self, route: str) -> bool:
        """Return whether ``route`` parses as a prefix and is enabled."""
        try:
            network = ipaddress.ip_network(route, strict=False)
        except ValueError:
            return False
        return network in self.enabled_routes

    def routes_to_dict(self) -> dict[str, list[str]]:
        """Return advertised and enabled routes as strings."""
        return {
            "advertised_routes": [str(route) for route in self.host_info.routable_ips],
            "enabled_routes": [str(route) for route in self.enabled_routes],
        }

    def to_node(
        self,
        base_domain: str,
        magic_dns: bool = False,
        keep_alive_interval: timedelta = DEFAULT_KEEP_ALIVE_INTERVAL,
    ) -> dict[str, Any]:
        """Return the peer description sent to clients.

        Raises ValueError when a key cannot be parsed and HostnameTooLong
        when the MagicDNS name exceeds 255 characters.
        """
        node_key = _parse_public_key(self.node_key, NODE_KEY_PREFIX, "node")
        machine_key = (
            _parse_public_key(self.machine_key, MACHINE_KEY_PREFIX, "machine")
            if self.machine_key
            else _zero_key(MACHINE_KEY_PREFIX)
        )
        disco_key = (
            _parse_public_key(self.disco_key, DISCO_KEY_PREFIX, "disco")
            if self.disco_key
            else _zero_key(DISCO_KEY_PREFIX)
        )

        addresses = [_host_prefix(address) for address in self.ip_addresses]
        allowed_ips = [*addresses, *self.enabled_routes]
        primary_routes = [
            route
            for route in self.enabled_routes
            if route not in (EXIT_ROUTE_V4, EXIT_ROUTE_V6)
        ]

        preferred_derp = self.host_info.preferred_derp
        derp = f"{DERP_MAGIC_ADDRESS}:{preferred_derp if preferred_derp is not None else 0}"

        if magic_dns:
            hostname = f"{self.given_name}.{self.namespace.name}.{base_domain}"
            if len(hostname) > MAX_HOSTNAME_LENGTH:
                raise HostnameTooLong(
                    f"hostname {hostname!r} is too long it cannot except 255 ASCII chars"
                )
        else:
            hostname = self.given_name

        online = self.last_seen is not None and _as_utc(self.last_seen) > (
            datetime.now(timezone.utc) - keep_alive_interval
        )

        return {
            "ID": self.id,
            "StableID": str(self.id),
            "Name": hostname,
            "User": self.namespace_id,
            "Key": node_key,
            "KeyExpiry": self.expiry if self.expiry is not None else _ZERO_TIME,
            "Machine": machine_key,
            "DiscoKey": disco_key,
            "Addresses": [str(prefix) for prefix in addresses],
            "AllowedIPs": [str(prefix) for prefix in allowed_ips],
            "PrimaryRoutes": [str(prefix) for prefix in primary_routes],
            "Endpoints": list(self.endpoints),
            "DERP": derp,
            "Online": online,
            "Hostinfo": {
                "Hostname": self.host_info.hostname,
                "OS": self.host_info.os,
                "RequestTags": list(self.host_info.request_tags),
                "RoutableIPs": [str(route) for route in self.host_info.routable_ips],
            },
            "Created": self.created_at if self.created_at is not None else _ZERO_TIME,
            "LastSeen": self.last_seen,
            "KeepAlive": True,
            "MachineAuthorized": not self.is_expired(),
            "Capabilities": [CAPABILITY_FILE_SHARING],
        }

    def to_dict(self) -> dict[str, Any]:
        """Return the API representation of the machine."""
        created = self.created_at if self.created_at is not None else _ZERO_TIME
        result: dict[str, Any] = {
            "id": self.id,
            "machine_key": self.machine_key,
            "node_key": self.node_key,
            "disco_key": self.disco_key,
            "ip_addresses": [str(address) for address in self.ip_addresses],
            "name": self.hostname,
            "given_name": self.given_name,
            "namespace": self.namespace.to_dict(),
            "forced_tags": list(self.forced_tags),
            "created_at": created.isoformat(),
            "pre_auth_key": self.auth_key.to_dict() if self.auth_key is not None else None,
            "last_seen": _isoformat(self.last_seen),
            "last_successful_update": _isoformat(self.last_successful_update),
            "expiry": _isoformat(self.expiry),
        }
        return result

    def __str__(self) -> str:
        return self.hostname


def parse_machine_addresses(value: Any) -> list[IPAddress]:
    """Parse a comma separated list of IP addresses, skipping empty entries."""
    if not isinstance(value, str):
        raise MachineAddressesInvalid(f"unexpected data type {type(value).__name__}")
    return [ipaddress.ip_address(part) for part in value.split(",") if part]


def format_machine_addresses(addresses: Iterable[IPAddress]) -> str:
    """Join addresses with commas, the inverse of parse_machine_addresses."""
    return ",".join(str(address) for address in addresses)


def format_machines(machines: Sequence[Machine]) -> str:
    """Render a list of machines as ``[ a, b ](2)``."""
    names = [machine.hostname for machine in machines]
    return f"[ {', '.join(names)} ]({len(names)})"


def _contains_any(inputs: Sequence[str], addresses: Iterable[str]) -> bool:
    return any(address in inputs for address in addresses)


def _rule_matches(rule: FilterRule, sources: Sequence[str], destinations: Sequence[str]) -> bool:
    return _contains_any(rule.src_ips, sources) and _contains_any(rule.dst_ips, destinations)


def filter_peers_by_acl(
    machines: Iterable[Machine],
    rules: Sequence[FilterRule],
    machine: Machine,
) -> list[Machine]:
    """Return the peers ``machine`` may see under ``rules``, sorted by id."""
    own = [str(address) for address in machine.ip_addresses]
    wildcard = ["*"]
    peers: dict[int, Machine] = {}

    for peer in machines:
        if peer.id == machine.id:
            continue
        theirs = [str(address) for address in peer.ip_addresses]
        for rule in rules:
            if (
                _rule_matches(rule, own, theirs)
                or _rule_matches(rule, theirs, own)
                or _rule_matches(rule, own, wildcard)
                or _rule_matches(rule, wildcard, wildcard)
                or _rule_matches(rule, wildcard, theirs)
                or _rule_matches(rule, wildcard, own)
            ):
                peers[peer.id] = peer

    return sorted(peers.values(), key=lambda peer: peer.id)


def _random_dns_safe(length: int) -> str:
    return "".join(secrets.choice(_DNS_SAFE_ALPHABET) for _ in range(length))


def generate_given_name(supplied_name: str, strip_email_domain: bool) -> str:
    """Return a DNS-safe, unique-ish name: the normalised name plus a random suffix.

    Long names are trimmed so the result fits in one DNS label.
    """
    trimmed_length = (
        LABEL_HOSTNAME_LENGTH - MACHINE_GIVEN_NAME_HASH_LENGTH - MACHINE_GIVEN_NAME_TRIM_SIZE
    )
    normalized = normalize_to_fqdn_rules(supplied_name, strip_email_domain)
    postfix = _random_dns_safe(MACHINE_GIVEN_NAME_HASH_LENGTH)
    return f"{normalized[:trimmed_length]}-{postfix}"