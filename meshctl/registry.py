"""SQLite-backed store of namespaces, pre-authorisation keys and machines."""

from __future__ import annotations

import dataclasses
import ipaddress
import json
import sqlite3
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence

from .exceptions import (
    DifferentRegisteredNamespace,
    MachineNotFound,
    MachineNotFoundRegistrationCache,
    MachineRouteNotAvailable,
    NamespaceExists,
    NamespaceMismatch,
    NamespaceNotEmptyOfNodes,
    NamespaceNotFound,
    PreAuthKeyExpired,
    PreAuthKeyNotFound,
    SingleUseAuthKeyHasBeenUsed,
)
from .machine import (
    NODE_KEY_PREFIX,
    FilterRule,
    HostInfo,
    IPAddress,
    Machine,
    filter_peers_by_acl,
    format_machine_addresses,
    format_machines,
    generate_given_name,
    parse_machine_addresses,
)
from .namespaces import Namespace, check_for_fqdn_rules
from .preauth_keys import PreAuthKey, generate_key, validate_acl_tags

IPAllocator = Callable[[set], list]

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_DEFAULT_PREFIX = ipaddress.ip_network("100.64.0.0/10")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS namespaces (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    created_at TEXT,
    updated_at TEXT
);
CREATE TABLE IF NOT EXISTS pre_auth_keys (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL,
    namespace_id INTEGER NOT NULL,
    reusable INTEGER NOT NULL DEFAULT 0,
    ephemeral INTEGER NOT NULL DEFAULT 0,
    used INTEGER NOT NULL DEFAULT 0,
    created_at TEXT,
    expiration TEXT
);
CREATE TABLE IF NOT EXISTS pre_auth_key_acl_tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pre_auth_key_id INTEGER NOT NULL,
    tag TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS machines (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    machine_key TEXT,
    node_key TEXT,
    disco_key TEXT,
    ip_addresses TEXT,
    hostname TEXT,
    given_name TEXT,
    namespace_id INTEGER,
    register_method TEXT,
    forced_tags TEXT,
    auth_key_id INTEGER,
    last_seen TEXT,
    last_successful_update TEXT,
    expiry TEXT,
    host_info TEXT,
    endpoints TEXT,
    enabled_routes TEXT,
    created_at TEXT,
    updated_at TEXT,
    deleted_at TEXT
);
"""

_MACHINE_COLUMNS = (
    "id",
    "machine_key",
    "node_key",
    "disco_key",
    "ip_addresses",
    "hostname",
    "given_name",
    "namespace_id",
    "register_method",
    "forced_tags",
    "auth_key_id",
    "last_seen",
    "last_successful_update",
    "expiry",
    "host_info",
    "endpoints",
    "enabled_routes",
    "created_at",
    "updated_at",
    "deleted_at",
)

_LIVE_MACHINES = "SELECT * FROM machines WHERE deleted_at IS NULL"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _to_text(moment: datetime | None) -> str | None:
    return None if moment is None else _as_utc(moment).isoformat()


def _from_text(text: str | None) -> datetime | None:
    return None if text is None else datetime.fromisoformat(text)


def _strip_prefix(value: str, prefix: str) -> str:
    return value[len(prefix):] if value.startswith(prefix) else value


def _default_ip_allocator(used: set) -> list[IPAddress]:
    """Hand out the first free address of the default CGNAT prefix."""
    for address in _DEFAULT_PREFIX.hosts():
        if address not in used:
            return [address]
    raise RuntimeError(f"no free IP addresses left in {_DEFAULT_PREFIX}")


def _host_info_to_json(info: HostInfo) -> str:
    return json.dumps(
        {
            "hostname": info.hostname,
            "os": info.os,
            "request_tags": list(info.request_tags),
            "routable_ips": [str(route) for route in info.routable_ips],
            "preferred_derp": info.preferred_derp,
        }
    )


def _host_info_from_json(text: str | None) -> HostInfo:
    data = json.loads(text) if text else {}
    return HostInfo(
        hostname=data.get("hostname", ""),
        os=data.get("os", ""),
        request_tags=list(data.get("request_tags", [])),
        routable_ips=[
            ipaddress.ip_network(route, strict=False) for route in data.get("routable_ips", [])
        ],
        preferred_derp=data.get("preferred_derp"),
    )


class Registry:
    """Persistent registry of namespaces, keys and machines."""

    def __init__(
        self,
        path: str = ":memory:",
        strip_email_domain: bool = False,
        ip_allocator: IPAllocator | None = None,
    ) -> None:
        self.strip_email_domain = strip_email_domain
        self._ip_allocator = ip_allocator or _default_ip_allocator
        self._ip_lock = threading.Lock()
        self._registration_cache: dict[str, tuple[Any, float | None]] = {}
        self._last_state_change = _ZERO_TIME
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    def __enter__(self) -> "Registry":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # -- state tracking -------------------------------------------------

    def _mark_state_change(self) -> None:
        self._last_state_change = _now()

    # -- namespaces -----------------------------------------------------

    @staticmethod
    def _namespace_from_row(row: sqlite3.Row) -> Namespace:
        return Namespace(
            id=row["id"],
            name=row["name"],
            created_at=_from_text(row["created_at"]),
            updated_at=_from_text(row["updated_at"]),
        )

    def _namespace_by_id(self, namespace_id: int) -> Namespace | None:
        row = self._conn.execute(
            "SELECT * FROM namespaces WHERE id = ?", (namespace_id,)
        ).fetchone()
        return None if row is None else self._namespace_from_row(row)

    def create_namespace(self, name: str) -> Namespace:
        """Create a namespace; raise NamespaceExists if the name is taken."""
        check_for_fqdn_rules(name)
        if self._conn.execute("SELECT 1 FROM namespaces WHERE name = ?", (name,)).fetchone():
            raise NamespaceExists()
        now = _now()
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO namespaces (name, created_at, updated_at) VALUES (?, ?, ?)",
                (name, _to_text(now), _to_text(now)),
            )
        return Namespace(id=cursor.lastrowid, name=name, created_at=now, updated_at=now)

    def destroy_namespace(self, name: str) -> None:
        """Delete an empty namespace together with its pre-auth keys."""
        try:
            namespace = self.get_namespace(name)
        except NamespaceNotFound:
            raise NamespaceNotFound() from None
        if self.list_machines_in_namespace(name):
            raise NamespaceNotEmptyOfNodes()
        for pak in self.list_preauth_keys(name):
            self.destroy_preauth_key(pak)
        with self._conn:
            self._conn.execute("DELETE FROM namespaces WHERE id = ?", (namespace.id,))

    def rename_namespace(self, old_name: str, new_name: str) -> None:
        """Rename a namespace; the new name must be valid and unused."""
        namespace = self.get_namespace(old_name)
        check_for_fqdn_rules(new_name)
        try:
            self.get_namespace(new_name)
        except NamespaceNotFound:
            pass
        else:
            raise NamespaceExists()
        with self._conn:
            self._conn.execute(
                "UPDATE namespaces SET name = ?, updated_at = ? WHERE id = ?",
                (new_name, _to_text(_now()), namespace.id),
            )

    def get_namespace(self, name: str) -> Namespace:
        """Return the namespace called ``name`` or raise NamespaceNotFound."""
        row = self._conn.execute("SELECT * FROM namespaces WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise NamespaceNotFound()
        return self._namespace_from_row(row)

    def list_namespaces(self) -> list[Namespace]:
        """Return every namespace, in creation order."""
        rows = self._conn.execute("SELECT * FROM namespaces ORDER BY id").fetchall()
        return [self._namespace_from_row(row) for row in rows]

    def list_namespace_names(self) -> list[str]:
        """Return the names of every namespace."""
        return [namespace.name for namespace in self.list_namespaces()]

    def list_machines_in_namespace(self, name: str) -> list[Machine]:
        """Return the machines belonging to the namespace ``name``."""
        check_for_fqdn_rules(name)
        namespace = self.get_namespace(name)
        rows = self._conn.execute(
            _LIVE_MACHINES + " AND namespace_id = ? ORDER BY id", (namespace.id,)
        ).fetchall()
        return [self._machine_from_row(row) for row in rows]

    def set_machine_namespace(self, machine: Machine, namespace_name: str) -> None:
        """Move ``machine`` into the namespace ``namespace_name``."""
        check_for_fqdn_rules(namespace_name)
        namespace = self.get_namespace(namespace_name)
        machine.namespace = namespace
        machine.namespace_id = namespace.id
        self.save_machine(machine)

    # -- pre-auth keys --------------------------------------------------

    def _preauth_key_from_row(self, row: sqlite3.Row) -> PreAuthKey:
        tags = [
            tag_row["tag"]
            for tag_row in self._conn.execute(
                "SELECT tag FROM pre_auth_key_acl_tags WHERE pre_auth_key_id = ? ORDER BY id",
                (row["id"],),
            )
        ]
        return PreAuthKey(
            id=row["id"],
            key=row["key"],
            namespace_id=row["namespace_id"],
            namespace=self._namespace_by_id(row["namespace_id"]) or Namespace(),
            reusable=bool(row["reusable"]),
            ephemeral=bool(row["ephemeral"]),
            used=bool(row["used"]),
            acl_tags=tags,
            created_at=_from_text(row["created_at"]),
            expiration=_from_text(row["expiration"]),
        )

    def _preauth_key_by_id(self, key_id: int) -> PreAuthKey | None:
        row = self._conn.execute("SELECT * FROM pre_auth_keys WHERE id = ?", (key_id,)).fetchone()
        return None if row is None else self._preauth_key_from_row(row)

    def create_preauth_key(
        self,
        namespace_name: str,
        reusable: bool = False,
        ephemeral: bool = False,
        expiration: datetime | None = None,
        acl_tags: Iterable[str] | None = None,
    ) -> PreAuthKey:
        """Create a pre-auth key in a namespace and return it."""
        namespace = self.get_namespace(namespace_name)
        tags = validate_acl_tags(acl_tags)
        now = _now()
        pak = PreAuthKey(
            key=generate_key(),
            namespace_id=namespace.id,
            namespace=namespace,
            reusable=reusable,
            ephemeral=ephemeral,
            acl_tags=tags,
            created_at=now,
            expiration=expiration,
        )
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO pre_auth_keys (key, namespace_id, reusable, ephemeral, used, "
                "created_at, expiration) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    pak.key,
                    pak.namespace_id,
                    int(reusable),
                    int(ephemeral),
                    0,
                    _to_text(now),
                    _to_text(expiration),
                ),
            )
            pak.id = cursor.lastrowid
            self._conn.executemany(
                "INSERT INTO pre_auth_key_acl_tags (pre_auth_key_id, tag) VALUES (?, ?)",
                [(pak.id, tag) for tag in tags],
            )
        return pak

    def list_preauth_keys(self, namespace_name: str) -> list[PreAuthKey]:
        """Return the pre-auth keys of a namespace."""
        namespace = self.get_namespace(namespace_name)
        rows = self._conn.execute(
            "SELECT * FROM pre_auth_keys WHERE namespace_id = ? ORDER BY id", (namespace.id,)
        ).fetchall()
        return [self._preauth_key_from_row(row) for row in rows]

    def get_preauth_key(self, namespace_name: str, key: str) -> PreAuthKey:
        """Return a usable key, checking that it belongs to ``namespace_name``."""
        pak = self.check_key_validity(key)
        if pak.namespace is None or pak.namespace.name != namespace_name:
            raise NamespaceMismatch()
        return pak

    def destroy_preauth_key(self, pak: PreAuthKey) -> None:
        """Delete a key and its ACL tags."""
        with self._conn:
            self._conn.execute(
                "DELETE FROM pre_auth_key_acl_tags WHERE pre_auth_key_id = ?", (pak.id,)
            )
            self._conn.execute("DELETE FROM pre_auth_keys WHERE id = ?", (pak.id,))

    def expire_preauth_key(self, pak: PreAuthKey) -> None:
        """Set the key's expiration to now."""
        now = _now()
        with self._conn:
            self._conn.execute(
                "UPDATE pre_auth_keys SET expiration = ? WHERE id = ?", (_to_text(now), pak.id)
            )
        pak.expiration = now

    def use_preauth_key(self, pak: PreAuthKey) -> None:
        """Mark the key as used."""
        pak.used = True
        with self._conn:
            self._conn.execute("UPDATE pre_auth_keys SET used = 1 WHERE id = ?", (pak.id,))

    def check_key_validity(self, key: str) -> PreAuthKey:
        """Return the key if it can be used to register a machine, else raise."""
        row = self._conn.execute("SELECT * FROM pre_auth_keys WHERE key = ?", (key,)).fetchone()
        if row is None:
            raise PreAuthKeyNotFound()
        pak = self._preauth_key_from_row(row)
        if pak.is_expired(_now()):
            raise PreAuthKeyExpired()
        if pak.reusable or pak.ephemeral:
            return pak
        in_use = self._conn.execute(
            _LIVE_MACHINES + " AND auth_key_id = ? LIMIT 1", (pak.id,)
        ).fetchone()
        if in_use is not None or pak.used:
            raise SingleUseAuthKeyHasBeenUsed()
        return pak

    # -- machines -------------------------------------------------------

    def _machine_from_row(self, row: sqlite3.Row) -> Machine:
        auth_key_id = row["auth_key_id"] or 0
        return Machine(
            id=row["id"],
            machine_key=row["machine_key"] or "",
            node_key=row["node_key"] or "",
            disco_key=row["disco_key"] or "",
            ip_addresses=parse_machine_addresses(row["ip_addresses"] or ""),
            hostname=row["hostname"] or "",
            given_name=row["given_name"] or "",
            namespace_id=row["namespace_id"] or 0,
            namespace=self._namespace_by_id(row["namespace_id"] or 0) or Namespace(),
            register_method=row["register_method"] or "",
            forced_tags=json.loads(row["forced_tags"] or "[]"),
            auth_key_id=auth_key_id,
            auth_key=self._preauth_key_by_id(auth_key_id) if auth_key_id else None,
            last_seen=_from_text(row["last_seen"]),
            last_successful_update=_from_text(row["last_successful_update"]),
            expiry=_from_text(row["expiry"]),
            host_info=_host_info_from_json(row["host_info"]),
            endpoints=json.loads(row["endpoints"] or "[]"),
            enabled_routes=[
                ipaddress.ip_network(route, strict=False)
                for route in json.loads(row["enabled_routes"] or "[]")
            ],
            created_at=_from_text(row["created_at"]),
            updated_at=_from_text(row["updated_at"]),
            deleted_at=_from_text(row["deleted_at"]),
        )

    def save_machine(self, machine: Machine) -> Machine:
        """Insert or update ``machine``; a zero id gets a fresh one."""
        now = _now()
        if machine.created_at is None:
            machine.created_at = now
        machine.updated_at = now
        if machine.namespace.id:
            machine.namespace_id = machine.namespace.id
        values = (
            machine.id or None,
            machine.machine_key,
            machine.node_key,
            machine.disco_key,
            format_machine_addresses(machine.ip_addresses),
            machine.hostname,
            machine.given_name,
            machine.namespace_id,
            machine.register_method,
            json.dumps(list(machine.forced_tags)),
            machine.auth_key_id,
            _to_text(machine.last_seen),
            _to_text(machine.last_successful_update),
            _to_text(machine.expiry),
            _host_info_to_json(machine.host_info),
            json.dumps(list(machine.endpoints)),
            json.dumps([str(route) for route in machine.enabled_routes]),
            _to_text(machine.created_at),
            _to_text(machine.updated_at),
            _to_text(machine.deleted_at),
        )
        placeholders = ", ".join("?" for _ in _MACHINE_COLUMNS)
        with self._conn:
            cursor = self._conn.execute(
                f"INSERT OR REPLACE INTO machines ({', '.join(_MACHINE_COLUMNS)}) "
                f"VALUES ({placeholders})",
                values,
            )
        machine.id = cursor.lastrowid
        return machine

    def list_machines(self) -> list[Machine]:
        """Return every live machine, ordered by id."""
        rows = self._conn.execute(_LIVE_MACHINES + " ORDER BY id").fetchall()
        return [self._machine_from_row(row) for row in rows]

    def list_peers(self, machine: Machine) -> list[Machine]:
        """Return every other machine (by node key), ordered by id."""
        rows = self._conn.execute(
            _LIVE_MACHINES + " AND node_key <> ? ORDER BY id", (machine.node_key,)
        ).fetchall()
        return [self._machine_from_row(row) for row in rows]

    def get_peers(
        self, machine: Machine, rules: Sequence[FilterRule] | None = None
    ) -> list[Machine]:
        """Return the peers of ``machine``, filtered by ``rules`` when given."""
        if rules is not None:
            peers = filter_peers_by_acl(self.list_machines(), rules, machine)
        else:
            peers = self.list_peers(machine)
        return sorted(peers, key=lambda peer: peer.id)

    def get_valid_peers(
        self, machine: Machine, rules: Sequence[FilterRule] | None = None
    ) -> list[Machine]:
        """Return the peers of ``machine`` that have not expired."""
        return [peer for peer in self.get_peers(machine, rules) if not peer.is_expired()]

    def get_machine(self, namespace: str, name: str) -> Machine:
        """Return the machine with hostname ``name`` in ``namespace``."""
        for machine in self.list_machines_in_namespace(namespace):
            if machine.hostname == name:
                return machine
        raise MachineNotFound()

    def get_machine_by_id(self, machine_id: int) -> Machine:
        """Return the machine with the given id."""
        row = self._conn.execute(_LIVE_MACHINES + " AND id = ?", (machine_id,)).fetchone()
        if row is None:
            raise MachineNotFound()
        return self._machine_from_row(row)

    def get_machine_by_node_key(self, node_key: str) -> Machine:
        """Return the machine whose current node key is ``node_key``."""
        row = self._conn.execute(
            _LIVE_MACHINES + " AND node_key = ? ORDER BY id LIMIT 1",
            (_strip_prefix(node_key, NODE_KEY_PREFIX),),
        ).fetchone()
        if row is None:
            raise MachineNotFound()
        return self._machine_from_row(row)

    def get_machine_by_any_node_key(self, node_key: str, old_node_key: str) -> Machine:
        """Return the machine whose node key is either the current or the old one."""
        row = self._conn.execute(
            _LIVE_MACHINES + " AND (node_key = ? OR node_key = ?) ORDER BY id LIMIT 1",
            (
                _strip_prefix(node_key, NODE_KEY_PREFIX),
                _strip_prefix(old_node_key, NODE_KEY_PREFIX),
            ),
        ).fetchone()
        if row is None:
            raise MachineNotFound()
        return self._machine_from_row(row)

    def reload_machine(self, machine: Machine) -> Machine:
        """Refresh ``machine`` in place from the database."""
        fresh = self.get_machine_by_id(machine.id)
        for item in dataclasses.fields(Machine):
            setattr(machine, item.name, getattr(fresh, item.name))
        return machine

    def set_tags(self, machine: Machine, tags: Iterable[str]) -> None:
        """Replace the forced tags of ``machine``, dropping duplicates."""
        machine.forced_tags = list(dict.fromkeys(tags))
        self._mark_state_change()
        self.save_machine(machine)

    def expire_machine(self, machine: Machine) -> None:
        """Set the machine's expiry to now."""
        machine.expiry = _now()
        self._mark_state_change()
        self.save_machine(machine)

    def rename_machine(self, machine: Machine, new_name: str) -> None:
        """Give ``machine`` a new DNS name."""
        check_for_fqdn_rules(new_name)
        machine.given_name = new_name
        self._mark_state_change()
        self.save_machine(machine)

    def refresh_machine(self, machine: Machine, expiry: datetime) -> None:
        """Record a successful update and set a new expiry."""
        machine.last_successful_update = _now()
        machine.expiry = expiry
        self._mark_state_change()
        self.save_machine(machine)

    def delete_machine(self, machine: Machine) -> None:
        """Soft-delete ``machine``: it stays stored but is no longer listed."""
        machine.deleted_at = _now()
        with self._conn:
            self._conn.execute(
                "UPDATE machines SET deleted_at = ? WHERE id = ?",
                (_to_text(machine.deleted_at), machine.id),
            )

    def hard_delete_machine(self, machine: Machine) -> None:
        """Remove ``machine`` from the database."""
        with self._conn:
            self._conn.execute("DELETE FROM machines WHERE id = ?", (machine.id,))

    def touch_machine(self, machine: Machine) -> None:
        """Store the machine's last-seen and last-update times, if set."""
        updates = {
            "last_seen": machine.last_seen,
            "last_successful_update": machine.last_successful_update,
        }
        present = {column: value for column, value in updates.items() if value is not None}
        if not present:
            return
        assignments = ", ".join(f"{column} = ?" for column in present)
        with self._conn:
            self._conn.execute(
                f"UPDATE machines SET {assignments} WHERE id = ?",
                (*(_to_text(value) for value in present.values()), machine.id),
            )

    def is_outdated(self, machine: Machine) -> bool:
        """Return whether the registry changed since the machine's last update."""
        try:
            self.reload_machine(machine)
        except MachineNotFound:
            return True
        last_update = machine.last_successful_update or machine.created_at or _ZERO_TIME
        return _as_utc(last_update) < self._last_state_change

    def enable_routes(self, machine: Machine, *args: str) -> None:
        """Replace the enabled routes with ``args``; each must be advertised."""
        new_routes = [ipaddress.ip_network(route, strict=False) for route in args]
        for route in new_routes:
            if route not in machine.host_info.routable_ips:
                raise MachineRouteNotAvailable(
                    f"route ({route}) is not available on node {machine.hostname}"
                )
        machine.enabled_routes = new_routes
        self.save_machine(machine)

    def _used_addresses(self) -> set:
        used: set = set()
        for row in self._conn.execute(
            "SELECT ip_addresses FROM machines WHERE deleted_at IS NULL"
        ):
            used.update(parse_machine_addresses(row["ip_addresses"] or ""))
        return used

    def register_machine(self, machine: Machine) -> Machine:
        """Assign addresses to ``machine`` and store it."""
        with self._ip_lock:
            machine.ip_addresses = list(self._ip_allocator(self._used_addresses()))
            return self.save_machine(machine)

    # -- registration cache ---------------------------------------------

    def cache_registration(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Remember ``value`` under ``key`` for ``ttl`` seconds (forever if None)."""
        expires = None if ttl is None else time.monotonic() + ttl
        self._registration_cache[key] = (value, expires)

    def _cached_registration(self, key: str) -> tuple[bool, Any]:
        entry = self._registration_cache.get(key)
        if entry is None:
            return False, None
        value, expires = entry
        if expires is not None and time.monotonic() >= expires:
            del self._registration_cache[key]
            return False, None
        return True, value

    def register_machine_from_auth_callback(
        self, node_key: str, namespace_name: str, registration_method: str
    ) -> Machine:
        """Register the machine waiting in the cache under ``node_key``."""
        found, cached = self._cached_registration(node_key)
        if not found:
            raise MachineNotFoundRegistrationCache()
        if not isinstance(cached, Machine):
            raise TypeError("failed to convert machine interface")
        namespace = self.get_namespace(namespace_name)
        if cached.id != 0 and cached.namespace_id != namespace.id:
            raise DifferentRegisteredNamespace()
        cached.namespace_id = namespace.id
        cached.namespace = namespace
        cached.register_method = registration_method
        machine = self.register_machine(cached)
        self._registration_cache.pop(node_key, None)
        return machine

    def generate_given_name(self, supplied_name: str) -> str:
        """Return a DNS-safe given name derived from ``supplied_name``."""
        return generate_given_name(supplied_name, self.strip_email_domain)

    def describe_machines(self, machines: Sequence[Machine]) -> str:
        """Render machines the way log lines show them."""
        return format_machines(machines)