"""Namespaces: the user-like groupings that own machines."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .exceptions import InvalidNamespaceName

LABEL_HOSTNAME_LENGTH = 63
"""Maximum length of one DNS label (RFC 1123 and 952)."""

USER_DOMAIN = "headscale.net"

_INVALID_CHARS = re.compile(r"[^a-z0-9.\-]+")
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


@dataclass
class Namespace:
    """A named group of machines, presented to clients as a user."""

    id: int = 0
    name: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    def to_user(self) -> dict[str, Any]:
        """Return the namespace as a client-facing user record."""
        return {
            "ID": self.id,
            "LoginName": self.name,
            "DisplayName": self.name,
            "ProfilePicURL": "",
            "Domain": USER_DOMAIN,
            "Logins": [],
            "Created": _ZERO_TIME,
        }

    def to_login(self) -> dict[str, Any]:
        """Return the namespace as a client-facing login record."""
        return {
            "ID": self.id,
            "LoginName": self.name,
            "DisplayName": self.name,
            "ProfilePicURL": "",
            "Domain": USER_DOMAIN,
        }

    def to_dict(self) -> dict[str, Any]:
        """Return the API representation of the namespace."""
        created = self.created_at if self.created_at is not None else _ZERO_TIME
        return {
            "id": str(self.id),
            "name": self.name,
            "created_at": created.isoformat(),
        }


def normalize_to_fqdn_rules(name: str, strip_email_domain: bool) -> str:
    """Rewrite ``name`` into a DNS-safe form.

    Raises InvalidNamespaceName when a label of the result is longer than
    63 characters.
    """
    name = name.lower().replace("'", "")
    at_index = name.find("@")
    if strip_email_domain and at_index > 0:
        name = name[:at_index]
    else:
        name = name.replace("@", ".")
    name = _INVALID_CHARS.sub("-", name)

    for label in name.split("."):
        if len(label.encode()) > LABEL_HOSTNAME_LENGTH:
            raise InvalidNamespaceName(f"label {label} is more than 63 chars")

    return name


def check_for_fqdn_rules(name: str) -> str:
    """Return ``name`` unchanged if it is a valid DNS segment, else raise."""
    if len(name.encode()) > LABEL_HOSTNAME_LENGTH:
        raise InvalidNamespaceName(
            f"DNS segment must not be over 63 chars. {name} doesn't comply with this rule"
        )
    if name.lower() != name:
        raise InvalidNamespaceName(
            f"DNS segment should be lowercase. {name} doesn't comply with this rule"
        )
    if _INVALID_CHARS.search(name):
        raise InvalidNamespaceName(
            "DNS segment should only be composed of lowercase ASCII letters numbers, "
            f"hyphen and dots. {name} doesn't comply with theses rules"
        )
    return name


def get_map_response_user_profiles(machine: Any, peers: Iterable[Any]) -> list[dict[str, Any]]:
    """Return one user profile per distinct namespace of a machine and its peers."""
    by_name: dict[str, Namespace] = {machine.namespace.name: machine.namespace}
    for peer in peers:
        by_name[peer.namespace.name] = peer.namespace

    return [
        {"ID": namespace.id, "LoginName": namespace.name, "DisplayName": namespace.name}
        for namespace in by_name.values()
    ]