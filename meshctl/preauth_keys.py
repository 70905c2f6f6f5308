"""Pre-authorisation keys that let machines join a namespace."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from .exceptions import PreAuthKeyACLTagInvalid
from .namespaces import Namespace

_KEY_BYTES = 24
_TAG_PREFIX = "tag:"


@dataclass
class PreAuthKey:
    """A key usable to register machines in a particular namespace."""

    id: int = 0
    key: str = ""
    namespace_id: int = 0
    namespace: Namespace | None = None
    reusable: bool = False
    ephemeral: bool = False
    used: bool = False
    acl_tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    expiration: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return whether the expiration lies strictly before ``now``."""
        if self.expiration is None:
            return False
        if now is None:
            now = datetime.now(timezone.utc)
        return self.expiration < now

    def to_dict(self) -> dict[str, Any]:
        """Return the API representation of the key."""
        return {
            "namespace": self.namespace.name if self.namespace is not None else "",
            "id": str(self.id),
            "key": self.key,
            "ephemeral": self.ephemeral,
            "reusable": self.reusable,
            "used": self.used,
            "acl_tags": list(self.acl_tags),
            "expiration": self.expiration.isoformat() if self.expiration else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def generate_key() -> str:
    """Return a fresh random key of 24 bytes, hex encoded."""
    return secrets.token_hex(_KEY_BYTES)


def validate_acl_tags(tags: Iterable[str] | None) -> list[str]:
    """Check that every tag starts with ``tag:`` and return them without duplicates."""
    tags = list(tags or [])
    for tag in tags:
        if not tag.startswith(_TAG_PREFIX):
            raise PreAuthKeyACLTagInvalid(f"'{tag}' did not begin with 'tag:'")
    return list(dict.fromkeys(tags))