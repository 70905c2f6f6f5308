"""OpenID Connect login flow for registering machines."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from string import Template
from typing import TYPE_CHECKING, Any, Mapping, Sequence
from urllib.parse import urlencode

from .exceptions import HeadscaleError, MachineNotFound, NamespaceNotFound
from .machine import NODE_KEY_PREFIX, Machine
from .namespaces import Namespace, normalize_to_fqdn_rules

if TYPE_CHECKING:
    from .registry import Registry

REGISTER_METHOD_OIDC = "oidc"
DEFAULT_REGISTRATION_TTL = 15 * 60.0
DEFAULT_SCOPES = ("openid", "profile", "email")
CALLBACK_PATH = "/oidc/callback"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"

_STATE_BYTES = 16
_NODE_KEY_BYTES = 32
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_HTML_ESCAPES = {
    "\0": "\ufffd",
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
}

_CALLBACK_PAGE = Template("""<html>
	<body>
	<h1>headscale</h1>
	<p>
			$verb as $user, you can now close this window.
	</p>
	</body>
	</html>""")


class OIDCError(HeadscaleError):
    """Base class for failures of the OIDC callback."""

    default_message = "OIDC error"


class EmptyCallbackParams(OIDCError, ValueError):
    default_message = "empty OIDC callback params"


class AllowedDomainsMismatch(OIDCError):
    default_message = "authenticated principal does not match any allowed domain"


class AllowedUsersMismatch(OIDCError):
    default_message = "authenticated principal does not match any allowed user"


class InvalidMachineState(OIDCError, LookupError):
    default_message = "requested machine state key expired before authorisation completed"


@dataclass
class IDTokenClaims:
    """The claims of a verified ID token that the login flow uses."""

    email: str = ""
    name: str = ""
    groups: list[str] = field(default_factory=list)
    username: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IDTokenClaims":
        """Build claims from a decoded token payload."""
        return cls(
            email=str(data.get("email", "") or ""),
            name=str(data.get("name", "") or ""),
            groups=[str(group) for group in data.get("groups", None) or []],
            username=str(data.get("preferred_username", "") or ""),
        )


@dataclass
class OIDCSettings:
    """Configuration of the identity provider and of the login policy."""

    server_url: str
    authorization_endpoint: str
    client_id: str
    issuer: str = ""
    client_secret: str = ""
    scopes: list[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    extra_params: dict[str, str] = field(default_factory=dict)
    allowed_domains: list[str] = field(default_factory=list)
    allowed_users: list[str] = field(default_factory=list)
    strip_email_domain: bool = False
    registration_ttl: float = DEFAULT_REGISTRATION_TTL

    @property
    def redirect_url(self) -> str:
        """The callback address the provider sends users back to."""
        return self.server_url.removesuffix("/") + CALLBACK_PATH


@dataclass
class CallbackResult:
    """Outcome of a successful callback: who logged in and the page to show."""

    user: str
    verb: str
    machine: Machine | None
    page: str
    content_type: str = HTML_CONTENT_TYPE


def _escape_html(text: str) -> str:
    return "".join(_HTML_ESCAPES.get(char, char) for char in text)


def _first(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else ""
    return "" if value is None else str(value)


def validate_callback_params(params: Mapping[str, Any]) -> tuple[str, str]:
    """Return ``(code, state)`` from the callback query, raising if either is empty."""
    code = _first(params.get("code"))
    state = _first(params.get("state"))
    if not code or not state:
        raise EmptyCallbackParams()
    return code, state


def validate_allowed_domains(allowed_domains: Sequence[str], claims: IDTokenClaims) -> None:
    """Raise AllowedDomainsMismatch unless the e-mail domain is allowed.

    An empty list allows every domain.
    """
    if not allowed_domains:
        return
    at = claims.email.rfind("@")
    if at < 0 or claims.email[at + 1:] not in allowed_domains:
        raise AllowedDomainsMismatch()


def validate_allowed_users(allowed_users: Sequence[str], claims: IDTokenClaims) -> None:
    """Raise AllowedUsersMismatch unless the e-mail is allowed.

    An empty list allows every user.
    """
    if allowed_users and claims.email not in allowed_users:
        raise AllowedUsersMismatch()


def namespace_name_from_claims(claims: IDTokenClaims, strip_email_domain: bool) -> str:
    """Derive the namespace name from the e-mail claim."""
    return normalize_to_fqdn_rules(claims.email, strip_email_domain)


def render_callback_page(user: str, verb: str) -> str:
    """Return the HTML page shown after a login, with both values escaped."""
    return _CALLBACK_PAGE.substitute(verb=_escape_html(verb), user=_escape_html(user))


def build_auth_url(settings: OIDCSettings, state: str) -> str:
    """Return the provider's authorisation URL for ``state``."""
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": settings.client_id,
        "redirect_uri": settings.redirect_url,
    }
    if settings.scopes:
        params["scope"] = " ".join(settings.scopes)
    if state:
        params["state"] = state
    params.update(settings.extra_params)

    query = urlencode(sorted(params.items()))
    separator = "&" if "?" in settings.authorization_endpoint else "?"
    return f"{settings.authorization_endpoint}{separator}{query}"


def new_state() -> str:
    """Return a random 32 character hex state value."""
    return secrets.token_hex(_STATE_BYTES)


def _normalize_node_key(node_key: str) -> str:
    """Return the node key without its prefix, checking it is 32 bytes of hex."""
    text = node_key.removeprefix(NODE_KEY_PREFIX)
    try:
        raw = bytes.fromhex(text)
    except ValueError as exc:
        raise ValueError(f"could not parse node public key: {exc}") from exc
    if len(raw) != _NODE_KEY_BYTES:
        raise ValueError("could not parse node public key: wrong length")
    return raw.hex()


class OIDCRegistration:
    """Drives the login flow: redirect to the provider, then register on callback."""

    def __init__(self, registry: "Registry", settings: OIDCSettings) -> None:
        self.registry = registry
        self.settings = settings
        self._states: dict[str, tuple[str, float]] = {}

    def begin(self, node_key: str) -> str:
        """Remember ``node_key`` under a fresh state and return the auth URL."""
        if not node_key:
            raise ValueError("Missing node key in URL")
        state = new_state()
        self._states[state] = (node_key, time.monotonic() + self.settings.registration_ttl)
        return build_auth_url(self.settings, state)

    def _node_key_for_state(self, state: str) -> str:
        entry = self._states.get(state)
        if entry is None:
            raise InvalidMachineState()
        node_key, expires = entry
        if time.monotonic() >= expires:
            del self._states[state]
            raise InvalidMachineState()
        return node_key

    def _find_or_create_namespace(self, name: str) -> Namespace:
        try:
            return self.registry.get_namespace(name)
        except NamespaceNotFound:
            return self.registry.create_namespace(name)

    def complete(self, state: str, claims: IDTokenClaims) -> CallbackResult:
        """Finish a login for verified ``claims``.

        A machine already known by its node key is reauthenticated; otherwise
        the machine waiting in the registration cache is registered in the
        namespace derived from the e-mail claim.
        """
        validate_allowed_domains(self.settings.allowed_domains, claims)
        validate_allowed_users(self.settings.allowed_users, claims)

        node_key = _normalize_node_key(self._node_key_for_state(state))

        try:
            machine = self.registry.get_machine_by_node_key(node_key)
        except MachineNotFound:
            machine = None

        if machine is not None:
            self.registry.refresh_machine(machine, _ZERO_TIME)
            verb = "Reauthenticated"
            return CallbackResult(
                user=claims.email,
                verb=verb,
                machine=machine,
                page=render_callback_page(claims.email, verb),
            )

        namespace_name = namespace_name_from_claims(claims, self.settings.strip_email_domain)
        namespace = self._find_or_create_namespace(namespace_name)
        registered = self.registry.register_machine_from_auth_callback(
            node_key, namespace.name, REGISTER_METHOD_OIDC
        )
        verb = "Authenticated"
        return CallbackResult(
            user=claims.email,
            verb=verb,
            machine=registered,
            page=render_callback_page(claims.email, verb),
        )