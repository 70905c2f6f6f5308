"""Errors raised by the registry and its helpers."""

from __future__ import annotations


class HeadscaleError(Exception):
    """Base class for every error the package raises on purpose."""

    default_message = "headscale error"

    def __init__(self, detail: str | None = None) -> None:
        if detail:
            message = f"{detail}: {self.default_message}"
        else:
            message = self.default_message
        super().__init__(message)
        self.detail = detail


class MachineNotFound(HeadscaleError, LookupError):
    default_message = "machine not found"


class MachineRouteNotAvailable(HeadscaleError, ValueError):
    default_message = "route is not available on machine"


class MachineAddressesInvalid(HeadscaleError, ValueError):
    default_message = "failed to parse machine addresses"


class MachineNotFoundRegistrationCache(HeadscaleError, LookupError):
    default_message = "machine not found in registration cache"


class HostnameTooLong(HeadscaleError, ValueError):
    default_message = "Hostname too long"


class DifferentRegisteredNamespace(HeadscaleError):
    default_message = "machine was previously registered with a different namespace"


class NamespaceExists(HeadscaleError):
    default_message = "Namespace already exists"


class NamespaceNotFound(HeadscaleError, LookupError):
    default_message = "Namespace not found"


class NamespaceNotEmptyOfNodes(HeadscaleError):
    default_message = "Namespace not empty: node(s) found"


class InvalidNamespaceName(HeadscaleError, ValueError):
    default_message = "Invalid namespace name"


class PreAuthKeyNotFound(HeadscaleError, LookupError):
    default_message = "AuthKey not found"


class PreAuthKeyExpired(HeadscaleError):
    default_message = "AuthKey expired"


class SingleUseAuthKeyHasBeenUsed(HeadscaleError):
    default_message = "AuthKey has already been used"


class NamespaceMismatch(HeadscaleError):
    default_message = "namespace mismatch"


class PreAuthKeyACLTagInvalid(HeadscaleError, ValueError):
    default_message = "AuthKey tag is invalid"