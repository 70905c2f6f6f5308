"""Registry of namespaces, pre-auth keys and machines for a mesh VPN control server,
with OIDC registration helpers and client configuration profiles."""

__version__ = "0.1.0"
__all__ = [
    "exceptions",
    "namespaces",
    "preauth_keys",
    "machine",
    "registry",
    "platform_config",
    "oidc",
]