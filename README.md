# meshctl

`meshctl` keeps the registry of a mesh VPN control server: the namespaces that
group machines, the pre-authorisation keys that let machines join, the machines
themselves and which peers each one may see. State is kept in SQLite (a file,
or memory by default), and only the standard library is needed.

## Installation

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Modules

- `meshctl.namespaces`: the `Namespace` dataclass (`to_user()`, `to_login()`,
  `to_dict()`), `check_for_fqdn_rules()` which raises `InvalidNamespaceName`
  for names that are not valid DNS labels, `normalize_to_fqdn_rules()` which
  rewrites a name into one, and `get_map_response_user_profiles()` which
  returns one profile per distinct namespace of a machine and its peers.
- `meshctl.preauth_keys`: the `PreAuthKey` dataclass (`is_expired()`,
  `to_dict()`), `generate_key()` (24 random bytes, hex encoded) and
  `validate_acl_tags()` (every tag must start with `tag:`; duplicates dropped).
- `meshctl.machine`: the `Machine`, `HostInfo` and `FilterRule` dataclasses;
  `parse_machine_addresses()` / `format_machine_addresses()` for the
  comma-separated address form; `Machine.to_node()` for the peer description
  sent to clients; `filter_peers_by_acl()`; `generate_given_name()`, which
  normalises a name, trims it and appends an 8 character random suffix.
- `meshctl.registry`: `Registry`, the SQLite-backed store tying these together.
- `meshctl.oidc`: `OIDCRegistration`, `OIDCSettings`, `IDTokenClaims` and
  helpers for registering machines after an OpenID Connect login.
- `meshctl.platform_config`: the Windows registry file, the Apple configuration
  profiles and the HTML pages that explain them.
- `meshctl.exceptions`: the errors the registry raises, all derived from
  `HeadscaleError`.

## Registry

```python
from meshctl.registry import Registry
from meshctl.machine import Machine
from meshctl.exceptions import NamespaceExists

with Registry("registry.db", strip_email_domain=True, ip_allocator=None) as registry:
    namespace = registry.create_namespace("office")
    key = registry.create_preauth_key(
        "office", reusable=False, ephemeral=False, expiration=None,
        acl_tags=["tag:server"],
    )
    print(key.key)  # 48 hexadecimal characters

    try:
        registry.create_namespace("office")
    except NamespaceExists:
        print("already there")

    machine = registry.register_machine(
        Machine(hostname="laptop", given_name="laptop", namespace=namespace)
    )
    print(machine.ip_addresses)  # [IPv4Address('100.64.0.1')]
```

`register_machine()` assigns addresses with the `ip_allocator` callable, which
receives the set of addresses already in use and returns a list of addresses.
Without one, the first free address of `100.64.0.0/10` is used.

`check_key_validity()` raises `PreAuthKeyNotFound`, `PreAuthKeyExpired` or
`SingleUseAuthKeyHasBeenUsed`; reusable and ephemeral keys may be used more
than once. `delete_machine()` soft-deletes (the machine is no longer listed),
`hard_delete_machine()` removes the row.

`get_peers(machine, rules)` returns every other machine when `rules` is `None`,
or, given a list of `FilterRule`, only the peers those rules let the machine
see. `get_valid_peers()` additionally drops expired machines.

Names of namespaces and machines must be valid DNS labels: lower case, at most
63 characters, and only letters, digits, hyphens and dots.
`normalize_to_fqdn_rules("Jamie's iPhone 5", False)` returns
`"jamies-iphone-5"`.

## OIDC registration

```python
from meshctl.machine import Machine
from meshctl.oidc import IDTokenClaims, OIDCRegistration, OIDCSettings

settings = OIDCSettings(
    server_url="https://control.example.com",
    authorization_endpoint="https://login.example.com/authorize",
    client_id="meshctl",
    allowed_domains=["example.com"],
    strip_email_domain=True,
)
flow = OIDCRegistration(registry, settings)

node_key = "ab" * 32
registry.cache_registration(node_key, Machine(node_key=node_key, hostname="laptop"), ttl=900)
auth_url = flow.begin(node_key)  # redirect the user here

# after the provider calls back with ?code=...&state=... and the ID token is verified:
result = flow.complete(state, IDTokenClaims(email="alice@example.com"))
print(result.verb, result.machine.namespace.name)  # Authenticated alice
```

A machine already known by its node key is reauthenticated instead
(`result.verb == "Reauthenticated"`). Disallowed domains or users raise
`AllowedDomainsMismatch` / `AllowedUsersMismatch`; an unknown or expired state
raises `InvalidMachineState`.

## Client configuration

```python
from meshctl.platform_config import apple_platform_config, windows_reg_config

reg_file = windows_reg_config("https://control.example.com")
profile = apple_platform_config("https://control.example.com", "macos")
```

Only `"macos"` and `"ios"` are accepted as platforms; any other value raises
`UnsupportedPlatform`. `windows_config_message()` and `apple_config_message()`
return the explanatory HTML pages.

## What this package does not do

- It runs no server and has no command-line tool: it serves no HTTP or gRPC
  endpoints and speaks no client protocol. The functions above return values
  for a server of your own to send.
- It does not parse ACL policy files; `FilterRule` lists must be built by the
  caller.
- The OIDC flow does not contact the identity provider: exchanging the code
  for a token and verifying the ID token are left to the caller, who passes
  the verified claims to `OIDCRegistration.complete()`.
- It exports no metrics.