"""Client configuration pages and profiles that point clients at this server."""

from __future__ import annotations

import plistlib
import uuid
from collections.abc import Iterable

from .exceptions import HeadscaleError

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
WINDOWS_REG_CONTENT_TYPE = "text/x-ms-regedit; charset=utf-8"
APPLE_CONFIG_CONTENT_TYPE = "application/x-apple-aspen-config; charset=utf-8"

PAYLOAD_IDENTIFIER = "net.headscale.profile"
SUPPORTED_APPLE_PLATFORMS = ("macos", "ios")

_REGISTRY_KEY = r"HKLM\Software\Tailscale IPN"
_REGISTRY_KEY_FULL = r"HKEY_LOCAL_MACHINE\SOFTWARE\Tailscale IPN"


class UnsupportedPlatform(HeadscaleError, ValueError):
    """Raised when a profile is requested for a platform other than ios or macos."""

    default_message = "Invalid platform, only ios and macos is supported"


_HTML_ESCAPES = {
    "\0": "\ufffd",
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
}


def _escape_html(text: str) -> str:
    return "".join(_HTML_ESCAPES.get(char, char) for char in text)


def _page(title: str, sections: Iterable[str]) -> str:
    body = "\n".join(sections)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head><title>headscale</title></head>\n<body>\n"
        "<h1>headscale</h1>\n"
        f"<h2>{title}</h2>\n"
        f"{body}\n"
        "</body>\n</html>\n"
    )


def _steps(items: Iterable[str]) -> str:
    entries = "".join(f"<li>{item}</li>" for item in items)
    return f"<ol>{entries}</ol>"


def _code_block(*lines: str) -> str:
    return "<pre><code>" + "\n".join(lines) + "</code></pre>"


def windows_config_message(server_url: str) -> str:
    """Return the HTML page explaining how to configure the Windows client."""
    url = _escape_html(server_url)
    return _page(
        "Windows registry configuration",
        [
            "<p>Registry settings for the official Windows Tailscale client "
            f"make it use <code>{url}</code> as its control server.</p>",
            "<h3>Caution</h3>",
            "<p>Download and read the registry file before applying it:</p>",
            _code_block(f"curl {url}/windows/tailscale.reg"),
            "<h2>Installation</h2>",
            '<p><a href="/windows/tailscale.reg" download="tailscale.reg">'
            "Windows registry file</a></p>",
            _steps(
                [
                    "Download the registry file and run it",
                    "Confirm the prompts",
                    "Install and start the official Windows Tailscale client",
                    "Log in from the Tailscale icon in the system tray",
                ]
            ),
            "<p>Alternatively, run these commands in an elevated command prompt:</p>",
            _code_block(
                f'REG ADD "{_REGISTRY_KEY}" /v UnattendedMode /t REG_SZ /d always',
                f'REG ADD "{_REGISTRY_KEY}" /v LoginURL /t REG_SZ /d "{url}"',
            ),
            "<p>Then restart Tailscale and log in.</p>",
        ],
    )


def windows_reg_config(server_url: str) -> str:
    """Return a .reg file that sets ``server_url`` as the login server."""
    lines = [
        "Windows Registry Editor Version 5.00",
        "",
        f"[{_REGISTRY_KEY_FULL}]",
        '"UnattendedMode"="always"',
        f'"LoginURL"="{server_url}"',
    ]
    return "\n".join(lines) + "\n"


def apple_config_message(server_url: str) -> str:
    """Return the HTML page pointing users at the Apple configuration profiles."""
    url = _escape_html(server_url)
    return _page(
        "Apple configuration profiles",
        [
            "<p>Configuration profiles for the official Tailscale clients on "
            f"macOS set <code>{url}</code> as the control server.</p>",
            "<h3>Caution</h3>",
            "<p>Download and read the profile before installing it:</p>",
            _code_block(f"curl {url}/apple/macos"),
            "<h2>Profiles</h2>",
            "<h3>macOS</h3>",
            '<p><a href="/apple/macos" download="headscale_macos.mobileconfig">'
            "macOS profile</a></p>",
            _steps(
                [
                    "Download the profile and open it",
                    'Open System Preferences and go to "Profiles"',
                    "Install the Headscale profile",
                    "Restart Tailscale.app and log in",
                ]
            ),
            "<p>Alternatively, set the default from a terminal:</p>",
            _code_block(f"defaults write io.tailscale.ipn.macos ControlURL {url}"),
            "<p>Then restart Tailscale.app and log in.</p>",
        ],
    )


def apple_platform_config(server_url: str, platform: str) -> str:
    """Return a mobileconfig profile for ``platform`` ("macos" or "ios").

    Raises UnsupportedPlatform for any other platform.
    """
    if platform not in SUPPORTED_APPLE_PLATFORMS:
        raise UnsupportedPlatform()

    content = {
        "PayloadType": f"io.tailscale.ipn.{platform}",
        "PayloadUUID": str(uuid.uuid4()),
        "PayloadIdentifier": PAYLOAD_IDENTIFIER,
        "PayloadVersion": 1,
        "PayloadEnabled": True,
        "ControlURL": server_url,
    }
    profile = {
        "PayloadUUID": str(uuid.uuid4()),
        "PayloadDisplayName": "Headscale",
        "PayloadDescription": f"Configure Tailscale login server to: {server_url}",
        "PayloadIdentifier": PAYLOAD_IDENTIFIER,
        "PayloadRemovalDisallowed": False,
        "PayloadType": "Configuration",
        "PayloadVersion": 1,
        "PayloadContent": [content],
    }
    return plistlib.dumps(profile, fmt=plistlib.FMT_XML).decode("utf-8")