import plistlib
import uuid

import pytest

from meshctl.exceptions import HeadscaleError
from meshctl.platform_config import (
    PAYLOAD_IDENTIFIER,
    UnsupportedPlatform,
    apple_config_message,
    apple_platform_config,
    windows_config_message,
    windows_reg_config,
)

SERVER_URL = "https://headscale.example.com"


def _load(profile: str) -> dict:
    return plistlib.loads(profile.encode("utf-8"))


def test_windows_reg_config_starts_with_editor_header():
    content = windows_reg_config(SERVER_URL)
    assert content.splitlines()[0] == "Windows Registry Editor Version 5.00"


def test_windows_reg_config_sets_login_url_verbatim():
    url = "https://example.com/a?b=1&c=2"
    content = windows_reg_config(url)
    assert f'"LoginURL"="{url}"' in content
    assert '"UnattendedMode"="always"' in content


def test_windows_config_message_contains_url():
    page = windows_config_message(SERVER_URL)
    assert f"<code>{SERVER_URL}</code>" in page
    assert f"curl {SERVER_URL}/windows/tailscale.reg" in page


def test_windows_config_message_escapes_html():
    page = windows_config_message("https://example.com/<x>&y")
    assert "<x>" not in page
    assert "https://example.com/&lt;x&gt;&amp;y" in page


def test_apple_config_message_contains_url_and_escapes():
    page = apple_config_message(SERVER_URL)
    assert f"defaults write io.tailscale.ipn.macos ControlURL {SERVER_URL}" in page
    escaped = apple_config_message("https://example.com/?a=1&b=2")
    assert "a=1&amp;b=2" in escaped


@pytest.mark.parametrize("platform", ["macos", "ios"])
def test_apple_platform_config_is_valid_plist(platform):
    profile = _load(apple_platform_config(SERVER_URL, platform))
    assert profile["PayloadType"] == "Configuration"
    assert profile["PayloadIdentifier"] == PAYLOAD_IDENTIFIER
    assert profile["PayloadDescription"] == f"Configure Tailscale login server to: {SERVER_URL}"
    assert len(profile["PayloadContent"]) == 1
    content = profile["PayloadContent"][0]
    assert content["PayloadType"] == f"io.tailscale.ipn.{platform}"
    assert content["ControlURL"] == SERVER_URL
    assert content["PayloadEnabled"] is True


@pytest.mark.parametrize("platform", ["macos", "ios"])
def test_apple_platform_config_uuids_are_distinct(platform):
    profile = _load(apple_platform_config(SERVER_URL, platform))
    outer = uuid.UUID(profile["PayloadUUID"])
    inner = uuid.UUID(profile["PayloadContent"][0]["PayloadUUID"])
    assert outer != inner


def test_apple_platform_config_fresh_uuid_each_call():
    first = _load(apple_platform_config(SERVER_URL, "macos"))
    second = _load(apple_platform_config(SERVER_URL, "macos"))
    assert first["PayloadUUID"] != second["PayloadUUID"]


def test_macos_payload_url_round_trips_through_escaping():
    url = "https://example.com/?a=1&b=2"
    profile = _load(apple_platform_config(url, "macos"))
    assert profile["PayloadContent"][0]["ControlURL"] == url


@pytest.mark.parametrize("platform", ["windows", "", "MACOS"])
def test_apple_platform_config_rejects_other_platforms(platform):
    with pytest.raises(UnsupportedPlatform) as info:
        apple_platform_config(SERVER_URL, platform)
    assert str(info.value) == "Invalid platform, only ios and macos is supported"


def test_unsupported_platform_is_a_value_error():
    with pytest.raises(ValueError):
        apple_platform_config(SERVER_URL, "android")
    with pytest.raises(HeadscaleError):
        apple_platform_config(SERVER_URL, "android")