import string
from datetime import datetime, timedelta, timezone

import pytest

from meshctl.exceptions import PreAuthKeyACLTagInvalid
from meshctl.namespaces import Namespace
from meshctl.preauth_keys import PreAuthKey, generate_key, validate_acl_tags


def test_generate_key_length_and_alphabet():
    key = generate_key()
    assert len(key) == 48
    assert set(key) <= set(string.hexdigits.lower())


def test_generate_key_is_random():
    assert len({generate_key() for _ in range(20)}) == 20


def test_validate_acl_tags_rejects_malformed():
    with pytest.raises(PreAuthKeyACLTagInvalid) as info:
        validate_acl_tags(["badtag"])
    assert "badtag" in str(info.value)
    assert "AuthKey tag is invalid" in str(info.value)


def test_validate_acl_tags_removes_duplicates_in_order():
    tags = validate_acl_tags(["tag:test1", "tag:test2", "tag:test2"])
    assert tags == ["tag:test1", "tag:test2"]


def test_validate_acl_tags_empty():
    assert validate_acl_tags(None) == []


def test_is_expired_without_expiration():
    assert PreAuthKey(key="k").is_expired() is False


def test_is_expired_past_and_future():
    now = datetime.now(timezone.utc)
    assert PreAuthKey(expiration=now - timedelta(seconds=1)).is_expired(now) is True
    assert PreAuthKey(expiration=now + timedelta(hours=1)).is_expired(now) is False


def test_is_expired_at_exact_moment_is_not_expired():
    now = datetime.now(timezone.utc)
    assert PreAuthKey(expiration=now).is_expired(now) is False


def test_to_dict_carries_fields():
    created = datetime.now(timezone.utc)
    pak = PreAuthKey(
        id=5,
        key=generate_key(),
        namespace_id=2,
        namespace=Namespace(id=2, name="test8"),
        reusable=True,
        ephemeral=False,
        used=True,
        acl_tags=["tag:test1", "tag:test2"],
        created_at=created,
    )
    data = pak.to_dict()
    assert data["id"] == "5"
    assert data["namespace"] == "test8"
    assert data["key"] == pak.key
    assert data["reusable"] is True
    assert data["used"] is True
    assert data["acl_tags"] == ["tag:test1", "tag:test2"]
    assert data["expiration"] is None
    assert datetime.fromisoformat(data["created_at"]) == created


def test_to_dict_acl_tags_is_a_copy():
    pak = PreAuthKey(acl_tags=["tag:a"])
    data = pak.to_dict()
    data["acl_tags"].append("tag:b")
    assert pak.acl_tags == ["tag:a"]