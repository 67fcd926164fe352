"""
Tests for type-prefixed sortable identifiers.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

import pytest

from app.core import typeid
from app.core.typeid import IdKind, ItemId, OAuthAccountId, SessionId, UserId


class TestGenerate:
    @pytest.mark.parametrize(
        "kind,prefix",
        [
            (IdKind.USER, "user_"),
            (IdKind.ITEM, "item_"),
            (IdKind.SESSION, "sess_"),
            (IdKind.OAUTH_ACCOUNT, "oauth_"),
        ],
    )
    def test_prefix_and_suffix_shape(self, kind, prefix):
        value = typeid.generate(kind)
        assert value.startswith(prefix)
        suffix = value[len(prefix):]
        assert len(suffix) == 26
        assert set(suffix) <= set(typeid.ALPHABET)

    def test_accepts_kind_name_as_string(self):
        assert typeid.generate("session").startswith("sess_")

    def test_unique(self):
        ids = {typeid.generate(IdKind.ITEM) for _ in range(2000)}
        assert len(ids) == 2000

    def test_sorts_in_creation_order(self):
        ids = [typeid.generate(IdKind.USER) for _ in range(500)]
        assert ids == sorted(ids)

    def test_sorts_across_milliseconds(self):
        first = typeid.generate(IdKind.USER)
        time.sleep(0.005)
        second = typeid.generate(IdKind.USER)
        assert first < second

    def test_timestamp_round_trip(self):
        before = datetime.now(timezone.utc) - timedelta(seconds=1)
        value = typeid.generate(IdKind.ITEM)
        after = datetime.now(timezone.utc) + timedelta(seconds=1)
        assert before <= typeid.get_timestamp(value) <= after


class TestIsValid:
    @pytest.mark.parametrize("kind", list(IdKind))
    def test_generated_ids_are_valid_for_their_kind_only(self, kind):
        value = typeid.generate(kind)
        assert typeid.is_valid(kind, value)
        for other in IdKind:
            if other != kind:
                assert not typeid.is_valid(other, value)

    def test_known_fixture_id(self):
        assert typeid.is_valid(IdKind.USER, "user_01h2xcejqtf2nbrexx3vqjhp41")

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "user_",
            "user",
            "_01h2xcejqtf2nbrexx3vqjhp41",
            "user_01h2xcejqtf2nbrexx3vqjhp4",     # 25 chars
            "user_01h2xcejqtf2nbrexx3vqjhp411",   # 27 chars
            "user_01h2xcejqtf2nbrexx3vqjhpi1",    # 'i' excluded
            "user_01h2xcejqtf2nbrexx3vqjhpu1",    # 'u' excluded
            "user_81h2xcejqtf2nbrexx3vqjhp41",    # overflows 128 bits
            "USER_01h2xcejqtf2nbrexx3vqjhp41",
            "user_01H2XCEJQTF2NBREXX3VQJHP41",
            "user_01h2xcejqtf2nbrexx3vqjhp41\n",
            "user-01h2xcejqtf2nbrexx3vqjhp41",
        ],
    )
    def test_rejects_malformed(self, value):
        assert not typeid.is_valid(IdKind.USER, value)

    @pytest.mark.parametrize("value", [None, 42, b"user_01h2xcejqtf2nbrexx3vqjhp41", ["x"]])
    def test_non_strings_do_not_raise(self, value):
        assert typeid.is_valid(IdKind.USER, value) is False

    def test_unknown_kind_is_false(self):
        assert typeid.is_valid("widget", typeid.generate(IdKind.USER)) is False


class TestTypedIds:
    def test_generate_returns_subclass_of_str(self):
        uid = UserId.generate()
        assert isinstance(uid, UserId)
        assert isinstance(uid, str)
        assert uid.startswith("user_")

    def test_construction_checks_prefix(self):
        item = typeid.generate(IdKind.ITEM)
        assert ItemId(item) == item
        with pytest.raises(ValueError):
            UserId(item)

    @pytest.mark.parametrize("cls", [UserId, ItemId, SessionId, OAuthAccountId])
    def test_is_valid_classmethod(self, cls):
        assert cls.is_valid(cls.generate())
        assert not cls.is_valid("nope")
