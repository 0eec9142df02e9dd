"""
Unit tests for the public key allow-list check.
"""

from __future__ import annotations

from hmac import compare_digest
from unittest.mock import patch

import pytest

from certdist.domain.authorization import authorize, is_authorized
from certdist.result import ErrorCode
from tests.conftest import assert_failure, assert_success

KEYS = ["age1aaa", "age1bbb", "age1ccc"]


class TestIsAuthorized:
    @pytest.mark.parametrize(("candidate", "allow_list", "expected"), [
        ("age1aaa", KEYS, True),
        ("age1ccc", KEYS, True),
        ("age1zzz", KEYS, False),
        ("age1aa", KEYS, False),
        ("age1aaaa", KEYS, False),
        ("", KEYS, False),
        ("age1aaa", [], False),
        ("", [""], True),
    ])
    def test_truth_table(self, candidate: str, allow_list: list[str], expected: bool) -> None:
        assert is_authorized(candidate, allow_list) is expected

    @pytest.mark.parametrize("candidate", ["age1aaa", "age1bbb", "age1ccc", "age1zzz"])
    def test_compares_against_every_entry(self, candidate: str) -> None:
        """
        GIVEN an allow-list of three keys
        WHEN a key matching the first, middle, last or no entry is checked
        THEN exactly three comparisons run in every case.
        """
        with patch(
            "certdist.domain.authorization.compare_digest", wraps=compare_digest
        ) as spy:
            is_authorized(candidate, KEYS)
        assert spy.call_count == len(KEYS)


class TestAuthorize:
    def test_listed_key_succeeds(self) -> None:
        assert assert_success(authorize("age1bbb", KEYS)) == "age1bbb"

    def test_unlisted_key_fails(self) -> None:
        error = assert_failure(authorize("age1zzz", KEYS), ErrorCode.AUTHORIZATION_ERROR)
        assert error.message == "Public key not authorized"
