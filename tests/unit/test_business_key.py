"""
Tests for business key generation and lookup.
"""

import re

import pytest

from agenda.core.exceptions import ValidationError
from agenda.services import business_key
from agenda.services.business_key import (
    find_business_by_key,
    generate_business_key,
    generate_unique_business_key,
    is_business_key_unique,
)
from fixtures.domain_fixtures import BUSINESS_KEY, business_doc


class TestGenerateKey:
    def test_format(self):
        for _ in range(20):
            assert re.fullmatch(r"[0-9A-F]{16}", generate_business_key())

    def test_unique_against_existing(self, store):
        store.write("businesses/b1", business_doc())
        assert is_business_key_unique(store, BUSINESS_KEY) is False
        assert is_business_key_unique(store, BUSINESS_KEY.lower()) is False
        assert is_business_key_unique(store, "0000000000000000") is True

    def test_retries_past_a_collision(self, store, monkeypatch):
        store.write("businesses/b1", business_doc())
        draws = iter([BUSINESS_KEY, "0123456789ABCDEF"])
        monkeypatch.setattr(business_key, "generate_business_key", lambda: next(draws))

        assert generate_unique_business_key(store) == "0123456789ABCDEF"

    def test_gives_up_after_ten_collisions(self, store, monkeypatch):
        store.write("businesses/b1", business_doc())
        calls = []

        def always_taken():
            calls.append(1)
            return BUSINESS_KEY

        monkeypatch.setattr(business_key, "generate_business_key", always_taken)

        with pytest.raises(ValidationError):
            generate_unique_business_key(store)
        assert len(calls) == 10


class TestFindBusinessByKey:
    def test_case_insensitive(self, store):
        store.write("businesses/b1", business_doc(name="Estudio Uno"))
        assert find_business_by_key(store, BUSINESS_KEY.lower()) == ("b1", "Estudio Uno")
        assert find_business_by_key(store, f"  {BUSINESS_KEY}  ") == ("b1", "Estudio Uno")

    def test_unknown_or_blank(self, store):
        store.write("businesses/b1", business_doc())
        assert find_business_by_key(store, "FFFFFFFFFFFFFFFF") is None
        assert find_business_by_key(store, "") is None
