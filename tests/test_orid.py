#!/usr/bin/env python3

import pytest
from errors import InvalidIdentifierError
from orid import ORID, Orid


class TestOridParse:
    """Test decoding of v1 ORID strings"""

    def test_parse_container(self):
        orid = ORID.parse("orid:1:test-provider:::1001:fs:test-container")

        assert orid.provider == "test-provider"
        assert orid.account_id == "1001"
        assert orid.service == "fs"
        assert orid.resource_id == "test-container"
        assert orid.resource_rider is None
        assert orid.version == 1

    def test_parse_nested_rider(self):
        orid = ORID.parse("orid:1:test-provider:::1001:fs:test-resource/nested/test.txt")

        assert orid.resource_id == "test-resource"
        assert orid.resource_rider == "nested/test.txt"

    def test_parse_colon_rider_separator(self):
        orid = ORID.parse("orid:1:test-provider:::1001:fs:test-resource:nested/test.txt")

        assert orid.resource_id == "test-resource"
        assert orid.resource_rider == "nested/test.txt"

    def test_parse_keeps_colons_inside_rider(self):
        orid = ORID.parse("orid:1:p:::1001:fs:docs/a:b.txt")

        assert orid.resource_rider == "a:b.txt"

    def test_parse_empty_provider_and_custom_slots(self):
        orid = ORID.parse("orid:1::c1:c2:1:fs:Special")

        assert orid.provider == ""
        assert orid.custom1 == "c1"
        assert orid.custom2 == "c2"
        assert orid.account_id == "1"

    def test_parse_normalizes_rider(self):
        assert ORID.parse("orid:1:p:::1:fs:docs/").resource_rider is None
        assert ORID.parse("orid:1:p:::1:fs:docs/a//b/./c/").resource_rider == "a/b/c"

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "not-an-orid",
            "orid:1:p:::1:fs",
            "urn:1:p:::1:fs:docs",
            "orid:2:p:::1:fs:docs",
            "orid:1:p:::1::docs",
            "orid:1:p:::1:fs:",
            "orid:1:p:::1:fs:/docs",
            "orid:1:p:::1:fs:..",
            "orid:1:p:::1:fs:docs/../other",
            "orid:1:p:::1:fs:docs//etc/passwd",
            "orid:1:p:::1001/../1002:fs:docs",
            "orid:1:p:::..:fs:docs",
            "orid:1:p:::.:fs:docs",
        ],
    )
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(InvalidIdentifierError):
            ORID.parse(value)

    def test_is_valid(self):
        assert ORID.is_valid("orid:1:p:::1:fs:docs")
        assert not ORID.is_valid("docs")
        assert not ORID.is_valid("orid:1:p:::1:fs:docs/../../etc")


class TestOridGenerate:
    """Test encoding of Orid values"""

    def test_generate_container(self):
        orid = Orid(provider="test-provider", account_id="1001", resource_id="container1")

        assert ORID.generate(orid) == "orid:1:test-provider:::1001:fs:container1"

    def test_generate_always_uses_slash_separator(self):
        orid = ORID.parse("orid:1:p:::1001:fs:test-resource:nested/test-dir")

        assert ORID.generate(orid) == "orid:1:p:::1001:fs:test-resource/nested/test-dir"

    def test_empty_rider_serializes_like_absent_rider(self):
        with_empty = Orid(provider="p", account_id="1", resource_id="docs", resource_rider="")
        without = Orid(provider="p", account_id="1", resource_id="docs")

        assert ORID.generate(with_empty) == ORID.generate(without) == "orid:1:p:::1:fs:docs"
        assert with_empty == without

    def test_generate_rejects_unparseable_values(self):
        with pytest.raises(InvalidIdentifierError):
            ORID.generate(Orid(provider="p", account_id="1", resource_id=""))
        with pytest.raises(InvalidIdentifierError):
            ORID.generate(Orid(provider="p", account_id="1", resource_id="a/b"))
        with pytest.raises(InvalidIdentifierError):
            ORID.generate(Orid(provider="p:x", account_id="1", resource_id="docs"))
        with pytest.raises(InvalidIdentifierError, match="Invalid account id"):
            ORID.generate(Orid(provider="p", account_id="1001/../1002", resource_id="docs"))

    def test_rider_traversal_rejected_on_construction(self):
        with pytest.raises(InvalidIdentifierError, match="directory traversal"):
            Orid(provider="p", account_id="1", resource_id="docs", resource_rider="a/../../b")


class TestOridRoundTrip:
    """parse and generate are inverses of each other"""

    @pytest.mark.parametrize(
        "value",
        [
            "orid:1:test-provider:::1001:fs:test-container",
            "orid:1:test-provider:::1001:fs:test-resource/nested/test.txt",
            "orid:1::::1:fs:test-container/f1/f2/README.md",
            "orid:1:p:x:y:42:qs:5678",
        ],
    )
    def test_generate_parse_canonical(self, value):
        assert ORID.generate(ORID.parse(value)) == value

    def test_parse_generate_value(self):
        orid = Orid(provider="p", account_id="42", resource_id="docs", resource_rider="a/notes.txt")

        assert ORID.parse(ORID.generate(orid)) == orid

    def test_equality_ignores_custom_slots(self):
        assert ORID.parse("orid:1:p:a:b:1:fs:docs") == ORID.parse("orid:1:p:::1:fs:docs")

    def test_equality_compares_rider(self):
        assert ORID.parse("orid:1:p:::1:fs:docs/a") != ORID.parse("orid:1:p:::1:fs:docs/b")


class TestOridHelpers:
    def test_child_appends_to_rider(self):
        orid = Orid(provider="p", account_id="1", resource_id="docs")

        assert orid.child("a").resource_rider == "a"
        assert orid.child("a").child("b.txt").resource_rider == "a/b.txt"

    def test_with_rider_replaces_rider(self):
        orid = Orid(provider="p", account_id="1", resource_id="docs", resource_rider="x/y")

        assert orid.with_rider("terraform.lock").resource_rider == "terraform.lock"
        assert orid.with_rider(None).resource_rider is None
