"""Tests for roadmap.lib.ids module."""

import logging

from roadmap.lib.ids import epic_of, is_requirement_id, is_story_id, next_code, slugify, sort_key


class TestIds:
    def test_epic_of(self):
        assert epic_of("E12.S3") == "E12"
        assert epic_of("E1.R2") == "E1"
        assert epic_of("S3") is None
        assert epic_of("E1.X3") is None

    def test_predicates(self):
        assert is_story_id("E1.S10")
        assert not is_story_id("E1.S")
        assert is_requirement_id("E3.R01")

    def test_sort_key_numeric(self):
        assert sorted(["E10", "E2", "E1"], key=sort_key) == ["E1", "E2", "E10"]
        assert sorted(["E1.S10", "E1.S9"], key=sort_key) == ["E1.S9", "E1.S10"]


class TestNextCode:
    def test_first_and_max_plus_one(self):
        assert next_code("M", []) == "M1"
        assert next_code("E1.S", ["E1.S1", "E1.S5", "E1.S2"]) == "E1.S6"

    def test_other_scopes_ignored(self):
        assert next_code("E1.S", ["E2.S9", "E1.S1"]) == "E1.S2"

    def test_malformed_codes_warn(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert next_code("E", ["E1", "Ebad"]) == "E2"
        assert "Malformed code" in caplog.text


class TestSlugify:
    def test_slug(self):
        assert slugify("User Authentication & SSO!") == "user-authentication-sso"
        assert slugify("x" * 50) == "x" * 30
