"""Tests for configuration keys and configuration maps."""

from __future__ import annotations

import pytest

from solbuild.core.errors import ConfigurationError
from solbuild.core.models import (
    CompileResult,
    ConfigurationKey,
    ConfigurationMap,
    UnitConfiguration,
    UnitStatus,
)


class TestConfigurationKey:
    def test_parse_name_and_platform(self):
        key = ConfigurationKey.parse("Release|x64")
        assert key == ConfigurationKey("Release", "x64")

    def test_parse_name_only(self):
        """Missing platform is the empty string."""
        key = ConfigurationKey.parse("Debug")
        assert key.name == "Debug"
        assert key.platform == ""

    def test_parse_strips_whitespace(self):
        assert ConfigurationKey.parse(" Release | Any CPU ") == ConfigurationKey("Release", "Any CPU")

    @pytest.mark.parametrize("text", ["", "|x64", "a|b|c"])
    def test_parse_malformed(self, text):
        with pytest.raises(ConfigurationError):
            ConfigurationKey.parse(text)

    def test_str_round_trip(self):
        assert str(ConfigurationKey("Release", "x64")) == "Release|x64"
        assert str(ConfigurationKey("Release")) == "Release"

    def test_equality_is_exact(self):
        assert ConfigurationKey("Release", "x64") != ConfigurationKey("release", "x64")
        assert ConfigurationKey("Release", "x64") != ConfigurationKey("Release", "X64")

    def test_same_name_is_case_insensitive(self):
        assert ConfigurationKey("Release", "x64").same_name(ConfigurationKey("RELEASE", "AnyCPU"))

    def test_hashable(self):
        keys = {ConfigurationKey("Debug", "x86"), ConfigurationKey("Debug", "x86")}
        assert len(keys) == 1


class TestConfigurationMap:
    def test_duplicate_key_rejected(self):
        configs = ConfigurationMap()
        configs.add("Debug|AnyCPU", 1)
        with pytest.raises(ConfigurationError, match="Duplicate"):
            configs.add(ConfigurationKey("Debug", "AnyCPU"), 2)

    def test_same_name_different_platform_allowed(self):
        configs = ConfigurationMap({"Debug|x86": 1, "Debug|x64": 2})
        assert len(configs) == 2

    def test_exact_lookup_wins(self):
        configs = ConfigurationMap({"Release|x86": "a", "Release|x64": "b"})
        key, value = configs.lookup(ConfigurationKey("Release", "x64"))
        assert key == ConfigurationKey("Release", "x64")
        assert value == "b"

    def test_name_fallback_takes_first_in_order(self):
        configs = ConfigurationMap({"Release|x86": "a", "Release|x64": "b"})
        key, value = configs.lookup(ConfigurationKey("release", "ARM"))
        assert value == "a"

    def test_name_fallback_must_be_requested(self):
        configs = ConfigurationMap({"Release|AnyCPU": "a"})
        assert configs.lookup(ConfigurationKey("Release", "x64"), allow_name_fallback=False) is None
        assert configs.get(ConfigurationKey("Release", "x64")) is None

    def test_no_match(self):
        configs = ConfigurationMap({"Release|AnyCPU": "a"})
        assert configs.lookup(ConfigurationKey("Debug", "AnyCPU")) is None

    def test_preserves_insertion_order(self):
        configs = ConfigurationMap({"B": 1, "A": 2, "C": 3})
        assert [k.name for k in configs] == ["B", "A", "C"]


class TestEnums:
    def test_compile_result_succeeded(self):
        assert CompileResult.SUCCESS.succeeded
        assert CompileResult.SUCCESS_OUTPUT_UPDATED.succeeded
        assert not CompileResult.FAILED.succeeded

    def test_terminal_statuses(self):
        terminal = {s for s in UnitStatus if s.terminal}
        assert terminal == {UnitStatus.DONE, UnitStatus.FAILED, UnitStatus.SKIPPED}


def test_unit_configuration_parses_key():
    config = UnitConfiguration("Release|x64")
    assert config.key == ConfigurationKey("Release", "x64")
    assert config.output_dir == "bin/$(ConfigurationName)"
