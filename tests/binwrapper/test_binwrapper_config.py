"""
Tests for loading binwrapper.toml.
"""

import os

import pytest

from binwrapper.binwrapper_config import (
    CONFIG_FILE_NAME,
    BinWrapperConfig,
    ToolConfig,
    find_config_file,
)
from binwrapper.binwrapper_exceptions import ConfigError


SAMPLE_TOML = """
[tools.cwebp]
dest = "vendor/cwebp"
exec = "cwebp"
strip = 1
auto_exe = true
args = ["-quiet"]
timeout = 60

[[tools.cwebp.sources]]
url = "https://example.com/libwebp-linux-x86-64.tar.gz"
os = "linux"
arch = "amd64"
exec_path = "bin/cwebp"

[[tools.cwebp.sources]]
url = "https://example.com/libwebp-windows-x64.zip"
os = "win32"
execPath = "bin/cwebp"

[tools.echo]
exec = "echo"
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text(SAMPLE_TOML)
    return path


class TestLoad:
    """Tests for BinWrapperConfig.load."""

    def test_load(self, config_file, tmp_path):
        """Test that every tool table is parsed."""
        config = BinWrapperConfig.load(config_file)

        assert sorted(config.tools) == ["cwebp", "echo"]

        cwebp = config.tools["cwebp"]
        assert cwebp.exec_name == "cwebp"
        assert cwebp.strip == 1
        assert cwebp.auto_exe is True
        assert cwebp.args == ["-quiet"]
        assert cwebp.timeout == 60
        assert [s.os for s in cwebp.sources] == ["linux", "win32"]
        assert [s.exec_path for s in cwebp.sources] == ["bin/cwebp", "bin/cwebp"]

    def test_relative_dest_is_resolved_against_file(self, config_file, tmp_path):
        config = BinWrapperConfig.load(config_file)
        assert config.tools["cwebp"].dest == os.path.join(str(tmp_path), "vendor/cwebp")

    def test_defaults(self, config_file):
        echo = BinWrapperConfig.load(config_file).tools["echo"]
        assert echo.dest == ""
        assert echo.sources == []
        assert echo.env is None
        assert echo.timeout is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            BinWrapperConfig.load(tmp_path / CONFIG_FILE_NAME)

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / CONFIG_FILE_NAME
        path.write_text("[tools.broken\n")
        with pytest.raises(ConfigError):
            BinWrapperConfig.load(path)


class TestFromDict:
    """Tests for BinWrapperConfig.from_dict validation."""

    def test_absolute_and_dot_dest_kept(self):
        config = BinWrapperConfig.from_dict(
            {
                "tools": {
                    "a": {"exec": "a", "dest": "/opt/a"},
                    "b": {"exec": "b", "dest": "."},
                }
            },
            base_dir="/somewhere",
        )
        assert config.tools["a"].dest == "/opt/a"
        assert config.tools["b"].dest == "."

    def test_missing_exec(self):
        with pytest.raises(ConfigError):
            BinWrapperConfig.from_dict({"tools": {"a": {"dest": "bin"}}})

    def test_negative_strip(self):
        with pytest.raises(ConfigError):
            BinWrapperConfig.from_dict({"tools": {"a": {"exec": "a", "strip": -1}}})

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigError):
            BinWrapperConfig.from_dict({"tools": {"a": {"exec": "a", "timeout": 0}}})

    def test_unknown_key(self):
        with pytest.raises(ConfigError):
            BinWrapperConfig.from_dict({"tools": {"a": {"exec": "a", "unknown": 1}}})

    def test_tools_must_be_tables(self):
        with pytest.raises(ConfigError):
            BinWrapperConfig.from_dict({"tools": ["a"]})
        with pytest.raises(ConfigError):
            BinWrapperConfig.from_dict({"tools": {"a": "echo"}})

    def test_to_dict_uses_exec_alias(self):
        config = BinWrapperConfig(tools={"a": ToolConfig(exec_name="a")})
        assert config.to_dict()["tools"]["a"]["exec"] == "a"


class TestFindConfigFile:
    def test_finds_file_in_parent(self, config_file, tmp_path):
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == config_file.resolve()

    def test_not_found(self, tmp_path):
        # tmp_path has no binwrapper.toml, neither should its parents
        nested = tmp_path / "empty"
        nested.mkdir()
        found = find_config_file(nested)
        assert found is None or tmp_path.resolve() not in found.parents
