"""
Configuration parameters for binwrapper, read from a binwrapper.toml file.

Example:

```toml
[tools.cwebp]
dest = "vendor/cwebp"
exec = "cwebp"
strip = 1
auto_exe = true
args = ["-quiet"]
timeout = 60

[[tools.cwebp.sources]]
url = "https://example.com/libwebp-1.3.2-linux-x86-64.tar.gz"
os = "linux"
arch = "amd64"
exec_path = "bin/cwebp"

[[tools.cwebp.sources]]
url = "https://example.com/libwebp-1.3.2-windows-x64.zip"
os = "win32"
exec_path = "bin/cwebp"
```
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib
except ModuleNotFoundError:
    # Python < 3.11
    import tomli as tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from binwrapper.binwrapper_exceptions import ConfigError
from binwrapper.source_models import Source

CONFIG_FILE_NAME = "binwrapper.toml"


class ToolConfig(BaseModel):
    """
    One wrapped binary as described in binwrapper.toml.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    sources: List[Source] = Field(default_factory=list)
    dest: str = Field("", description="Directory the binary is downloaded to")
    exec_name: str = Field(..., alias="exec", description="Executable name inside dest")
    strip: int = Field(0, ge=0, description="Wrapper directories to strip after extraction")
    auto_exe: bool = Field(False, description="Append .exe on Windows")
    args: List[str] = Field(default_factory=list)
    env: Optional[Dict[str, str]] = None
    timeout: Optional[float] = Field(None, gt=0, description="Timeout in seconds")
    debug: bool = False


@dataclass
class BinWrapperConfig:
    """Main configuration loaded from binwrapper.toml."""

    tools: Dict[str, ToolConfig] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any], base_dir: Optional[str] = None) -> "BinWrapperConfig":
        """
        Create a BinWrapperConfig from a dictionary (loaded from TOML).

        Args:
            config_dict: Dictionary loaded from binwrapper.toml
            base_dir: Directory relative dest paths are resolved against

        Returns:
            BinWrapperConfig instance

        Raises:
            ConfigError: If configuration is invalid
        """
        tools_section = config_dict.get("tools", {})
        if not isinstance(tools_section, dict):
            raise ConfigError("'tools' must be a table")

        tools = {}
        for name, tool_dict in tools_section.items():
            if not isinstance(tool_dict, dict):
                raise ConfigError(f"'tools.{name}' must be a table")
            try:
                tool = ToolConfig.model_validate(tool_dict)
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration for tool {name}: {e}") from e

            if base_dir and tool.dest and tool.dest != "." and not os.path.isabs(tool.dest):
                tool = tool.model_copy(update={"dest": os.path.join(base_dir, tool.dest)})
            tools[name] = tool

        return cls(tools=tools)

    @classmethod
    def load(cls, path: Path) -> "BinWrapperConfig":
        """
        Load and validate a binwrapper.toml file.

        Raises:
            ConfigError: If the file is missing or invalid.
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")

        try:
            with open(path, "rb") as f:
                toml_dict = tomllib.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e

        return cls.from_dict(toml_dict, base_dir=str(path.parent))

    def to_dict(self) -> Dict[str, Any]:
        """Convert BinWrapperConfig to dictionary representation."""
        return {
            "tools": {
                name: tool.model_dump(by_alias=True, exclude_none=True)
                for name, tool in self.tools.items()
            }
        }


def find_config_file(start_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Search for binwrapper.toml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to binwrapper.toml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        candidate = current / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent
