"""
MCP (Model Context Protocol) runner for binwrapper tools.

This module exposes the command line tools described in a `binwrapper.toml`
file as MCP tools using the fastmcp framework. Each configured tool becomes
callable by name: it is downloaded on first use if missing and then run with
the requested arguments.

Key points:
1. Uses fastmcp for standardized MCP tool management
2. Builds one BinWrapper per configured tool at startup and reuses it
3. Loads binwrapper.toml at initialization, with a fallback check at call time
"""

import json
import logging
import os
import threading
from typing import Dict, List, Optional

from fastmcp import FastMCP

from binwrapper.binwrapper import BinWrapper
from binwrapper.binwrapper_config import CONFIG_FILE_NAME, BinWrapperConfig
from binwrapper.binwrapper_exceptions import (
    BinWrapperException,
    ConfigError,
    ProcessExitError,
)
from binwrapper.binwrapper_logger import BinWrapperLogger


BINWRAPPER_TOML_SCHEMA = """
# binwrapper configuration for the MCP runner

# One table per tool, keyed by the name used to call it
[tools.mytool]
# Directory the binary is downloaded to (relative to this file)
dest = "vendor/mytool"
# Executable name inside dest
exec = "mytool"
# Wrapper directories to remove after extraction (optional)
# strip = 1
# Append .exe on Windows (optional)
# auto_exe = true
# Arguments always passed first (optional)
# args = ["--quiet"]
# Timeout in seconds (optional)
# timeout = 60

# Sources, most specific match for the platform wins
[[tools.mytool.sources]]
url = "https://example.com/mytool-linux-amd64.tar.gz"
os = "linux"
arch = "amd64"
"""


class MCPToolError(Exception):
    """Base exception for MCP tool errors."""

    pass


class ToolsNotConfiguredException(MCPToolError):
    """Exception raised when binwrapper.toml is not found or not configured."""

    pass


class MCPRunner:
    """
    MCP runner that exposes configured binwrapper tools using fastmcp.

    This class handles:
    - Loading and validating binwrapper.toml at initialization
    - Building one BinWrapper per tool (once, not per-request)
    - Per-tool fallback configuration checking

    Example usage:
    ```python
    runner = MCPRunner("/path/to/workspace")
    server = runner.create_mcp_server()
    server.run()
    ```
    """

    def __init__(self, workspace_root: Optional[str] = None):
        """
        Initialize the MCP runner.

        Args:
            workspace_root: Directory holding binwrapper.toml. If None, uses current directory.
        """
        self.workspace_root = workspace_root or os.getcwd()
        self.logger = BinWrapperLogger()
        self.config: Optional[BinWrapperConfig] = None
        self.wrappers: Dict[str, BinWrapper] = {}
        self._locks: Dict[str, threading.Lock] = {}

        self._try_load_config()

    @property
    def config_path(self) -> str:
        return os.path.join(self.workspace_root, CONFIG_FILE_NAME)

    def _try_load_config(self) -> bool:
        """
        Attempt to load binwrapper.toml, but don't fail if missing or invalid.

        Returns:
            True if the configuration is loaded
        """
        if self.config is not None:
            return True

        if not os.path.exists(self.config_path):
            return False

        try:
            config = BinWrapperConfig.load(self.config_path)
        except ConfigError as e:
            self.logger.log(
                f"Failed to load {CONFIG_FILE_NAME} from {self.config_path}", logging.ERROR, str(e)
            )
            return False

        self.config = config
        self.wrappers = {
            name: BinWrapper.from_tool_config(tool, self.logger)
            for name, tool in config.tools.items()
        }
        self._locks = {name: threading.Lock() for name in config.tools}
        self.logger.log(
            f"Loaded binwrapper configuration with tools: {sorted(config.tools)}",
            logging.INFO,
        )
        return True

    def get_configuration_error_message(self) -> str:
        return (
            f"No valid {CONFIG_FILE_NAME} found in {self.workspace_root}. "
            f"Create one following this schema:\n{BINWRAPPER_TOML_SCHEMA}"
        )

    def get_wrapper(self, name: str) -> BinWrapper:
        """
        Get the wrapper of a configured tool.

        Raises:
            ToolsNotConfiguredException: If no configuration could be loaded
            MCPToolError: If the tool is not configured
        """
        if not self._try_load_config():
            raise ToolsNotConfiguredException(self.get_configuration_error_message())

        wrapper = self.wrappers.get(name)
        if wrapper is None:
            raise MCPToolError(f"Unknown tool: {name}. Configured tools: {sorted(self.wrappers)}")
        return wrapper

    def list_tools(self) -> List[Dict[str, object]]:
        if not self._try_load_config():
            raise ToolsNotConfiguredException(self.get_configuration_error_message())

        return [
            {
                "name": name,
                "path": wrapper.path(),
                "args": list(wrapper.args()),
                "sources": len(wrapper.config.sources),
            }
            for name, wrapper in sorted(self.wrappers.items())
        ]

    def run_tool(self, name: str, args: Optional[List[str]] = None, stdin: Optional[str] = None) -> str:
        """
        Run a configured tool and report the result as JSON.

        Args:
            name: Tool name from binwrapper.toml
            args: Arguments appended to the configured ones
            stdin: Text written to the tool's standard input

        Returns:
            JSON with status, stdout, stderr, returncode and message
        """
        wrapper = self.get_wrapper(name)

        # Each wrapper keeps the output of its last run, so runs are serialized
        with self._locks[name]:
            if stdin is not None:
                wrapper.stdin(stdin)
            try:
                wrapper.run(*(args or []))
                status, message = "success", ""
            except ProcessExitError as e:
                status, message = "error", str(e)
            except BinWrapperException as e:
                self.logger.log(f"Tool {name} failed", logging.ERROR, str(e))
                status, message = "error", str(e)
            finally:
                if stdin is not None:
                    wrapper.stdin(None)

            return json.dumps(
                {
                    "status": status,
                    "stdout": wrapper.stdout().decode("utf-8", errors="replace"),
                    "stderr": wrapper.stderr().decode("utf-8", errors="replace"),
                    "returncode": wrapper.returncode,
                    "message": message,
                }
            )

    def create_mcp_server(self) -> FastMCP:
        """
        Create the fastmcp server exposing the configured tools.
        """
        server = FastMCP("binwrapper")

        @server.tool()
        def binwrapper_list_tools() -> str:
            """List the command line tools configured in binwrapper.toml."""
            try:
                return json.dumps({"status": "success", "tools": self.list_tools()})
            except ToolsNotConfiguredException as e:
                return json.dumps({"status": "error", "message": str(e)})

        @server.tool()
        def binwrapper_run_tool(name: str, args: Optional[List[str]] = None, stdin: Optional[str] = None) -> str:
            """Run a configured command line tool, downloading it first if needed.

            Args:
                name: Tool name from binwrapper.toml
                args: Extra command line arguments
                stdin: Text passed on standard input
            """
            try:
                return self.run_tool(name, args, stdin)
            except MCPToolError as e:
                return json.dumps({"status": "error", "message": str(e)})

        return server


def main() -> None:
    """Serve the tools of the binwrapper.toml in the current directory over stdio."""
    MCPRunner().create_mcp_server().run()


__all__ = [
    "MCPRunner",
    "MCPToolError",
    "ToolsNotConfiguredException",
    "BINWRAPPER_TOML_SCHEMA",
    "main",
]
