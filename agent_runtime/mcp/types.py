"""
MCP server configuration and status types.

A server is reached over one of four transports:
- stdio: a subprocess speaking MCP on stdin/stdout
- sse / http: a remote server (SSE or streamable HTTP)
- sdk: an in-process server object (``FastMCP`` or a low-level ``Server``)
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class McpStdioConfig(BaseModel):
    type: Literal["stdio"] = "stdio"
    command: str = Field(..., description="Executable to launch")
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict, description="Added to the default environment")
    tool_prefix: Optional[str] = Field(None, description="Tool name prefix, defaults to the server name")


class McpSseConfig(BaseModel):
    type: Literal["sse"]
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    tool_prefix: Optional[str] = None


class McpHttpConfig(BaseModel):
    type: Literal["http"]
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    tool_prefix: Optional[str] = None


class McpSdkConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["sdk"] = "sdk"
    name: str
    instance: Any = Field(..., description="In-process MCP server object")
    tool_prefix: Optional[str] = None


McpServerConfig = McpStdioConfig | McpSseConfig | McpHttpConfig | McpSdkConfig


class McpToolInfo(BaseModel):
    name: str
    description: Optional[str] = None
    input_schema: Optional[dict[str, Any]] = None


class McpResourceInfo(BaseModel):
    server: str
    uri: str
    name: str
    description: Optional[str] = None
    mime_type: Optional[str] = None


class McpServerStatus(BaseModel):
    name: str
    status: Literal["connected", "failed", "pending", "disabled"]
    tools: list[McpToolInfo] = Field(default_factory=list)
    error: Optional[str] = None
