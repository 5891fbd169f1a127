"""Wire models for JSON-RPC 2.0 and the MCP tool methods."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class JSONRPCRequest(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Any = None
    id: Union[int, str]


class JSONRPCNotification(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Any = None


class JSONRPCErrorDetail(BaseModel):
    code: int
    message: str
    data: Any = None


class JSONRPCResponse(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    result: Any = None
    error: Optional[JSONRPCErrorDetail] = None
    id: Union[int, str, None] = None


class MCPToolDefinition(BaseModel):
    """A tool as advertised by ``tools/list``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    description: Optional[str] = None
    input_schema: Optional[Dict[str, Any]] = Field(default=None, alias="inputSchema")


class MCPToolResult(BaseModel):
    """Result of ``tools/call``; ``content`` is passed through untouched."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content: Any = None
    is_error: Optional[bool] = Field(default=None, alias="isError")


class MCPToolList(BaseModel):
    tools: List[MCPToolDefinition] = Field(default_factory=list)
