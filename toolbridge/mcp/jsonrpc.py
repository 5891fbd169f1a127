"""JSON-RPC 2.0 client: id assignment, timeout racing, and error mapping."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

from toolbridge.errors import MCPConnectionError, MCPError, MCPProtocolError, MCPTimeoutError
from toolbridge.mcp.models import JSONRPCRequest, JSONRPCResponse
from toolbridge.mcp.transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0


def _consume_outcome(future: "asyncio.Future[Any]") -> None:
    if not future.cancelled():
        future.exception()


class JSONRPCClient:
    """
    Issues requests over a Transport.

    Ids are strictly increasing integers per client, starting at 1. Each
    request races the transport round trip against ``timeout`` seconds; the
    losing round trip is cancelled, never awaited.
    """

    def __init__(self, transport: Transport, timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self.transport = transport
        self.timeout = timeout
        self._ids = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    async def request(self, method: str, params: Any = None) -> Any:
        """
        Send ``method`` and return the response ``result``.

        Raises:
            MCPTimeoutError: No response within ``timeout`` seconds.
            MCPConnectionError: The transport failed.
            MCPProtocolError: The server answered with an error envelope.
        """
        response = await self.send(method, params)
        if response.error is not None:
            error = response.error
            raise MCPProtocolError(
                f"{method} failed: {error.message} (code: {error.code})",
                code=error.code,
                remote_message=error.message,
                data=error.data,
            )
        return response.result

    async def send(self, method: str, params: Any = None) -> JSONRPCResponse:
        """Round trip without interpreting the error envelope."""
        request = JSONRPCRequest(method=method, params=params, id=self.next_id())
        logger.debug(f"-> {method} (id {request.id})")
        round_trip = asyncio.ensure_future(self.transport.send(request))
        round_trip.add_done_callback(_consume_outcome)
        try:
            done, _ = await asyncio.wait({round_trip}, timeout=self.timeout)
        finally:
            if not round_trip.done():
                round_trip.cancel()

        if not done:
            raise MCPTimeoutError(f"MCP request '{method}' timed out", self.timeout)
        if round_trip.cancelled():
            raise MCPConnectionError(f"MCP request '{method}' was cancelled by the transport")

        error = round_trip.exception()
        if isinstance(error, MCPError):
            raise error
        if error is not None:
            raise MCPConnectionError(f"Failed to send MCP request '{method}': {error}", cause=error)

        response = round_trip.result()
        if isinstance(response, JSONRPCResponse):
            return response
        try:
            return JSONRPCResponse.model_validate(response)
        except ValueError as exc:
            raise MCPProtocolError(f"Malformed response to '{method}': {exc}") from exc

    async def notify(self, method: str, params: Any = None) -> None:
        """Send a notification if the transport supports them."""
        notify = getattr(self.transport, "notify", None)
        if notify is None:
            return
        try:
            await notify(method, params)
        except MCPError:
            raise
        except Exception as exc:
            raise MCPConnectionError(f"Failed to send MCP notification '{method}': {exc}", cause=exc)
