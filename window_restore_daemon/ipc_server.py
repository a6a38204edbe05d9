"""
IPC Server for the window restore daemon

JSON-RPC 2.0 over a Unix socket, one request object per line.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import SOCKET_PATH
from .engine import WindowRestoreEngine
from .errors import ErrorCode, WindowRestoreError, error_response
from .models import SystemDidWake, SystemWillSleep, TopologyChanged

logger = logging.getLogger(__name__)

METHODS = (
    "ping", "status", "save", "restore", "clear", "select_slot",
    "pause", "resume", "privacy", "sleep", "wake", "topology_changed",
)


class IPCServer:
    """JSON-RPC IPC server exposing the engine's operations."""

    def __init__(self, engine: WindowRestoreEngine, socket_path: Path = SOCKET_PATH):
        """
        Args:
            engine: Running WindowRestoreEngine
            socket_path: Unix socket location
        """
        self.engine = engine
        self.socket_path = socket_path
        self.server: Optional[asyncio.AbstractServer] = None

    async def start(self) -> None:
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        if self.socket_path.exists():
            self.socket_path.unlink()

        self.server = await asyncio.start_unix_server(self._handle_client, path=str(self.socket_path))
        logger.info(f"IPC server listening on {self.socket_path}")

    async def stop(self) -> None:
        if self.server:
            self.server.close()
            await self.server.wait_closed()
        if self.socket_path.exists():
            self.socket_path.unlink()
        logger.info("IPC server stopped")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            while True:
                data = await reader.readline()
                if not data:
                    break

                try:
                    request = json.loads(data.decode())
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    response = error_response(None, WindowRestoreError(
                        code=ErrorCode.PARSE_ERROR,
                        message=f"Invalid JSON: {e}",
                    ))
                else:
                    response = await self.handle_request(request)

                writer.write((json.dumps(response) + "\n").encode())
                await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug(f"Client connection dropped: {e}")
        finally:
            writer.close()
            await writer.wait_closed()

    async def handle_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Dispatch one JSON-RPC request.

        Args:
            request: JSON-RPC request dict

        Returns:
            JSON-RPC response dict
        """
        method = request.get("method") if isinstance(request, dict) else None
        params = (request.get("params") or {}) if isinstance(request, dict) else {}
        request_id = request.get("id") if isinstance(request, dict) else None

        try:
            if not method:
                raise WindowRestoreError(
                    code=ErrorCode.INVALID_REQUEST,
                    message="Missing 'method' field in request",
                )
            if not isinstance(params, dict):
                raise WindowRestoreError(
                    code=ErrorCode.INVALID_PARAMS,
                    message="'params' must be an object",
                )
            handler = getattr(self, f"_handle_{method}", None) if method in METHODS else None
            if handler is None:
                raise WindowRestoreError(
                    code=ErrorCode.METHOD_NOT_FOUND,
                    message=f"Method not found: {method}",
                    context={"available_methods": list(METHODS)},
                )

            result = await handler(params)
            return {"jsonrpc": "2.0", "result": result, "id": request_id}

        except WindowRestoreError as e:
            logger.warning(f"{method}: {e.message}")
            return error_response(request_id, e)

        except Exception as e:
            logger.error(f"Unexpected error handling {method}: {e}", exc_info=True)
            return error_response(request_id, e)

    @staticmethod
    def _slot_param(params: Dict[str, Any], default: Optional[int] = None) -> int:
        slot = params.get("slot", default)
        if slot is None:
            raise WindowRestoreError(
                code=ErrorCode.INVALID_PARAMS,
                message="Missing 'slot' parameter",
            )
        return slot

    async def _handle_ping(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"status": "ok", "daemon": "window-restore-daemon"}

    async def _handle_status(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self.engine.status()

    async def _handle_save(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return await self.engine.save_slot(self._slot_param(params, self.engine.active_slot))

    async def _handle_restore(self, params: Dict[str, Any]) -> Dict[str, Any]:
        outcome = await self.engine.restore_slot(self._slot_param(params, self.engine.active_slot))
        return outcome.to_dict()

    async def _handle_clear(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if params.get("all"):
            self.engine.clear_all()
            return {"cleared": "all"}
        slot = self._slot_param(params, self.engine.active_slot)
        self.engine.clear_slot(slot)
        return {"cleared": slot}

    async def _handle_select_slot(self, params: Dict[str, Any]) -> Dict[str, Any]:
        slot = self._slot_param(params)
        self.engine.select_slot(slot)
        return {"active_slot": slot}

    async def _handle_pause(self, params: Dict[str, Any]) -> Dict[str, Any]:
        duration = params.get("duration")
        if duration is not None and (isinstance(duration, bool)
                                     or not isinstance(duration, (int, float)) or duration <= 0):
            raise WindowRestoreError(
                code=ErrorCode.INVALID_PARAMS,
                message="'duration' must be a positive number of seconds",
            )
        self.engine.pause.pause(duration)
        return {"paused": True, "remaining": self.engine.pause.remaining}

    async def _handle_resume(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.engine.pause.resume()
        return {"paused": False}

    async def _handle_privacy(self, params: Dict[str, Any]) -> Dict[str, Any]:
        enabled = params.get("enabled")
        if not isinstance(enabled, bool):
            raise WindowRestoreError(
                code=ErrorCode.INVALID_PARAMS,
                message="'enabled' must be true or false",
            )
        self.engine.set_privacy_mode(enabled)
        return {"privacy_mode": self.engine.store.persistence_disabled}

    async def _handle_sleep(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.engine.post(SystemWillSleep())
        return {"queued": "sleep"}

    async def _handle_wake(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.engine.post(SystemDidWake())
        return {"queued": "wake"}

    async def _handle_topology_changed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.engine.post(TopologyChanged())
        return {"queued": "topology_changed"}
