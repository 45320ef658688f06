"""
Clients the harness drives: the in-process reference and remote HTTP endpoints.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..fixtures_io import call_from_json, result_to_json, state_from_json, state_to_json
from ..registry import EscrowRegistry
from ..state_digest import compute_state_digest
from ..state_transition import apply_call
from .config import ClientConfig

logger = logging.getLogger(__name__)


class LocalClient:
    """Runs vectors against the Python reference implementation in-process."""

    def __init__(self, name: str):
        self.name = name
        self.registry: Optional[EscrowRegistry] = None

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def reset_state(self) -> bool:
        self.registry = None
        return True

    async def load_state(self, state: Dict[str, Any]) -> Optional[str]:
        self.registry = state_from_json(state)
        return await self.get_state_digest()

    async def get_state_digest(self) -> Optional[str]:
        if self.registry is None:
            return None
        return compute_state_digest(state_to_json(self.registry))

    async def execute_call(self, call: Dict[str, Any]) -> Dict[str, Any]:
        if self.registry is None:
            return {"ok": False, "error": "NO_STATE", "value": None}
        return result_to_json(apply_call(self.registry, call_from_json(call)))


class ConformanceClient:
    """Speaks the conformance HTTP protocol served by ``escrow-conformance serve``."""

    def __init__(self, config: ClientConfig):
        self.config = config
        self.name = config.name
        self.session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        self.session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def _request(
        self, method: str, path: str, body: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """JSON round trip; None when the endpoint is unreachable or not JSON."""
        if self.session is None:
            raise RuntimeError(f"{self.name}: connect() was not called")
        url = f"{self.config.endpoint}{path}"
        try:
            async with self.session.request(method, url, json=body) as resp:
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"[{self.name}] {method} {path} failed: {e}")
            return None

    async def reset_state(self) -> bool:
        data = await self._request("POST", "/state/reset")
        return bool(data and data.get("success"))

    async def load_state(self, state: Dict[str, Any]) -> Optional[str]:
        """Load a pre-state; returns its digest, or None if rejected."""
        data = await self._request("POST", "/state/load", state)
        if not data or not data.get("success"):
            return None
        return data.get("state_digest")

    async def get_state_digest(self) -> Optional[str]:
        data = await self._request("GET", "/state/digest")
        return data.get("state_digest") if data else None

    async def execute_call(self, call: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("POST", "/call/execute", call)
        if not data or not data.get("success"):
            error = data.get("error") if data else None
            return {"ok": False, "error": error or "REQUEST_FAILED", "value": None}
        return data["result"]
