"""
HTTP conformance endpoint for the Python reference implementation.

Endpoints (JSON bodies, same shapes as the vector files):
    POST /state/reset    -> {"success": true}
    POST /state/load     -> {"success": true, "state_digest": "..."}
    GET  /state/digest   -> {"state_digest": "..."}
    GET  /state          -> exported state
    POST /call/execute   -> {"success": true, "result": {"ok", "error", "value"}}
"""

import logging
from typing import Any, Dict, Optional

from aiohttp import web

from ..errors import SpecError
from ..fixtures_io import call_from_json, result_to_json, state_from_json, state_to_json
from ..registry import EscrowRegistry
from ..state_digest import compute_state_digest
from ..state_transition import apply_call

logger = logging.getLogger(__name__)


class ReferenceEndpoint:
    """Holds the registry served by one app instance."""

    def __init__(self) -> None:
        self.registry: Optional[EscrowRegistry] = None

    def digest(self) -> Optional[str]:
        if self.registry is None:
            return None
        return compute_state_digest(state_to_json(self.registry))

    async def reset(self, request: web.Request) -> web.Response:
        self.registry = None
        return web.json_response({"success": True})

    async def load(self, request: web.Request) -> web.Response:
        try:
            data = await request.json()
            self.registry = state_from_json(data)
        except (SpecError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Load state failed: {e}")
            return web.json_response({"success": False, "error": str(e)}, status=400)
        return web.json_response({"success": True, "state_digest": self.digest()})

    async def state_digest(self, request: web.Request) -> web.Response:
        return web.json_response({"state_digest": self.digest()})

    async def state(self, request: web.Request) -> web.Response:
        if self.registry is None:
            return web.json_response({"error": "no state loaded"}, status=409)
        return web.json_response(state_to_json(self.registry))

    async def execute(self, request: web.Request) -> web.Response:
        if self.registry is None:
            return web.json_response(
                {"success": False, "error": "no state loaded"}, status=409
            )
        try:
            call = call_from_json(await request.json())
        except (ValueError, KeyError, TypeError) as e:
            return web.json_response({"success": False, "error": str(e)}, status=400)
        result = apply_call(self.registry, call)
        payload: Dict[str, Any] = {"success": True, "result": result_to_json(result)}
        return web.json_response(payload)


def create_app() -> web.Application:
    """Build the aiohttp application serving the reference implementation."""
    endpoint = ReferenceEndpoint()
    app = web.Application()
    app.router.add_post("/state/reset", endpoint.reset)
    app.router.add_post("/state/load", endpoint.load)
    app.router.add_get("/state/digest", endpoint.state_digest)
    app.router.add_get("/state", endpoint.state)
    app.router.add_post("/call/execute", endpoint.execute)
    return app
