"""Shelly-style frontend: net metering totals as virtual number components.

The totals are published as two persisted virtual numbers (Wh, shown as
labels) inside one virtual group, reachable over the Gen2 HTTP RPC endpoints
and the JSON-RPC WebSocket.
"""

import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from net_metering.frontends.base import Frontend
from net_metering.metering.meter import NetMeter
from net_metering.metering.models import NetMeteringState

logger = logging.getLogger(__name__)

# Shelly RPC error codes
ERR_INVALID_ARGUMENT = -105
ERR_METHOD_NOT_FOUND = -114


# ── Response builders ────────────────────────────────────────────────


def number_key(number_id: int) -> str:
    return f"number:{number_id}"


def group_key(group_id: int) -> str:
    return f"group:{group_id}"


def number_get_status(value_wh: float) -> dict[str, Any]:
    """Build Number.GetStatus response."""
    return {"value": round(value_wh, 3), "source": "net_metering"}


def number_get_config(number_id: int, name: str) -> dict[str, Any]:
    """Build Number.GetConfig response."""
    return {
        "id": number_id,
        "name": name,
        "min": 0,
        "max": None,
        "default_value": 0,
        "persisted": True,
        "meta": {"ui": {"view": "label", "unit": "Wh", "step": 1}},
    }


def group_get_status(members: list[str]) -> dict[str, Any]:
    """Build Group.GetStatus response."""
    return {"value": list(members)}


def group_get_config(group_id: int, name: str) -> dict[str, Any]:
    """Build Group.GetConfig response."""
    return {"id": group_id, "name": name, "meta": None}


def net_metering_get_status(state: NetMeteringState) -> dict[str, Any]:
    """Build NetMetering.GetStatus response (diagnostics)."""
    baseline = None
    if state.baseline is not None:
        baseline = {
            "total_act": state.baseline.total_import_wh,
            "total_act_ret": state.baseline.total_export_wh,
        }

    last_correction = None
    if state.last_correction is not None:
        c = state.last_correction
        last_correction = {
            "scale_factor": c.scale_factor,
            "ref_delta_wh": c.ref_delta_wh,
            "int_delta_wh": c.int_delta_wh,
            "imported_wh": c.imported_wh,
            "exported_wh": c.exported_wh,
            "persisted": c.persisted,
        }

    return {
        "imported_wh": round(state.energy.imported_wh, 3),
        "exported_wh": round(state.energy.exported_wh, 3),
        "window": {
            "imported_wh": state.window.imported_wh,
            "exported_wh": state.window.exported_wh,
        },
        "baseline": baseline,
        "changed_since_last_correction": bool(
            state.change and state.change.changed_since_last_correction
        ),
        "store_pending": state.store_pending,
        "last_correction": last_correction,
    }


def _rpc_error(code: int, message: str) -> dict[str, Any]:
    return {"code": code, "message": message}


# ── Frontend ─────────────────────────────────────────────────────────


class ShellyFrontend(Frontend):
    """Serves the net metering totals as Shelly virtual components."""

    def __init__(self, meter: NetMeter, config: dict) -> None:
        super().__init__(meter, config)
        self._import_id: int = config.get("import_id", 200)
        self._import_name: str = config.get("import_name", "Net Metered Energy")
        self._export_id: int = config.get("export_id", 201)
        self._export_name: str = config.get("export_name", "Net Metered Energy Return")
        self._group_id: int = config.get("group_id", 200)
        self._group_name: str = config.get("group_name", "Energy Net Metering")
        self._router = self._build_router()

    def get_router(self) -> APIRouter:
        return self._router

    @property
    def members(self) -> list[str]:
        return [number_key(self._import_id), number_key(self._export_id)]

    def _number_value(self, number_id: int) -> float | None:
        energy = self._meter.energy
        if number_id == self._import_id:
            return energy.imported_wh
        if number_id == self._export_id:
            return energy.exported_wh
        return None

    def _number_name(self, number_id: int) -> str | None:
        if number_id == self._import_id:
            return self._import_name
        if number_id == self._export_id:
            return self._export_name
        return None

    def _components(self) -> dict[str, Any]:
        components = []
        for number_id in (self._import_id, self._export_id):
            components.append(
                {
                    "key": number_key(number_id),
                    "status": number_get_status(self._number_value(number_id)),
                    "config": number_get_config(number_id, self._number_name(number_id)),
                }
            )
        components.append(
            {
                "key": group_key(self._group_id),
                "status": group_get_status(self.members),
                "config": group_get_config(self._group_id, self._group_name),
            }
        )
        return {
            "components": components,
            "cfg_rev": 0,
            "offset": 0,
            "total": len(components),
        }

    def _handle_rpc_method(self, method: str, params: dict[str, Any] | None) -> dict[str, Any]:
        """Dispatch an RPC method. Returns {"result": ...} or {"error": ...}."""
        params = params if isinstance(params, dict) else {}
        if method == "NetMetering.GetStatus":
            return {"result": net_metering_get_status(self._meter.state)}
        if method == "Shelly.GetComponents":
            return {"result": self._components()}

        if method in ("Number.GetStatus", "Number.GetConfig"):
            number_id = params.get("id")
            value = self._number_value(number_id)
            if value is None:
                return {
                    "error": _rpc_error(
                        ERR_INVALID_ARGUMENT, f"Argument 'id', value {number_id} not found!"
                    )
                }
            if method == "Number.GetStatus":
                return {"result": number_get_status(value)}
            return {"result": number_get_config(number_id, self._number_name(number_id))}

        if method in ("Group.GetStatus", "Group.GetConfig"):
            group_id = params.get("id")
            if group_id != self._group_id:
                return {
                    "error": _rpc_error(
                        ERR_INVALID_ARGUMENT, f"Argument 'id', value {group_id} not found!"
                    )
                }
            if method == "Group.GetStatus":
                return {"result": group_get_status(self.members)}
            return {"result": group_get_config(self._group_id, self._group_name)}

        return {
            "error": _rpc_error(ERR_METHOD_NOT_FOUND, f"Method {method} failed: Method not found!")
        }

    def _http_reply(self, method: str, params: dict[str, Any] | None = None) -> Any:
        reply = self._handle_rpc_method(method, params)
        if "error" in reply:
            return JSONResponse(status_code=404, content=reply["error"])
        return reply["result"]

    def _build_router(self) -> APIRouter:
        router = APIRouter()

        @router.get("/rpc/Number.GetStatus")
        async def number_status(id: int):
            """Current value of a net metering number."""
            return self._http_reply("Number.GetStatus", {"id": id})

        @router.get("/rpc/Number.GetConfig")
        async def number_config(id: int):
            return self._http_reply("Number.GetConfig", {"id": id})

        @router.get("/rpc/Group.GetStatus")
        async def group_status(id: int):
            return self._http_reply("Group.GetStatus", {"id": id})

        @router.get("/rpc/Group.GetConfig")
        async def group_config(id: int):
            return self._http_reply("Group.GetConfig", {"id": id})

        @router.get("/rpc/Shelly.GetComponents")
        async def get_components():
            """All virtual components with status and config."""
            return self._http_reply("Shelly.GetComponents")

        @router.get("/rpc/NetMetering.GetStatus")
        async def net_metering_status():
            """Totals plus window, baseline and last correction."""
            return self._http_reply("NetMetering.GetStatus")

        @router.websocket("/rpc")
        async def websocket_rpc(ws: WebSocket):
            """Shelly Gen2 JSON-RPC 2.0 over WebSocket."""
            await ws.accept()
            logger.info("WebSocket /rpc: client connected")
            try:
                while True:
                    msg = await ws.receive_json()
                    method = msg.get("method", "")
                    msg_id = msg.get("id")
                    src = msg.get("src", "")

                    logger.debug("WebSocket RPC: method=%s id=%s src=%s", method, msg_id, src)

                    response = {"id": msg_id, "src": "net-metering", "dst": src}
                    response.update(self._handle_rpc_method(method, msg.get("params")))
                    await ws.send_json(response)
            except WebSocketDisconnect:
                logger.info("WebSocket /rpc: client disconnected")

        return router
