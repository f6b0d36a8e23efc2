"""
Device, node and away-status operations.
Handles the REST side of the HJM API, including the one-shot
stale-token retry.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from .auth import HelkiTokenManager
from .constants import (
    AWAY_STATUS,
    DEFAULT_UNITS,
    DEVICES,
    HDR_AUTHORIZATION,
    HTTP_401_UNAUTHORIZED,
    HTTP_429_TOO_MANY_REQUESTS,
    NODE_STATUS,
    NODES,
)
from .exceptions import (
    HelkiAPIError,
    HelkiAuthError,
    HelkiRateLimited,
)
from .session import HelkiResponse, HelkiSession

_LOGGER = logging.getLogger(__name__)


@dataclass
class Device:
    """SmartBox gateway registered on the account"""
    dev_id: str
    name: str
    product_id: str | None = None
    fw_version: str | None = None
    serial_id: str | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "Device":
        return cls(
            dev_id=data["dev_id"],
            name=data.get("name", ""),
            product_id=data.get("product_id"),
            fw_version=data.get("fw_version"),
            serial_id=data.get("serial_id"),
        )


@dataclass
class Node:
    """
    Heater, thermostat or accumulator behind a gateway.

    Types: htr, thm, acm, htr_mod, pmo
    """
    addr: int
    name: str
    type: str
    installed: bool | None = None
    lost: bool | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "Node":
        return cls(
            addr=int(data["addr"]),
            name=data.get("name", ""),
            type=data["type"],
            installed=data.get("installed"),
            lost=data.get("lost"),
        )


@dataclass
class NodeStatus:
    """
    Node status with numeric temperatures.

    The API sends temperatures as strings ("21.5"). Every field is
    optional: None means the field was absent, not that it is false.
    """
    stemp: float | None = None
    mtemp: float | None = None
    mode: str | None = None
    active: bool | None = None
    units: str | None = None
    locked: bool | None = None
    presence: bool | None = None
    window_open: bool | None = None
    boost: bool | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def to_payload(self) -> dict[str, Any]:
        """
        Build the partial-update body for POST .../status.

        Only fields that are set are included. Temperatures go out as
        one-decimal strings together with their units.
        """
        payload: dict[str, Any] = {}
        if self.stemp is not None:
            payload["stemp"] = _format_temp(self.stemp)
        if self.mtemp is not None:
            payload["mtemp"] = _format_temp(self.mtemp)
        if self.mode is not None:
            payload["mode"] = self.mode
        if self.active is not None:
            payload["active"] = self.active
        if "stemp" in payload or "mtemp" in payload:
            payload["units"] = self.units or DEFAULT_UNITS
        return payload


@dataclass
class AwayStatus:
    away: bool
    enabled: bool
    forced: bool | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "AwayStatus":
        return cls(
            away=bool(data.get("away", False)),
            enabled=bool(data.get("enabled", False)),
            forced=data.get("forced"),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"away": self.away, "enabled": self.enabled}
        if self.forced is not None:
            payload["forced"] = self.forced
        return payload


# ---------- parsing ----------

_BOOL_FIELDS = ("active", "locked", "presence", "window_open", "boost")


def _parse_temp(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        _LOGGER.debug("Unparseable temperature: %r", value)
        return None


def _format_temp(value: float) -> str:
    return f"{float(value):.1f}"


def _from_mapping(cls, data: Mapping[str, Any]):
    known = {f.name for f in fields(cls) if f.name != "raw"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} fields: {', '.join(unknown)}")
    try:
        return cls(**dict(data))
    except TypeError as err:
        raise ValueError(f"Invalid {cls.__name__} fields: {err}") from err


def parse_node_status(raw: Mapping[str, Any] | None) -> NodeStatus:
    """Convert a raw (possibly partial) status mapping into a NodeStatus."""
    raw = dict(raw or {})
    status = NodeStatus(raw=raw)
    if "stemp" in raw:
        status.stemp = _parse_temp(raw["stemp"])
    if "mtemp" in raw:
        status.mtemp = _parse_temp(raw["mtemp"])
    if "mode" in raw:
        status.mode = raw["mode"]
    if "units" in raw:
        status.units = raw["units"]
    for name in _BOOL_FIELDS:
        if name in raw:
            setattr(status, name, raw[name])
    return status


def extract_node_status(
    update: Mapping[str, Any] | None, node_type: str, node_addr: int
) -> NodeStatus | None:
    """
    Pick one node's status out of a realtime ``update`` payload.

    Returns None when the update carries nothing for that node.
    """
    if not update:
        return None
    for node in update.get("nodes") or []:
        try:
            addr = int(node.get("addr"))
        except (TypeError, ValueError):
            continue
        if addr == int(node_addr) and node.get("type") == node_type:
            if node.get("status") is None:
                return None
            return parse_node_status(node["status"])
    return None


class HelkiDevices:
    def __init__(self, session: HelkiSession, token_manager: HelkiTokenManager):
        self._session = session
        self._tokens = token_manager

    # ---------- request plumbing ----------

    async def _send(self, method: str, url: str, token: str, body: Any) -> HelkiResponse:
        headers = {HDR_AUTHORIZATION: f"Bearer {token}"}
        return await self._session.request(method, url, headers=headers, json=body)

    async def _request(self, method: str, url: str, body: Any = None) -> Any:
        """
        Send an authenticated request and return the decoded body.

        A 401 invalidates the token, refreshes it and replays the request
        once. Concurrent 401s share the token manager's single refresh.
        """
        token = await self._tokens.get_token()
        resp = await self._send(method, url, token, body)

        if resp.status == HTTP_401_UNAUTHORIZED:
            _LOGGER.info("%s %s returned 401, refreshing token and retrying once", method, url)
            self._tokens.invalidate()
            token = await self._tokens.refresh()
            resp = await self._send(method, url, token, body)

        if resp.status == HTTP_401_UNAUTHORIZED:
            raise HelkiAuthError("Invalid credentials. Check your HJM app login.")
        if resp.status == HTTP_429_TOO_MANY_REQUESTS:
            raise HelkiRateLimited("Too many requests. Please wait a moment.")
        if not resp.ok:
            raise HelkiAPIError(
                f"HJM API error: {method} {url} failed: {resp.status} - {resp.text[:200]}",
                resp.status,
            )
        return resp.json()

    @staticmethod
    def _unwrap(data: Any, key: str, parse) -> list:
        if not isinstance(data, dict) or not isinstance(data.get(key), list):
            raise HelkiAPIError(f"Unexpected response, missing '{key}' list")
        try:
            return [parse(item) for item in data[key]]
        except (KeyError, TypeError, ValueError) as err:
            raise HelkiAPIError(f"Malformed '{key}' entry: {err}") from err

    # ---------- Devices ----------

    async def get_devices(self) -> list[Device]:
        data = await self._request("GET", self._session.url(DEVICES))
        return self._unwrap(data, "devs", Device.from_api)

    async def get_nodes(self, device_id: str) -> list[Node]:
        data = await self._request(
            "GET", self._session.url(NODES, device_id=device_id)
        )
        return self._unwrap(data, "nodes", Node.from_api)

    # ---------- Node status ----------

    async def get_node_status(
        self, device_id: str, node_type: str, node_addr: int
    ) -> NodeStatus:
        url = self._session.url(
            NODE_STATUS, device_id=device_id, node_type=node_type, node_addr=node_addr
        )
        data = await self._request("GET", url)
        if not isinstance(data, dict):
            raise HelkiAPIError("Unexpected node status response")
        return parse_node_status(data)

    async def set_node_status(
        self,
        device_id: str,
        node_type: str,
        node_addr: int,
        status: NodeStatus | Mapping[str, Any],
    ) -> None:
        """
        Partially update a node.

        Args:
            status: NodeStatus, or a mapping of NodeStatus field names
                    (e.g. {"mtemp": 21.5}). Unset fields are not sent.
        """
        if not isinstance(status, NodeStatus):
            status = _from_mapping(NodeStatus, status)
        payload = status.to_payload()
        if not payload:
            raise ValueError("No writable status fields supplied")

        url = self._session.url(
            NODE_STATUS, device_id=device_id, node_type=node_type, node_addr=node_addr
        )
        await self._request("POST", url, payload)

    # ---------- Away status ----------

    async def get_away_status(self, device_id: str) -> AwayStatus:
        data = await self._request(
            "GET", self._session.url(AWAY_STATUS, device_id=device_id)
        )
        if not isinstance(data, dict):
            raise HelkiAPIError("Unexpected away status response")
        return AwayStatus.from_api(data)

    async def set_away_status(
        self, device_id: str, status: AwayStatus | Mapping[str, Any]
    ) -> None:
        if not isinstance(status, AwayStatus):
            status = _from_mapping(AwayStatus, status)
        await self._request(
            "POST", self._session.url(AWAY_STATUS, device_id=device_id), status.to_payload()
        )
