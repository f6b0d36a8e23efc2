"""
HJM / Helki Cloud Client

Main public API for the HJM radiator cloud.
"""
from collections.abc import Mapping
from typing import Any

import aiohttp

from .auth import HelkiTokenManager
from .config import HelkiConfig
from .devices import AwayStatus, Device, HelkiDevices, Node, NodeStatus
from .realtime import HelkiSocketClient
from .session import HelkiSession


class HelkiClient:
    """
    Main client for the HJM API.

    Usage:
        async with aiohttp.ClientSession() as session:
            client = HelkiClient(session)

            # 1. Login
            await client.authenticate("user@example.com", "password")

            # 2. Discover devices and their nodes
            devices = await client.get_devices()
            nodes = await client.get_nodes(devices[0].dev_id)

            # 3. Read / write a heater
            status = await client.get_node_status(devices[0].dev_id, "htr", 1)
            await client.set_node_status(devices[0].dev_id, "htr", 1, {"mtemp": 21.5})

            # 4. Push updates
            channel = client.create_socket_client(devices[0].dev_id)
            channel.on("update", print)
            await channel.connect()
            ...
            await channel.disconnect()
    """

    def __init__(
        self,
        aiohttp_session: aiohttp.ClientSession,
        config: HelkiConfig | None = None,
    ):
        self.config = config or HelkiConfig()
        self.session = HelkiSession(aiohttp_session, self.config)
        self.auth = HelkiTokenManager(self.session)
        self.devices = HelkiDevices(self.session, self.auth)

    @property
    def api_base(self) -> str:
        return self.session.api_base

    @property
    def token_manager(self) -> HelkiTokenManager:
        return self.auth

    # ========== Auth ==========

    async def authenticate(self, username: str, password: str) -> None:
        """
        Login with the HJM app credentials.

        Raises:
            HelkiAuthError: If credentials are invalid
            HelkiNetworkError: If the cloud cannot be reached
        """
        await self.auth.authenticate(username, password)

    @property
    def is_authenticated(self) -> bool:
        return self.auth.is_authenticated

    # ========== Devices ==========

    async def get_devices(self) -> list[Device]:
        """List gateways registered on the account"""
        return await self.devices.get_devices()

    async def get_nodes(self, device_id: str) -> list[Node]:
        """List heaters/thermostats behind a gateway"""
        return await self.devices.get_nodes(device_id)

    async def get_node_status(self, device_id: str, node_type: str, node_addr: int) -> NodeStatus:
        return await self.devices.get_node_status(device_id, node_type, node_addr)

    async def set_node_status(
        self,
        device_id: str,
        node_type: str,
        node_addr: int,
        status: NodeStatus | Mapping[str, Any],
    ) -> None:
        """
        Update only the given fields of a node.

        Args:
            status: e.g. {"mtemp": 21.5} or {"mode": "manual"}
        """
        await self.devices.set_node_status(device_id, node_type, node_addr, status)

    async def get_away_status(self, device_id: str) -> AwayStatus:
        return await self.devices.get_away_status(device_id)

    async def set_away_status(
        self, device_id: str, status: AwayStatus | Mapping[str, Any]
    ) -> None:
        await self.devices.set_away_status(device_id, status)

    # ========== Realtime ==========

    def create_socket_client(self, device_id: str) -> HelkiSocketClient:
        """Build a push channel for one gateway, sharing this client's token."""
        return HelkiSocketClient(self.auth, device_id, self.config)
