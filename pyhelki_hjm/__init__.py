"""
HJM / Helki Cloud Python Client Library
"""
from .client import HelkiClient
from .config import HelkiConfig
from .auth import HelkiTokenManager
from .devices import (
    AwayStatus,
    Device,
    HelkiDevices,
    Node,
    NodeStatus,
    extract_node_status,
    parse_node_status,
)
from .realtime import ChannelState, EventEmitter, HelkiSocketClient, reconnect_delay
from .session import HelkiSession
from .exceptions import (
    HelkiError,
    HelkiAuthError,
    HelkiNoCredentials,
    HelkiRateLimited,
    HelkiNetworkError,
    HelkiAPIError,
)

__version__ = "0.1.0"
__all__ = [
    "HelkiClient",
    "HelkiConfig",
    "HelkiSession",
    "HelkiTokenManager",
    "HelkiDevices",
    "HelkiSocketClient",
    "ChannelState",
    "EventEmitter",
    "reconnect_delay",
    "Device",
    "Node",
    "NodeStatus",
    "AwayStatus",
    "parse_node_status",
    "extract_node_status",
    # Exceptions
    "HelkiError",
    "HelkiAuthError",
    "HelkiNoCredentials",
    "HelkiRateLimited",
    "HelkiNetworkError",
    "HelkiAPIError",
]
