DEFAULT_TIMEOUT = 15

# ========== BASE URLS ==========
API_BASE = "https://api-hjm.helki.com"
SOCKETIO_PATH = "socket.io"

# ========== AUTH ==========
TOKEN_PATH = "/client/token"
# OAuth client id:secret for the HJM/Helki cloud, base64 encoded
CLIENT_BASIC_AUTH = "NTRiY2NiZmI0MWE5YTUxMTNmMDQ4OGQwOnZkaXZkaQ=="
TOKEN_REFRESH_BUFFER = 5 * 60  # seconds subtracted from expires_in

# ========== REST ENDPOINTS ==========
DEVICES = "/api/v2/devs"  # GET - {"devs": [...], "invited_to": [...]}
NODES = "/api/v2/devs/{device_id}/mgr/nodes"  # GET - {"nodes": [...]}
NODE_STATUS = "/api/v2/devs/{device_id}/{node_type}/{node_addr}/status"  # GET/POST
AWAY_STATUS = "/api/v2/devs/{device_id}/mgr/away_status"  # GET/POST

# ========== HEADERS ==========
HDR_AUTHORIZATION = "Authorization"
HDR_CONTENT_TYPE = "Content-Type"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# ========== REALTIME ==========
PING_INTERVAL = 20  # seconds between keepalive pings
RECONNECT_DELAY = 5  # base delay before the first reconnect
MAX_RECONNECT_DELAY = 60
MAX_RECONNECT_ATTEMPTS = 10

EVENT_CONNECT = "connect"
EVENT_DISCONNECT = "disconnect"
EVENT_CONNECT_ERROR = "connect_error"
EVENT_UPDATE = "update"
EVENT_DEV_DATA = "dev_data"  # outbound - request full device snapshot
EVENT_PING = "ping"  # outbound - keepalive

# ========== NODE TYPES ==========
NODE_TYPES = {
    "htr": "heater",
    "thm": "thermostat",
    "acm": "accumulator",
    "htr_mod": "heater (modular)",
    "pmo": "power monitor",
}

# ========== NODE MODES ==========
NODE_MODES = ("off", "manual", "auto", "self_learn", "presence")

DEFAULT_UNITS = "C"

# ========== ERROR CODES ==========
HTTP_401_UNAUTHORIZED = 401
HTTP_429_TOO_MANY_REQUESTS = 429
