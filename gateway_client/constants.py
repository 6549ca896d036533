# =============================================================================
# Gateway Client -- Protocol Constants
# =============================================================================
#
# Values follow the Discord gateway documentation (API v9, JSON encoding).
# =============================================================================

API_VERSION = 9
ENCODING = "json"

DISCOVERY_URL = "https://discord.com/api/gateway"

# -- Timing (seconds unless noted) --------------------------------------------

CONNECTION_TIMEOUT = 10.0
HTTP_TIMEOUT = 10.0
CLOSE_TIMEOUT = 5.0

# -- Reconnection -------------------------------------------------------------

RECONNECT_DELAY = 1.0
RECONNECT_MAX_DELAY = 60.0
RECONNECT_FACTOR = 2.0

# -- Messages -----------------------------------------------------------------

MAX_MESSAGE_SIZE = 4 * 1_048_576  # 4 MB, READY payloads of large accounts
EVENT_QUEUE_SIZE = 1000

# -- Identify -----------------------------------------------------------------

DEFAULT_INTENTS = 32767  # every non-privileged and privileged classic intent
LIBRARY_NAME = "gateway_client"

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000
# Anything other than 1000/1001 keeps the session valid server-side.
WS_CLOSE_RECONNECT = 4000
