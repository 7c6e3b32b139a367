"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# AWS IoT SigV4 presigning
# ------------------------------------------------------------------

SIGNING_ALGORITHM = "AWS4-HMAC-SHA256"
SIGNING_SERVICE = "iotdevicegateway"
SIGNING_TERMINATOR = "aws4_request"
SIGNING_KEY_PREFIX = "AWS4"
SIGNED_HEADERS = "host"
URL_EXPIRES_SECONDS = 86400

WS_SCHEME = "wss"
WS_METHOD = "GET"
WS_PATH = "/mqtt"
WS_PORT = 443

# ------------------------------------------------------------------
# Subscription defaults
# ------------------------------------------------------------------

DEFAULT_TOPIC = "vehicles/+/position"
DEFAULT_RECONNECT_PERIOD = 2.0
DEFAULT_MQTT_KEEPALIVE = 60
DEFAULT_CLIENT_ID_PREFIX = "VeloApp-"
DEFAULT_DEMO_INTERVAL = 2.0
