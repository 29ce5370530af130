"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# MQTT relay
# ------------------------------------------------------------------

DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTT_TLS_PORT = 8883
DEFAULT_MQTT_KEEPALIVE = 60
DEFAULT_RECONNECT_PERIOD = 5.0

COMMAND_TOPIC_PREFIX = "command"
MESSAGE_TOPIC_PREFIX = "message"
RESPONSE_TOPIC_PREFIX = "response"
STATE_TOPIC_PREFIX = "state"


def command_topic(account: str) -> str:
    return f"{COMMAND_TOPIC_PREFIX}/{account}/#"


def message_topic(account: str) -> str:
    return f"{MESSAGE_TOPIC_PREFIX}/{account}/#"


def response_topic(account: str, device: str) -> str:
    return f"{RESPONSE_TOPIC_PREFIX}/{account}/{device}"


def state_topic(account: str, device: str) -> str:
    return f"{STATE_TOPIC_PREFIX}/{account}/{device}"


# ------------------------------------------------------------------
# State reporting
# ------------------------------------------------------------------

#: Seconds between two sweeps of the pending state updates.
DEFAULT_SWEEP_INTERVAL = 0.25
#: Seconds a pending state update must have waited before it is published.
DEFAULT_DWELL_TIME = 1.0

# ------------------------------------------------------------------
# Device directory web API
# ------------------------------------------------------------------

DEVICES_ENDPOINT = "/api/v1/devices"
DIRECTORY_TIMEOUT_SECONDS = 15.0

# ------------------------------------------------------------------
# Admin surface
# ------------------------------------------------------------------

ADMIN_PREFIX = "/voice-bridge"
DEFAULT_ADMIN_PORT = 1881
