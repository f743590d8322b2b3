"""
Mobile API Configuration Constants

Configuration values shared by the server, the provisioning tool and
the companion client.
"""

# Home Path Configuration
# Directory holding device.json, config.json and the DHT private key.
# Can be overridden with the SIFIS_HOME_PATH environment variable.
SIFIS_HOME_PATH_ENV = "SIFIS_HOME_PATH"
DEFAULT_SIFIS_HOME_PATH = "/opt/sifis-home/"

DEVICE_INFO_FILE = "device.json"
DEVICE_CONFIG_FILE = "config.json"
PRIVATE_KEY_FILE = "private.pem"

# Command Scripts
# factory_reset.sh, restart.sh and shutdown.sh are looked up here
SCRIPTS_PATH_ENV = "MOBILE_API_SCRIPTS_PATH"
DEFAULT_SCRIPTS_PATH = "/opt/sifis-home/scripts"
SCRIPT_TIMEOUT_SECONDS = 60

# Security Key
KEY_SIZE = 32
KEY_HEX_LENGTH = KEY_SIZE * 2

# Authentication
API_KEY_HEADER = "x-api-key"

# Busy reasons
# Reported verbatim to the caller in 503 responses
BUSY_FACTORY_RESET = "A factory reset is performed."
BUSY_RESTART = "The device is restarting."
BUSY_SHUTDOWN = "The device is shutting down."
BUSY_SAVING_CONFIG = "Saving device configuration."

FACTORY_RESET_CONFIRM = "I really want to perform a factory reset"

# Server
DEFAULT_SERVER_HOST = "0.0.0.0"
DEFAULT_SERVER_PORT = 8000
API_PREFIX = "/api/v1"

# Client
DEFAULT_CLIENT_TIMEOUT = 10
DEFAULT_CLIENT_RETRIES = 3
