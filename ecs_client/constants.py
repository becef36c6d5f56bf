"""Constants for the ECS client.

Centralizes service endpoints, authority hosts and protocol constants.
"""

from ecs_client.models import Environment


# Component names used in structured logs
COMPONENT_CLIENT = "client"
COMPONENT_FETCH = "fetch"
COMPONENT_AUTH = "auth"
COMPONENT_CACHE = "cache"
COMPONENT_EVENTS = "events"
COMPONENT_MONITOR = "monitor"
COMPONENT_BOUNDARY = "boundary"
COMPONENT_CLI = "cli"

# Configuration service hosts. Environments mapped to None have no public
# endpoint and require ECS_ENDPOINT_OVERRIDE.
ENVIRONMENT_ENDPOINTS: dict[Environment, str | None] = {
    Environment.INTEGRATION: None,
    Environment.PRODUCTION: "https://ecs.skype.com",
    Environment.CANARY: None,
    Environment.DOD: None,
    Environment.GCCH: None,
    Environment.AG08: None,
    Environment.AG09: None,
    Environment.MOONCAKE: None,
    Environment.GCCMOD: None,
}

# Azure AD authority hosts used for certificate (SN/I) token exchange
AUTHORITY_HOSTS: dict[Environment, str | None] = {
    Environment.INTEGRATION: "https://login.microsoftonline.com",
    Environment.PRODUCTION: "https://login.microsoftonline.com",
    Environment.CANARY: "https://login.microsoftonline.com",
    Environment.GCCMOD: "https://login.microsoftonline.com",
    Environment.GCCH: "https://login.microsoftonline.us",
    Environment.DOD: "https://login.microsoftonline.us",
    Environment.MOONCAKE: "https://login.chinacloudapi.cn",
    Environment.AG08: None,
    Environment.AG09: None,
}

CONFIG_PATH_TEMPLATE = "/config/v1/{client}/{version}"
AGENTS_QUERY_PARAM = "agents"
EXP_QUERY_PARAM = "enableExp"

DEFAULT_APP_VERSION = "1.0.0.0"
DEFAULT_TOKEN_RESOURCE = "https://ecs.skype.com"

# Managed identity (IMDS)
DEFAULT_IMDS_ENDPOINT = "http://169.254.169.254/metadata/identity/oauth2/token"
IMDS_API_VERSION = "2018-02-01"

# Tokens are refreshed this many seconds before they expire
TOKEN_EXPIRY_MARGIN_SECONDS = 300

# Client assertion lifetime for certificate authentication
CLIENT_ASSERTION_LIFETIME_SECONDS = 600

# HTTP status codes
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_NOT_MODIFIED = 304
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 600

# Maximum wait honoured from a Retry-After header (seconds)
MAX_RETRY_AFTER_SECONDS = 30
