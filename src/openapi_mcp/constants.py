"""
Name: Constants and settings.
Description: Centralized location for constants and settings used throughout openapi-mcp.
This file contains default values, limits, and other constants to maintain consistency.
"""

# Server settings
DEFAULT_SERVER_NAME = "OpenAPI"

# HTTP client settings
DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = "openapi-mcp"

# Environment variable holding a JSON object of static headers
HEADERS_ENV_VAR = "OPENAPI_MCP_HEADERS"

# Retry settings (caller-side policy, network failures only)
DEFAULT_MAX_RETRIES = 2
DEFAULT_BACKOFF_FACTOR = 0.5

# Tool settings
MAX_TOOL_NAME_LENGTH = 64
TOOL_NAME_DIGEST_LENGTH = 4

# Parameter binding order, highest priority first
DEFAULT_LOCATION_PRECEDENCE = ("path", "query", "header", "body")

# Headers that are never exposed as tool arguments
MANAGED_HEADERS = ("authorization", "content-type", "accept")

# Property used when a request body is not an object at its root
BODY_PROPERTY_NAME = "body"

# Auth template settings
AUTH_PLACEHOLDER = "{value}"
DEFAULT_BEARER_TEMPLATE = "Bearer {value}"
DEFAULT_API_KEY_TEMPLATE = "{value}"

# Response settings
DEFAULT_MAX_ERROR_BODY_CHARS = 512
TRUNCATION_MARKER = "..."

# Multipart upload settings
FILE_FIELD_DESCRIPTION = "absolute paths to local files"

# HTTP methods in OpenAPI path item order
HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
