"""
Name: Utility functions.
Description: Common utility functions for openapi-mcp, including logging setup, environment variable
substitution, static headers from the environment, and the ApiConfig configuration model.
"""

import json
import logging
import os
import re
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from .constants import (
    DEFAULT_LOCATION_PRECEDENCE,
    DEFAULT_MAX_ERROR_BODY_CHARS,
    DEFAULT_TIMEOUT,
    HEADERS_ENV_VAR,
)
from .openapi.models import AuthConfig, RetryConfig

# Configure logging
logger = logging.getLogger(__name__)

_ENV_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def configure_logging(debug: bool = False):
    """Configure logging for the application.

    Records go to stderr so that stdout stays reserved for the MCP stdio transport.

    Args:
        debug: Whether to enable debug mode
    """
    logging_level = logging.DEBUG if debug else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(logging_level)

    # Check if handlers are already configured to prevent duplicates
    if root_logger.handlers:
        # Update existing handlers with the current log level
        for handler in root_logger.handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setLevel(logging_level)
        return

    # Create console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging_level)

    # Create formatter
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    console_handler.setFormatter(formatter)

    # Add handler to the logger
    root_logger.addHandler(console_handler)


def setup_environment(debug: bool = False):
    """Setup the environment for the application.

    - Configures logging
    - Loads environment variables from .env file
    """
    # Configure logging first
    configure_logging(debug)

    load_dotenv()
    logger.debug("Loaded environment variables from .env file")


def substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in a string.

    Handles `{VAR_NAME}`.
    Keeps the original placeholder if the environment variable is not found.

    Args:
        value: String potentially containing environment variable references

    Returns:
        String with environment variables substituted
    """
    if not value or not isinstance(value, str):
        return value

    # Make sure all .env variables are loaded
    load_dotenv()

    def replace(match):
        name = match.group(1)
        if name in os.environ:
            return os.environ[name]
        logger.warning(f"Environment variable not found in environment: {name}")
        return match.group(0)

    return _ENV_PLACEHOLDER.sub(replace, value)


def load_static_headers(env_var: str = HEADERS_ENV_VAR) -> Dict[str, str]:
    """Read extra request headers from a JSON object in the environment.

    Args:
        env_var: Name of the environment variable

    Returns:
        Header name to value; empty when the variable is unset or invalid
    """
    raw = os.environ.get(env_var)
    if not raw:
        return {}
    try:
        headers = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"{env_var} is not valid JSON, ignoring it: {e.msg}")
        return {}
    if not isinstance(headers, dict):
        logger.warning(f"{env_var} must be a JSON object, ignoring it")
        return {}
    return {str(name): str(value) for name, value in headers.items()}


class ApiConfig(BaseModel):
    """Configuration for an API."""

    name: str
    description: str = ""
    openapi_spec_url: Optional[str] = None
    openapi_spec_path: Optional[str] = None
    openapi_spec: Optional[Dict[str, Any]] = None
    base_url: Optional[str] = None
    authentication: Optional[AuthConfig] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    max_error_body_chars: int = DEFAULT_MAX_ERROR_BODY_CHARS
    location_precedence: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LOCATION_PRECEDENCE)
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @model_validator(mode="before")
    @classmethod
    def convert_auth_shapes(cls, data: Any) -> Any:
        """Accept OpenAPI-style authentication blocks as well as the native ones."""
        if not isinstance(data, dict):
            return data
        auth_data = data.get("authentication")
        if not isinstance(auth_data, dict):
            return data

        auth_data = dict(auth_data)
        auth_type = auth_data.get("type")
        if auth_type == "apiKey":
            # "in": "header" / "query" picks the concrete variant
            location = auth_data.pop("in", auth_data.pop("in_field", "header"))
            auth_data["type"] = f"api_key_{location}"
        elif auth_type == "http":
            auth_data["type"] = auth_data.pop("scheme", "bearer")
        elif auth_type == "oauth2":
            # OAuth2 access tokens are sent as bearer tokens
            auth_data["type"] = "bearer"

        if auth_data.get("type") == "basic" and "password" in auth_data:
            auth_data["value"] = auth_data.pop("password")
        data = dict(data)
        data["authentication"] = auth_data
        return data

    @model_validator(mode="after")
    def check_spec_source(self) -> "ApiConfig":
        if not (self.openapi_spec or self.openapi_spec_url or self.openapi_spec_path):
            raise ValueError(
                "One of openapi_spec, openapi_spec_url or openapi_spec_path is required"
            )
        return self

    @property
    def server_name(self) -> str:
        """Get the standardized server name (lowercase with underscores).

        Returns:
            Standardized server name
        """
        return self.name.lower().replace(" ", "_") if self.name else ""
