"""
Name: Manager functions.
Description: Loads API configurations and their OpenAPI specifications, and builds the toolkit and MCP
server for a configuration.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from .mcp.server import MCPServer
from .openapi.spec import load_spec_from_file, load_spec_from_url
from .openapi.tools import OpenAPIToolkit
from .utils import ApiConfig, load_static_headers, substitute_env_vars

logger = logging.getLogger(__name__)


def process_config(config_path: str) -> ApiConfig:
    """Process an API configuration file.

    Args:
        config_path: Path to the configuration file

    Returns:
        API configuration
    """
    with open(config_path, "r", encoding="utf-8") as f:
        config_data = json.load(f)
    return build_config(config_data)


def build_config(config_data: Dict[str, Any]) -> ApiConfig:
    """Create an ApiConfig from raw data, substituting environment variables.

    Args:
        config_data: Parsed configuration

    Returns:
        API configuration
    """
    config_data = dict(config_data)

    # Process environment variables in authentication before creating the ApiConfig
    if isinstance(config_data.get("authentication"), dict):
        auth_config = dict(config_data["authentication"])
        for key in ("value", "username", "password"):
            if key in auth_config:
                auth_config[key] = substitute_env_vars(auth_config[key])
        config_data["authentication"] = auth_config

    if isinstance(config_data.get("headers"), dict):
        config_data["headers"] = {
            name: substitute_env_vars(value) for name, value in config_data["headers"].items()
        }
    for key in ("base_url", "openapi_spec_url", "openapi_spec_path"):
        if key in config_data:
            config_data[key] = substitute_env_vars(config_data[key])

    return ApiConfig(**config_data)


def load_api_spec(api_config: ApiConfig) -> Tuple[Dict[str, Any], Optional[str]]:
    """Load the OpenAPI spec of a configuration.

    Args:
        api_config: API configuration

    Returns:
        The spec and the URL it was loaded from (None for local sources)
    """
    if api_config.openapi_spec:
        return api_config.openapi_spec, api_config.openapi_spec_url
    if api_config.openapi_spec_path:
        logger.debug(f"Loading OpenAPI spec from {api_config.openapi_spec_path}")
        return load_spec_from_file(api_config.openapi_spec_path), None
    logger.debug(f"Loading OpenAPI spec from {api_config.openapi_spec_url}")
    return load_spec_from_url(api_config.openapi_spec_url), api_config.openapi_spec_url


def create_toolkit(
    api_config: ApiConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> OpenAPIToolkit:
    """Create the toolkit for an API configuration.

    Static headers from the environment are applied first; headers from the
    configuration file override them.

    Args:
        api_config: API configuration
        transport: Custom httpx transport

    Returns:
        The OpenAPIToolkit
    """
    spec, source_url = load_api_spec(api_config)
    static_headers = load_static_headers()
    static_headers.update(api_config.headers)

    return OpenAPIToolkit(
        spec,
        auth_config=api_config.authentication,
        retry_config=api_config.retry,
        base_url=api_config.base_url,
        static_headers=static_headers,
        timeout=api_config.timeout,
        max_error_body_chars=api_config.max_error_body_chars,
        location_precedence=api_config.location_precedence,
        source_url=source_url,
        transport=transport,
    )


def create_server_from_config(api_config: ApiConfig) -> MCPServer:
    """Create an MCP server from a configuration object.

    Args:
        api_config: API configuration

    Returns:
        MCP server
    """
    toolkit = create_toolkit(api_config)
    return MCPServer(
        toolkit,
        name=api_config.name,
        instructions=api_config.description or None,
    )
