"""Authentication helpers for OpenAPI.

Renders an AuthConfig and its secret into concrete header or query pairs,
and checks a configuration against the security schemes a document declares.
"""

import base64
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from fastapi.openapi.models import APIKeyIn
from pydantic import SecretStr

from ...constants import AUTH_PLACEHOLDER, DEFAULT_API_KEY_TEMPLATE, DEFAULT_BEARER_TEMPLATE
from ..errors import AuthError
from ..models import AuthConfig, RenderedAuth

logger = logging.getLogger(__name__)

DEFAULT_BASIC_TEMPLATE = "Basic {value}"

Secret = Union[str, SecretStr, Tuple[str, str], None]


class AuthType(str, Enum):
    """Types of authentication supported by the renderer."""

    bearer = "bearer"
    basic = "basic"
    api_key_header = "api_key_header"
    api_key_query = "api_key_query"
    custom_header = "custom_header"


def _auth_type(config: AuthConfig) -> AuthType:
    try:
        return AuthType(config.type)
    except ValueError:
        raise AuthError(f"Unknown authentication type '{config.type}'") from None


def check_template(template: str) -> str:
    """Ensure a template holds exactly one ``{value}`` placeholder.

    Args:
        template: The template to check

    Returns:
        The template unchanged

    Raises:
        AuthError: When the placeholder is missing or repeated
    """
    count = template.count(AUTH_PLACEHOLDER)
    if count != 1:
        raise AuthError(
            f"Authentication template must contain exactly one {AUTH_PLACEHOLDER} "
            f"placeholder, found {count}"
        )
    return template


def _reveal(secret: Any) -> Any:
    if isinstance(secret, SecretStr):
        return secret.get_secret_value()
    return secret


def _basic_credential(config: AuthConfig, secret: Any) -> str:
    if isinstance(secret, (tuple, list)):
        if len(secret) != 2:
            raise AuthError("Basic authentication expects a (username, password) pair")
        username, password = (_reveal(part) for part in secret)
    elif config.username is not None:
        username, password = config.username, secret
    elif ":" in secret:
        username, password = secret.split(":", 1)
    else:
        raise AuthError(
            "Basic authentication expects 'username:password' or a configured username"
        )
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


def render_auth(config: AuthConfig, secret: Secret = None) -> RenderedAuth:
    """Render authentication into the pairs to attach to every request.

    Args:
        config: The authentication configuration
        secret: The secret; falls back to ``config.value`` when omitted

    Returns:
        RenderedAuth with header and query pairs carried as SecretStr

    Raises:
        AuthError: For a missing secret, a malformed template, a missing
            header or query name, or an unknown authentication type
    """
    auth_type = _auth_type(config)
    secret = _reveal(secret if secret is not None else config.value)
    if secret is None or secret == "" or secret == ():
        raise AuthError(f"No secret supplied for {auth_type.value} authentication")

    if auth_type == AuthType.bearer:
        template = check_template(config.template or DEFAULT_BEARER_TEMPLATE)
        value = template.replace(AUTH_PLACEHOLDER, str(secret))
        return RenderedAuth(headers=[("Authorization", SecretStr(value))])

    elif auth_type == AuthType.basic:
        template = check_template(config.template or DEFAULT_BASIC_TEMPLATE)
        value = template.replace(AUTH_PLACEHOLDER, _basic_credential(config, secret))
        return RenderedAuth(headers=[("Authorization", SecretStr(value))])

    if isinstance(secret, (tuple, list)):
        raise AuthError(f"{auth_type.value} authentication expects a single secret value")
    if not config.name:
        raise AuthError(f"{auth_type.value} authentication requires a 'name'")
    template = check_template(config.template or DEFAULT_API_KEY_TEMPLATE)
    value = SecretStr(template.replace(AUTH_PLACEHOLDER, str(secret)))

    if auth_type == AuthType.api_key_query:
        return RenderedAuth(query=[(config.name, value)])
    # api_key_header and custom_header
    return RenderedAuth(headers=[(config.name, value)])


def _scheme_accepts(config: AuthConfig, auth_type: AuthType, scheme: Mapping[str, Any]) -> bool:
    scheme_type = scheme.get("type")
    if auth_type == AuthType.custom_header:
        return True
    if scheme_type == "apiKey":
        location = scheme.get("in")
        name = str(scheme.get("name", "")).lower()
        if auth_type == AuthType.api_key_header:
            return location == APIKeyIn.header.value and name == (config.name or "").lower()
        if auth_type == AuthType.api_key_query:
            return location == APIKeyIn.query.value and name == (config.name or "").lower()
        # Some documents declare bearer tokens as an Authorization API key
        return location == APIKeyIn.header.value and name == "authorization"
    if scheme_type == "http":
        http_scheme = str(scheme.get("scheme", "")).lower()
        return (auth_type == AuthType.bearer and http_scheme == "bearer") or (
            auth_type == AuthType.basic and http_scheme == "basic"
        )
    if scheme_type in ("oauth2", "openIdConnect"):
        return auth_type == AuthType.bearer
    return False


def _describe_scheme(name: str, scheme: Mapping[str, Any]) -> str:
    if scheme.get("type") == "apiKey":
        return f"'{name}' (apiKey '{scheme.get('name')}' in {scheme.get('in')})"
    if scheme.get("type") == "http":
        return f"'{name}' (HTTP {scheme.get('scheme')})"
    return f"'{name}' ({scheme.get('type')})"


def check_security_schemes(
    config: Optional[AuthConfig],
    security_schemes: Mapping[str, Any],
    security_requirements: List[Dict[str, List[str]]],
) -> None:
    """Check an authentication configuration against a document's security schemes.

    Args:
        config: The configured authentication, if any
        security_schemes: ``components.securitySchemes`` of the document
        security_requirements: Document-level ``security`` requirements

    Raises:
        AuthError: If the configuration cannot satisfy any declared scheme
    """
    required_names = [name for requirement in security_requirements for name in requirement]
    if config is None:
        if required_names:
            logger.warning(
                f"API declares security {sorted(set(required_names))} "
                "but no authentication is configured"
            )
        return

    auth_type = _auth_type(config)
    candidates = {
        name: security_schemes[name]
        for name in (required_names or list(security_schemes))
        if isinstance(security_schemes.get(name), Mapping)
    }
    if not candidates:
        return
    if any(_scheme_accepts(config, auth_type, scheme) for scheme in candidates.values()):
        return

    expected = ", ".join(_describe_scheme(name, scheme) for name, scheme in candidates.items())
    target = f" '{config.name}'" if config.name else ""
    raise AuthError(
        f"Configured {auth_type.value}{target} authentication does not match "
        f"the security schemes declared by the API: {expected}"
    )
