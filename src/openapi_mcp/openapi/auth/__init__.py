"""Authentication rendering for OpenAPI tools."""

from .auth_helpers import AuthType, check_security_schemes, check_template, render_auth

__all__ = ["AuthType", "check_security_schemes", "check_template", "render_auth"]
