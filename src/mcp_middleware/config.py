"""Environment configuration for the Middleware MCP server.

Values are read from the process environment, optionally seeded from a
``.env`` file in the working directory.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

VALID_APP_MODES = ("stdio", "http", "sse")


class ConfigError(ValueError):
    """Raised when required configuration is missing or invalid."""


def _env_or_default(key: str, default: str) -> str:
    return os.environ.get(key) or default


def _parse_excluded_tools(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(tool.strip() for tool in raw.split(",") if tool.strip())


@dataclass(frozen=True)
class Config:
    """Application configuration.

    Attributes:
        api_key: Middleware API key, sent as the ``ApiKey`` header.
        base_url: Middleware base URL, e.g. ``https://acme.middleware.io``.
        authorization: Optional ``Authorization`` header value. Takes
            precedence over ``api_key`` when set.
        app_mode: Transport to serve on (stdio, http or sse).
        app_host: Bind host for the http and sse modes.
        app_port: Bind port for the http and sse modes.
        excluded_tools: Names of tools that must not be registered.
    """

    api_key: str
    base_url: str
    authorization: str | None = None
    app_mode: str = "stdio"
    app_host: str = "localhost"
    app_port: int = 8080
    excluded_tools: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables.

        Raises:
            ConfigError: If a required variable is missing or a value is
                invalid.
        """
        # A missing .env file is not an error
        load_dotenv()

        api_key = os.environ.get("MIDDLEWARE_API_KEY", "")
        if not api_key:
            raise ConfigError("MIDDLEWARE_API_KEY is required")

        base_url = os.environ.get("MIDDLEWARE_BASE_URL", "")
        if not base_url:
            raise ConfigError("MIDDLEWARE_BASE_URL is required")

        app_mode = _env_or_default("APP_MODE", "stdio")
        if app_mode not in VALID_APP_MODES:
            raise ConfigError(
                f"invalid APP_MODE: {app_mode} (must be stdio, http, or sse)"
            )

        port = _env_or_default("APP_PORT", "8080")
        try:
            app_port = int(port)
        except ValueError as e:
            raise ConfigError(f"invalid APP_PORT: {port}") from e

        return cls(
            api_key=api_key,
            base_url=base_url,
            authorization=os.environ.get("MIDDLEWARE_AUTHORIZATION") or None,
            app_mode=app_mode,
            app_host=_env_or_default("APP_HOST", "localhost"),
            app_port=app_port,
            excluded_tools=_parse_excluded_tools(os.environ.get("EXCLUDED_TOOLS")),
        )

    def is_tool_excluded(self, tool_name: str) -> bool:
        return tool_name in self.excluded_tools
