"""
Global configuration for the vksdk SDK.

This module provides a simple configuration system following Convention over Configuration (CoC).
Users can optionally call VKSDK.configure() at application startup to customize defaults.
If not called, sensible defaults are used.

Hierarchy of precedence (highest to lowest):
1. VkApiOptions passed to the VkApi constructor
2. Values set via VKSDK.configure()
3. Environment variables (VKSDK_*) - when allow_env_override=True
4. Hardcoded defaults (in dataclass fields)

Example:
    >>> from vksdk import VKSDK
    >>>
    >>> # Pre-loaded with defaults + env vars
    >>> timeout = VKSDK.config.api.request_timeout
    >>>
    >>> # Custom configuration
    >>> VKSDK.configure(
    ...     auth={"client_id": "123", "client_secret": "s3cr3t"},
    ...     api={"requests_per_second": 20, "language": "en"},
    ... )
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from typing import Any, Self

from vksdk._errors import ConfigurationError

# =============================================================================
# Exceptions
# =============================================================================


class ConfigEnvVarError(ConfigurationError):
    """A VKSDK_* variable holds a value that does not convert to its field type."""

    def __init__(self, env_var: str, value: str, expected_type: str, cause: Exception | None = None):
        self.env_var = env_var
        self.value = value
        self.expected_type = expected_type
        super().__init__(f"{env_var}={value!r} is not a valid {expected_type}", cause=cause)
        self.__cause__ = cause


class ConfigValidationError(ConfigurationError):
    """A configured value is out of range; `section` names the config block ("api" or "auth")."""

    def __init__(self, field: str, value: Any, message: str, section: str | None = None):
        self.field = field
        self.value = value
        self.section = section
        where = f"{section}.{field}" if section else field
        super().__init__(f"Invalid value for '{where}': {value!r}. {message}")


# =============================================================================
# Environment Variables
# =============================================================================


def _to_bool(raw: str) -> bool:
    return raw.lower() in ("true", "1", "yes")


_ENV_CONVERTERS: dict[str, Callable[[str], Any]] = {"int": int, "float": float, "bool": _to_bool}


class EnvVars:
    """Reads VKSDK_* variables; unset and empty variables both read as None."""

    @staticmethod
    def get(var_name: str, type_hint: Any = str, converter: Callable[[str], Any] | None = None) -> Any:
        raw_value = os.environ.get(var_name)
        if not raw_value:
            return None

        type_name = getattr(type_hint, "__name__", str(type_hint))
        convert = converter or _ENV_CONVERTERS.get(type_name, str)
        try:
            return convert(raw_value)
        except (ValueError, TypeError) as e:
            raise ConfigEnvVarError(var_name, raw_value, type_name, cause=e) from e


# =============================================================================
# Base Class
# =============================================================================


@dataclass(frozen=True)
class OverridableConfig:
    """
    Frozen config block that can be copied with some fields replaced.

    Unknown field names are rejected so a typo in VKSDK.configure() fails
    loudly; None values mean "keep the current value".
    """

    def with_overrides(self, overrides: dict[str, Any]) -> Self:
        if not overrides:
            return self

        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {sorted(unknown)}. Valid fields are: {sorted(known)}")

        changes = {name: value for name, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    def with_env_vars(self) -> Self:
        """Apply the variables named in each field's `env` metadata."""
        overrides: dict[str, Any] = {}
        for f in fields(self):
            env_var = f.metadata.get("env")
            if not env_var:
                continue
            # annotations are strings here (postponed evaluation), e.g. "int"
            type_name = f.type.split(" | ")[0] if isinstance(f.type, str) else f.type
            value = EnvVars.get(env_var, type_name, f.metadata.get("converter"))
            if value is not None:
                overrides[f.name] = value
        return self.with_overrides(overrides)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


def _url_field_is_valid(value: str | None) -> bool:
    return not value or value.startswith("http://") or value.startswith("https://")


@dataclass(frozen=True)
class ApiConfig(OverridableConfig):
    """
    Configuration for VkApi clients.

    Attributes:
        base_url: Base URL of the method endpoint; the method name is appended.
            Env var: VKSDK_API_BASE_URL

        version: API version sent as the `v` parameter.
            Env var: VKSDK_API_VERSION

        request_timeout: HTTP request timeout in seconds.
            Env var: VKSDK_API_REQUEST_TIMEOUT

        language: Language code sent as the `lang` parameter (e.g. "ru", "en").
            None sends nothing and lets the provider decide.
            Env var: VKSDK_API_LANGUAGE

        requests_per_second: Client-side rate limit. 0 disables limiting.
            Env var: VKSDK_API_REQUESTS_PER_SECOND

        max_captcha_recognition_count: How many captchas a client may solve
            over its lifetime before captcha errors surface directly.
            Env var: VKSDK_API_MAX_CAPTCHA_RECOGNITION_COUNT

    Example:
        >>> from vksdk import VKSDK
        >>> VKSDK.config.api.version
        '5.131'
    """

    base_url: str = field(default="https://api.vk.com/method", metadata={"env": "VKSDK_API_BASE_URL"})
    version: str = field(default="5.131", metadata={"env": "VKSDK_API_VERSION"})
    request_timeout: int = field(default=30, metadata={"env": "VKSDK_API_REQUEST_TIMEOUT"})
    language: str | None = field(default=None, metadata={"env": "VKSDK_API_LANGUAGE"})
    requests_per_second: int = field(default=3, metadata={"env": "VKSDK_API_REQUESTS_PER_SECOND"})
    max_captcha_recognition_count: int = field(default=5, metadata={"env": "VKSDK_API_MAX_CAPTCHA_RECOGNITION_COUNT"})

    def validate(self) -> Self:
        """Validate API configuration fields."""
        if not self.base_url or not _url_field_is_valid(self.base_url):
            raise ConfigValidationError(
                "base_url", self.base_url,
                "Must start with 'http://' or 'https://'.", section="api"
            )
        if not self.version:
            raise ConfigValidationError(
                "version", self.version,
                "Must not be empty.", section="api"
            )
        if self.request_timeout <= 0:
            raise ConfigValidationError(
                "request_timeout", self.request_timeout,
                "Must be greater than 0.", section="api"
            )
        if self.requests_per_second < 0:
            raise ConfigValidationError(
                "requests_per_second", self.requests_per_second,
                "Must be >= 0 (0 disables rate limiting).", section="api"
            )
        if self.max_captcha_recognition_count < 0:
            raise ConfigValidationError(
                "max_captcha_recognition_count", self.max_captcha_recognition_count,
                "Must be >= 0.", section="api"
            )
        if self.language is not None and self.language == "":
            raise ConfigValidationError(
                "language", self.language,
                "Must not be empty string.", section="api"
            )
        return self


@dataclass(frozen=True)
class AuthConfig(OverridableConfig):
    """
    Authentication configuration.

    With `login` and `password` set, the password (direct auth) flow is used;
    otherwise the client credentials flow issues a service token.

    Attributes:
        client_id: Application id.
            Env var: VKSDK_AUTH_CLIENT_ID

        client_secret: Application secret key.
            Env var: VKSDK_AUTH_CLIENT_SECRET

        login: User login for direct authorization.
            Env var: VKSDK_AUTH_LOGIN

        password: User password for direct authorization.
            Env var: VKSDK_AUTH_PASSWORD

        scope: Comma-separated access rights requested on direct authorization.
            Env var: VKSDK_AUTH_SCOPE

        token_url: OAuth endpoint for the password grant.
            Env var: VKSDK_AUTH_TOKEN_URL

        service_token_url: OAuth endpoint for the client credentials grant.
            Env var: VKSDK_AUTH_SERVICE_TOKEN_URL
    """

    client_id: str | None = field(default=None, metadata={"env": "VKSDK_AUTH_CLIENT_ID"})
    client_secret: str | None = field(default=None, metadata={"env": "VKSDK_AUTH_CLIENT_SECRET"})
    login: str | None = field(default=None, metadata={"env": "VKSDK_AUTH_LOGIN"})
    password: str | None = field(default=None, metadata={"env": "VKSDK_AUTH_PASSWORD"})
    scope: str | None = field(default=None, metadata={"env": "VKSDK_AUTH_SCOPE"})
    token_url: str = field(default="https://oauth.vk.com/token", metadata={"env": "VKSDK_AUTH_TOKEN_URL"})
    service_token_url: str = field(default="https://oauth.vk.com/access_token", metadata={"env": "VKSDK_AUTH_SERVICE_TOKEN_URL"})

    def has_credentials(self) -> bool:
        """Check if both client_id and client_secret are set."""
        return bool(self.client_id and self.client_secret)

    def has_user_credentials(self) -> bool:
        """Check if login and password are set for direct authorization."""
        return bool(self.login and self.password)

    def validate(self) -> Self:
        """Validate auth configuration fields."""
        for name in ("client_id", "client_secret", "login", "password"):
            value = getattr(self, name)
            if value is not None and value == "":
                raise ConfigValidationError(
                    name, value,
                    "Must not be empty string.", section="auth"
                )
        for name in ("token_url", "service_token_url"):
            if not _url_field_is_valid(getattr(self, name)):
                raise ConfigValidationError(
                    name, getattr(self, name),
                    "Must start with 'http://' or 'https://'.", section="auth"
                )
        return self


@dataclass(frozen=True)
class VKSDKConfig:
    """
    Global configuration for the vksdk SDK.

    Aggregates all configuration sections. Access via the global `VKSDK.config` property.

    Attributes:
        api: VkApi client configuration.
        auth: Authentication configuration.
    """

    api: ApiConfig = field(default_factory=ApiConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)

    def with_env_vars(self) -> VKSDKConfig:
        """Return a new config with VKSDK_* environment variables applied on top."""
        return VKSDKConfig(
            api=self.api.with_env_vars(),
            auth=self.auth.with_env_vars(),
        )

    def with_section_overrides(
        self,
        *,
        api: dict[str, Any] | None = None,
        auth: dict[str, Any] | None = None,
    ) -> VKSDKConfig:
        """
        Return a new config with overrides applied to nested sections.

        Each section dict is merged with the existing section config,
        only overriding the specified fields.
        """
        return VKSDKConfig(
            api=self.api.with_overrides(api or {}),
            auth=self.auth.with_overrides(auth or {}),
        )


# =============================================================================
# Global Configuration Singleton
# =============================================================================

_MASKED_FIELDS = ("client_secret", "password")


def _format_value(name: str, value: Any) -> str:
    """Render a config value for explain(), masking secrets."""
    if value is None:
        return "None"
    if name in _MASKED_FIELDS:
        secret = str(value)
        if len(secret) >= 12:
            return f"{secret[:4]}********{secret[-4:]}"
        return "********"
    str_value = str(value)
    if len(str_value) > 50:
        return str_value[:47] + "..."
    return str_value


class _VKSDK:
    """
    Singleton for SDK configuration.

    Use `VKSDK.configure()` to customize settings and `VKSDK.config`
    to access current configuration.

    Example:
        >>> from vksdk import VKSDK
        >>> VKSDK.configure(api={"language": "en"})
        >>> print(VKSDK.config.api.request_timeout)
    """

    def __init__(self) -> None:
        """Initialize with defaults and environment variables."""
        self._config: VKSDKConfig = VKSDKConfig().with_env_vars()

    def configure(
        self,
        *,
        api: dict[str, Any] | None = None,
        auth: dict[str, Any] | None = None,
        allow_env_override: bool = True,
    ) -> VKSDKConfig:
        """
        Configure SDK settings.

        Call at application startup to customize defaults.

        Args:
            api: VkApi config overrides (base_url, version, timeouts, rate, language).
            auth: Authentication config overrides (client_id, client_secret, login, ...).
            allow_env_override: If True (default), env vars are used as fallback
                for fields NOT provided. If False, ignores env vars entirely.

        Returns:
            The configured VKSDKConfig instance.

        Raises:
            ValueError: If any dict contains unknown field names.
            ConfigValidationError: If any config value fails validation.
        """
        base = VKSDKConfig()
        if allow_env_override:
            base = base.with_env_vars()

        self._config = base.with_section_overrides(api=api, auth=auth)
        return self.validate()

    @property
    def config(self) -> VKSDKConfig:
        """Access current configuration (read-only)."""
        return self._config

    def reset(self) -> VKSDKConfig:
        """
        Reset configuration to defaults + env vars.

        Useful for testing to ensure clean state between tests.
        """
        self._config = VKSDKConfig().with_env_vars()
        return self.validate()

    def validate(self) -> VKSDKConfig:
        """
        Validate current configuration.

        Raises:
            ConfigValidationError: If any config value is invalid.
        """
        self._config.api.validate()
        self._config.auth.validate()
        return self._config

    def explain(self, output: Callable[[str], None] = print) -> None:
        """
        Print current configuration, one field per line, secrets masked.

        Args:
            output: Callable to output each line. Defaults to print.
                    Can be used with logging: `VKSDK.explain(logger.info)`
        """
        output("VKSDK Configuration:")
        output("=" * 60)
        for section_name in ("api", "auth"):
            section = getattr(self._config, section_name)
            output(f"[{section_name}]")
            for f in fields(section):
                dots = "." * (30 - len(f.name))
                output(f"  {f.name} {dots} {_format_value(f.name, getattr(section, f.name))}")
        output("=" * 60)

    def __repr__(self) -> str:
        return f"VKSDK(api={self._config.api!r})"


# Global singleton instance - always reflects current configuration
VKSDK: _VKSDK = _VKSDK()
VKSDK.validate()  # Validate defaults + env vars on module load
