"""
Authorization flows for the vksdk SDK.

An authorization flow obtains an access token from the provider's OAuth
endpoint. VkApi.authorize() runs a flow and installs the resulting token.

The main classes are:
- AuthorizationFlow: Abstract base class for authorization flows.
- ClientCredentialsAuthorizationFlow: Service token for an application.
- PasswordAuthorizationFlow: Direct authorization with a user's login and password.

Example:
    >>> from vksdk._auth import ClientCredentialsAuthorizationFlow
    >>> flow = ClientCredentialsAuthorizationFlow(
    ...     client_id="123456",
    ...     client_secret="my-client-secret",
    ... )
    >>> result = flow.authorize()
    >>> result.access_token
    'eyJ...'
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, override

import requests

from vksdk._errors import AuthenticationError, CaptchaRequiredError, ConfigurationError

if TYPE_CHECKING:
    from vksdk._config import AuthConfig

logger = logging.getLogger(__name__)

# Code the OAuth endpoint's `need_captcha` error is surfaced with, same as the API's.
_NEED_CAPTCHA_CODE = 14


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ApiAuthParams:
    """
    Parameters of an authorization request.

    Attributes:
        client_id: Application id.
        client_secret: Application secret key. Also sent as `client_secret` on
            every API call when set.
        login: User login (direct authorization only).
        password: User password (direct authorization only).
        scope: Comma-separated access rights.
        captcha_sid: Id of the captcha being answered, if any.
        captcha_key: Answer to the captcha, if any.
        two_factor_code: One-time code for accounts with 2FA.
        api_version: API version sent as `v`.
    """

    client_id: str | None = None
    client_secret: str | None = None
    login: str | None = None
    password: str | None = None
    scope: str | None = None
    captcha_sid: str | None = None
    captcha_key: str | None = None
    two_factor_code: str | None = None
    api_version: str | None = None


@dataclass(frozen=True)
class AuthorizationResult:
    """
    Token issued by an authorization flow.

    Attributes:
        access_token: The access token.
        user_id: Id of the authorized user; None for service tokens.
        expires_in: Token lifetime in seconds, 0 for a non-expiring token.
    """

    access_token: str
    user_id: int | None = None
    expires_in: int = 0


# =============================================================================
# Abstract Base Class
# =============================================================================


class AuthorizationFlow(ABC):
    """
    Abstract base class for authorization flows.

    The auth params can be replaced while the flow is in progress; VkApi uses
    that to pass the captcha answer before retrying.

    Example:
        >>> class StaticTokenFlow(AuthorizationFlow):
        ...     def authorize(self) -> AuthorizationResult:
        ...         return AuthorizationResult(access_token="my-token")
    """

    def __init__(self, params: ApiAuthParams | None = None):
        self._params = params or ApiAuthParams()
        self._params_lock = threading.Lock()

    @abstractmethod
    def authorize(self) -> AuthorizationResult:
        """
        Obtain an access token.

        Returns:
            The issued token.

        Raises:
            AuthenticationError: If the provider refuses the credentials.
            CaptchaRequiredError: If the provider asks for a captcha.
        """
        pass

    def get_auth_params(self) -> ApiAuthParams:
        with self._params_lock:
            return self._params

    def set_auth_params(self, params: ApiAuthParams) -> None:
        assert params is not None, "Auth params can not be None."
        with self._params_lock:
            self._params = params


# =============================================================================
# Implementations
# =============================================================================


class _OAuthAuthorizationFlow(AuthorizationFlow):
    """Shared request and answer handling of the OAuth endpoints."""

    def __init__(self, params: ApiAuthParams, token_url: str, timeout: int = 30):
        super().__init__(params)
        assert token_url, "token_url cannot be empty"
        self._token_url = token_url
        self._timeout = timeout

    def _request_token(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        POST the form to the token endpoint and return the decoded answer.

        Raises:
            AuthenticationError: On network failures, invalid JSON or an OAuth error.
            CaptchaRequiredError: When the endpoint answers `need_captcha`.
        """
        form = {key: value for key, value in data.items() if value is not None}
        try:
            response = requests.post(
                self._token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self._timeout,
            )
            answer = response.json()
        except requests.RequestException as e:
            raise AuthenticationError(f"Failed to obtain access token: {e}", cause=e) from e
        except ValueError as e:
            raise AuthenticationError(
                f"Invalid token response (HTTP {response.status_code}): not a JSON document",
                cause=e,
            ) from e

        error = answer.get("error")
        if error == "need_captcha":
            raise CaptchaRequiredError(
                _NEED_CAPTCHA_CODE,
                "Captcha needed",
                captcha_sid=str(answer.get("captcha_sid", "")),
                captcha_img=str(answer.get("captcha_img", "")),
                raw_error=answer,
            )
        if error:
            description = answer.get("error_description") or error
            raise AuthenticationError(f"Failed to obtain access token ({error}): {description}")
        if not response.ok:
            raise AuthenticationError(f"Failed to obtain access token (HTTP {response.status_code})")

        return answer

    @staticmethod
    def _to_result(answer: dict[str, Any]) -> AuthorizationResult:
        try:
            user_id = answer.get("user_id")
            return AuthorizationResult(
                access_token=answer["access_token"],
                user_id=int(user_id) if user_id is not None else None,
                expires_in=int(answer.get("expires_in") or 0),
            )
        except KeyError as e:
            raise AuthenticationError(f"Invalid token response: missing '{e}' field", cause=e) from e


class ClientCredentialsAuthorizationFlow(_OAuthAuthorizationFlow):
    """
    Client credentials grant: issues a service token for an application.

    Service tokens call methods that need no user context and do not expire.

    Example:
        >>> flow = ClientCredentialsAuthorizationFlow(client_id="123", client_secret="s3cr3t")
        >>> api.authorize(flow)

    Args:
        client_id: Application id.
        client_secret: Application secret key.
        token_url: OAuth endpoint of the grant.
        api_version: API version sent as `v`.
        timeout: Request timeout in seconds.
    """

    DEFAULT_TOKEN_URL = "https://oauth.vk.com/access_token"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str = DEFAULT_TOKEN_URL,
        api_version: str | None = None,
        timeout: int = 30,
    ):
        assert client_id, "client_id cannot be empty"
        assert client_secret, "client_secret cannot be empty"
        super().__init__(
            ApiAuthParams(client_id=client_id, client_secret=client_secret, api_version=api_version),
            token_url=token_url,
            timeout=timeout,
        )

    @override
    def authorize(self) -> AuthorizationResult:
        params = self.get_auth_params()
        answer = self._request_token({
            "grant_type": "client_credentials",
            "client_id": params.client_id,
            "client_secret": params.client_secret,
            "v": params.api_version,
        })
        logger.debug(f"Service token issued for application {params.client_id}")
        return self._to_result(answer)


class PasswordAuthorizationFlow(_OAuthAuthorizationFlow):
    """
    Direct authorization with a user's login and password.

    Only available to trusted applications. When the provider asks for a
    captcha the flow raises CaptchaRequiredError; VkApi answers it through
    its captcha handler by setting `captcha_sid`/`captcha_key` on the auth
    params and calling authorize() again.

    Example:
        >>> flow = PasswordAuthorizationFlow(
        ...     client_id="123", client_secret="s3cr3t",
        ...     login="user@example.com", password="p4ss", scope="friends,wall",
        ... )
        >>> api.authorize(flow)

    Args:
        client_id: Application id.
        client_secret: Application secret key.
        login: User login.
        password: User password.
        scope: Comma-separated access rights.
        token_url: OAuth endpoint of the grant.
        api_version: API version sent as `v`.
        timeout: Request timeout in seconds.
    """

    DEFAULT_TOKEN_URL = "https://oauth.vk.com/token"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        login: str,
        password: str,
        scope: str | None = None,
        token_url: str = DEFAULT_TOKEN_URL,
        api_version: str | None = None,
        timeout: int = 30,
    ):
        assert client_id, "client_id cannot be empty"
        assert client_secret, "client_secret cannot be empty"
        assert login, "login cannot be empty"
        assert password, "password cannot be empty"
        super().__init__(
            ApiAuthParams(
                client_id=client_id,
                client_secret=client_secret,
                login=login,
                password=password,
                scope=scope,
                api_version=api_version,
            ),
            token_url=token_url,
            timeout=timeout,
        )

    @override
    def authorize(self) -> AuthorizationResult:
        params = self.get_auth_params()
        answer = self._request_token({
            "grant_type": "password",
            "client_id": params.client_id,
            "client_secret": params.client_secret,
            "username": params.login,
            "password": params.password,
            "scope": params.scope,
            "v": params.api_version,
            "2fa_supported": "1",
            "code": params.two_factor_code,
            "captcha_sid": params.captcha_sid,
            "captcha_key": params.captcha_key,
        })
        # a captcha answer is single-use
        if params.captcha_sid is not None:
            self.set_auth_params(replace(params, captcha_sid=None, captcha_key=None))
        logger.debug(f"User {answer.get('user_id')} authorized via direct authorization")
        return self._to_result(answer)


# =============================================================================
# Helper Functions
# =============================================================================


def create_authorization_flow(config: AuthConfig | None = None, api_version: str | None = None) -> AuthorizationFlow:
    """
    Create an authorization flow from configuration.

    Uses PasswordAuthorizationFlow when login and password are configured,
    ClientCredentialsAuthorizationFlow otherwise.

    Args:
        config: Optional AuthConfig with credentials. If None, uses
            VKSDK.config.auth from global configuration.
        api_version: API version sent as `v` by the flow.

    Returns:
        Configured AuthorizationFlow instance.

    Raises:
        ConfigurationError: If client credentials are not configured.

    Example:
        >>> from vksdk import VKSDK
        >>> VKSDK.configure(auth={"client_id": "123", "client_secret": "s3cr3t"})
        >>> flow = create_authorization_flow()
    """
    if config is None:
        from vksdk._config import VKSDK

        config = VKSDK.config.auth

    if not config.has_credentials():
        raise ConfigurationError(
            "Client credentials not configured. "
            "Set client_id and client_secret via VKSDK.configure() or environment variables "
            "(VKSDK_AUTH_CLIENT_ID, VKSDK_AUTH_CLIENT_SECRET)."
        )

    if config.has_user_credentials():
        return PasswordAuthorizationFlow(
            client_id=config.client_id,  # type: ignore[arg-type]
            client_secret=config.client_secret,  # type: ignore[arg-type]
            login=config.login,  # type: ignore[arg-type]
            password=config.password,  # type: ignore[arg-type]
            scope=config.scope,
            token_url=config.token_url,
            api_version=api_version,
        )

    return ClientCredentialsAuthorizationFlow(
        client_id=config.client_id,  # type: ignore[arg-type]
        client_secret=config.client_secret,  # type: ignore[arg-type]
        token_url=config.service_token_url,
        api_version=api_version,
    )
