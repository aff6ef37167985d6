"""
API client for the VK social network.

VkApi is the single entry point every method call goes through: it adds the
version, token and language parameters, waits for the rate limiter, posts the
form, turns provider errors into exceptions, answers captchas through the
captcha handler and maps the answer onto typed models.

Example:
    >>> from vksdk import VkApi, VkParameters, User
    >>> api = VkApi()
    >>> api.authorize_with_token("my-token")
    >>> users = api.call_as("users.get", VkParameters({"user_ids": 1}), list[User])
    >>> users[0].first_name
    'Pavel'
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, TypeVar

import requests

from vksdk._auth import AuthorizationFlow, create_authorization_flow
from vksdk._captcha import CaptchaHandler, CaptchaSolver
from vksdk._converters import ConverterSet, default_converters, map_node
from vksdk._envelope import VkParameters, VkResponse
from vksdk._errors import (
    AccessTokenInvalidError,
    ConfigurationError,
    DeserializationError,
    TransportError,
    raise_for_error,
)
from vksdk._http import HttpClient
from vksdk._models import Language
from vksdk._rate_limit import RateLimiter, TokenAcquisitionTimeoutError
from vksdk._token import TokenExpiresListener, TokenManager
from vksdk._utils import format_params_for_log, is_timeout_exception, pretty_print_json

if TYPE_CHECKING:
    from collections.abc import Mapping

    from vksdk._config import ApiConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class VkApiOptions:
    """
    Configuration options for the VkApi client.

    Fields set to None will use values from global config (VKSDK.config.api).

    Attributes:
        base_url: Base URL of the method endpoint.
        version: API version sent as `v`.
        request_timeout: HTTP request timeout in seconds.
        language: Language sent as `lang`.
        requests_per_second: Client-side rate limit, 0 for unlimited.
        max_captcha_recognition_count: Captchas the client may solve over its lifetime.

    Example:
        >>> api = VkApi(options=VkApiOptions(requests_per_second=20, language="en"))
    """

    base_url: str | None = None
    version: str | None = None
    request_timeout: int | None = None
    language: str | Language | None = None
    requests_per_second: int | None = None
    max_captcha_recognition_count: int | None = None

    def with_defaults_from(self, cfg: ApiConfig) -> ResolvedApiOptions:
        """
        Returns ResolvedApiOptions with None values filled from config.

        User-provided values take precedence; None values use config defaults.
        """
        return ResolvedApiOptions(
            base_url=self.base_url if self.base_url is not None else cfg.base_url,
            version=self.version if self.version is not None else cfg.version,
            request_timeout=self.request_timeout if self.request_timeout is not None else cfg.request_timeout,
            language=self.language if self.language is not None else cfg.language,
            requests_per_second=self.requests_per_second if self.requests_per_second is not None else cfg.requests_per_second,
            max_captcha_recognition_count=(
                self.max_captcha_recognition_count
                if self.max_captcha_recognition_count is not None
                else cfg.max_captcha_recognition_count
            ),
        )


@dataclass(frozen=True)
class ResolvedApiOptions:
    """VkApiOptions after every None field was filled from VKSDK.config.api."""

    base_url: str
    version: str
    request_timeout: int
    language: str | Language | None
    requests_per_second: int
    max_captcha_recognition_count: int


def _to_language(value: str | Language | None) -> Language | None:
    if value is None or isinstance(value, Language):
        return value
    for member in Language:
        if value.lower() in (member.value, member.name.lower()):
            return member
    raise ConfigurationError(f"Unsupported language: {value!r}")


class VkApi:
    """
    Synchronous client for the VK API, with async twins of every call.

    All collaborators are passed to the constructor and wired once; anything
    not given is built from the global configuration (VKSDK.config).

    Example:
        >>> api = VkApi(captcha_solver=MySolver())
        >>> api.authorize(ClientCredentialsAuthorizationFlow("123", "s3cr3t"))
        >>> response = api.call("utils.getServerTime", VkParameters())
        >>> response.value
        1718000000

    Attributes:
        base_url: Base URL of the method endpoint.
        version: API version sent as `v`.
        options: Resolved client options.
        http_client: Transport used for every call.
        authorization_flow: Flow used by authorize() and refresh_token().
    """

    def __init__(
        self,
        options: VkApiOptions | None = None,
        http_client: HttpClient | None = None,
        captcha_solver: CaptchaSolver | None = None,
        authorization_flow: AuthorizationFlow | None = None,
        rate_limiter: RateLimiter | None = None,
        converters: ConverterSet | None = None,
    ):
        """
        Initialize the client.

        Args:
            options: Client options. None fields fall back to VKSDK.config.api.
            http_client: Transport. Defaults to RequestsHttpClient.
            captcha_solver: Solver for captcha challenges. Without one,
                CaptchaRequiredError reaches the caller.
            authorization_flow: Flow for authorize(). Defaults to one built
                from VKSDK.config.auth when credentials are configured.
            rate_limiter: Limiter shared by every call. Defaults to a new one
                set to `requests_per_second`.
            converters: Converter set for call_as(). Defaults to default_converters().

        Raises:
            ConfigurationError: If a collaborator has the wrong type or an option is invalid.
        """
        from vksdk._config import VKSDK

        cfg = VKSDK.config
        resolved_options = (options or VkApiOptions()).with_defaults_from(cfg.api)

        if http_client is None:
            from vksdk._http import RequestsHttpClient
            http_client = RequestsHttpClient()
        if not isinstance(http_client, HttpClient):
            raise ConfigurationError(f"http_client must be an HttpClient, got {type(http_client).__name__}")
        if captcha_solver is not None and not isinstance(captcha_solver, CaptchaSolver):
            raise ConfigurationError(f"captcha_solver must be a CaptchaSolver, got {type(captcha_solver).__name__}")
        if authorization_flow is None and cfg.auth.has_credentials():
            authorization_flow = create_authorization_flow(cfg.auth, api_version=resolved_options.version)

        assert resolved_options.base_url, "VkApi base_url cannot be empty."
        assert resolved_options.version, "VkApi version cannot be empty."

        self.options: ResolvedApiOptions = resolved_options
        self.base_url = resolved_options.base_url.rstrip("/")
        self.version: str = resolved_options.version
        self.http_client: HttpClient = http_client
        self.authorization_flow: AuthorizationFlow | None = authorization_flow

        self._captcha_handler = CaptchaHandler(captcha_solver)
        self._rate_limiter = rate_limiter or RateLimiter()
        self._converters = converters or default_converters()
        self._language = _to_language(resolved_options.language)
        self._token_listeners: list[TokenExpiresListener] = []
        self._lock = threading.Lock()
        self._access_token = TokenManager(self)
        self._last_invoke_time: datetime | None = None
        self._requests_per_second = 0

        self.max_captcha_recognition_count: int = resolved_options.max_captcha_recognition_count
        self.requests_per_second = resolved_options.requests_per_second

        logger.debug("VkApi initialized successfully")

    # =========================================================================
    # Settings
    # =========================================================================

    @property
    def captcha_solver(self) -> CaptchaSolver | None:
        return self._captcha_handler.solver

    @captcha_solver.setter
    def captcha_solver(self, solver: CaptchaSolver | None) -> None:
        self._captcha_handler.solver = solver

    @property
    def captcha_handler(self) -> CaptchaHandler:
        return self._captcha_handler

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def converters(self) -> ConverterSet:
        return self._converters

    def set_language(self, language: str | Language | None) -> None:
        """Set the language of the answers, or None to let the provider decide."""
        self._language = _to_language(language)

    def get_language(self) -> Language | None:
        return self._language

    @property
    def requests_per_second(self) -> int:
        """Maximum calls per second. 0 disables client-side rate limiting."""
        return self._requests_per_second

    @requests_per_second.setter
    def requests_per_second(self, value: int) -> None:
        if value is None or value < 0:
            raise ConfigurationError(f"requests_per_second must be >= 0, got {value}")
        self._requests_per_second = value
        self._rate_limiter.set_rate(value, 1.0)

    @property
    def last_invoke_time(self) -> datetime | None:
        """When the most recent request was sent, successful or not."""
        return self._last_invoke_time

    @property
    def last_invoke_timedelta(self) -> timedelta | None:
        if self._last_invoke_time is None:
            return None
        return datetime.now().astimezone() - self._last_invoke_time

    # =========================================================================
    # Token
    # =========================================================================

    @property
    def access_token(self) -> TokenManager:
        return self._access_token

    @access_token.setter
    def access_token(self, manager: TokenManager) -> None:
        assert manager is not None, "Token manager can not be None."
        self._install_token_manager(manager)

    @property
    def user_id(self) -> int | None:
        return self._access_token.user_id

    @property
    def is_authorized(self) -> bool:
        return self._access_token.is_authorized

    def on_token_expires(self, listener: TokenExpiresListener) -> None:
        """
        Register a listener called with this api when the access token expires.

        The registration survives re-authorization and log out.
        """
        with self._lock:
            self._token_listeners.append(listener)
            self._access_token.add_listener(listener)

    def remove_token_expires_listener(self, listener: TokenExpiresListener) -> None:
        with self._lock:
            if listener in self._token_listeners:
                self._token_listeners.remove(listener)
            self._access_token.remove_listener(listener)

    def _install_token_manager(self, manager: TokenManager) -> None:
        with self._lock:
            previous = self._access_token
            for listener in self._token_listeners:
                if listener not in manager.listeners:
                    manager.add_listener(listener)
            self._access_token = manager
        if previous is not None and previous is not manager:
            previous.close()

    def authorize(self, authorization_flow: AuthorizationFlow | None = None) -> None:
        """
        Obtain a token through an authorization flow and install it.

        Args:
            authorization_flow: Flow to run. Defaults to `self.authorization_flow`,
                or one built from VKSDK.config.auth.

        Raises:
            ConfigurationError: If no flow is given and none can be built.
            AuthenticationError: If the provider refuses the credentials.
            CaptchaRequiredError: If a captcha is needed and cannot be answered.
        """
        flow = authorization_flow or self.authorization_flow
        if flow is None:
            flow = create_authorization_flow(api_version=self.version)
        self.authorization_flow = flow

        if self._should_solve_captcha():
            result = self._captcha_handler.perform(
                lambda sid, key: self._authorize_with_captcha(flow, sid, key)
            )
        else:
            result = flow.authorize()

        self._install_token_manager(
            TokenManager(
                self,
                token=result.access_token,
                user_id=result.user_id,
                expire_time=result.expires_in,
            )
        )
        logger.debug("✅ Authorization succeeded")

    @staticmethod
    def _authorize_with_captcha(flow: AuthorizationFlow, captcha_sid: str | None, captcha_key: str | None) -> Any:
        if captcha_sid is not None:
            flow.set_auth_params(replace(flow.get_auth_params(), captcha_sid=captcha_sid, captcha_key=captcha_key))
        return flow.authorize()

    def authorize_with_token(self, token: str, user_id: int | None = None, expire_time: int = 0) -> None:
        """Install an already issued token."""
        self._install_token_manager(TokenManager(self, token=token, user_id=user_id, expire_time=expire_time))

    def refresh_token(self) -> bool:
        """Re-run the authorization flow. Returns whether the new token is authorized."""
        return self._access_token.refresh_token()

    def log_out(self) -> None:
        """Drop the current token. The client is unauthorized afterwards."""
        self._install_token_manager(TokenManager(self))

    # =========================================================================
    # Calls
    # =========================================================================

    def call(
        self,
        method_name: str,
        parameters: Mapping[str, Any] | None = None,
        skip_authorization: bool = False,
    ) -> VkResponse:
        """
        Call an API method.

        Args:
            method_name: Method name, e.g. "users.get".
            parameters: Method parameters.
            skip_authorization: Allow the call without an access token.

        Returns:
            The `response` member of the answer.

        Raises:
            AccessTokenInvalidError: If unauthorized and skip_authorization is False.
            VkApiError: If the provider answered with an error.
            TransportError: If the request failed.
            TokenAcquisitionTimeoutError: If the rate limiter gave up waiting.
        """
        answer = self._call_base(method_name, parameters, skip_authorization)
        return self._parse(answer, root=False)

    def call_as(
        self,
        method_name: str,
        parameters: Mapping[str, Any] | None,
        model_type: type[T] | Any,
        skip_authorization: bool = False,
        converters: ConverterSet | None = None,
    ) -> T:
        """
        Call an API method and map its `response` member onto `model_type`.

        Args:
            method_name: Method name, e.g. "users.get".
            parameters: Method parameters.
            model_type: Target type, e.g. `list[User]` or `VkCollection[Message]`.
            skip_authorization: Allow the call without an access token.
            converters: Converter set overriding the client's.

        Raises:
            DeserializationError: If the answer does not fit `model_type`.
            (and everything call() raises)
        """
        answer = self._call_base(method_name, parameters, skip_authorization)
        response = self._parse(answer, root=False)
        try:
            return map_node(response.value, model_type, converters or self._converters)
        except DeserializationError as e:
            if e.payload is None:
                e.payload = answer
            raise

    def invoke(
        self,
        method_name: str,
        parameters: Mapping[str, Any] | None = None,
        skip_authorization: bool = False,
    ) -> str:
        """
        Send a method call as is and return the raw JSON answer.

        Parameters are not enriched; use call() for that.

        Raises:
            AccessTokenInvalidError: If unauthorized and skip_authorization is False.
            VkApiError: If the provider answered with an error.
            TransportError: If the request failed.
        """
        if not skip_authorization and not self._access_token.is_authorized:
            message = f"Method '{method_name}' cannot be called without authorization"
            logger.error(f"❌ {message}")
            raise AccessTokenInvalidError(message)

        url = f"{self.base_url}/{method_name}"
        answer = self._invoke_base(url, VkParameters(parameters))

        logger.debug(f"Uri = \"{url}\"")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Json =\n{pretty_print_json(answer)}")

        raise_for_error(answer)
        return answer

    def call_long_poll(self, server: str, parameters: Mapping[str, Any] | None = None) -> VkResponse:
        """
        Query a long-poll server.

        Args:
            server: Server URL returned by a `*.getLongPollServer` method.
            parameters: Query parameters (key, ts, wait, ...).

        Returns:
            The whole answer document.

        Raises:
            ConfigurationError: If server is empty.
            LongPollError: If the server answered with a `failed` envelope.
        """
        answer = self.invoke_long_poll(server, parameters)
        return self._parse(answer, root=True)

    def invoke_long_poll(self, server: str, parameters: Mapping[str, Any] | None = None) -> str:
        """Query a long-poll server and return the raw JSON answer."""
        if not server:
            message = "Long poll server must not be empty"
            logger.error(f"❌ {message}")
            raise ConfigurationError(message)

        url = server if server.startswith(("http://", "https://")) else f"https://{server}"
        params = VkParameters(parameters)
        logger.debug(f"Calling long poll server {url} with params {format_params_for_log(params)}")

        # the server holds the request up to `wait` seconds before answering
        wait = int(params.get("wait", "0") or 0)
        timeout = max(self.options.request_timeout, wait + 10)

        answer = self._invoke_base(url, params, timeout=timeout)

        logger.debug(f"Uri = \"{url}\"")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Json =\n{pretty_print_json(answer)}")

        raise_for_error(answer)
        return answer

    # =========================================================================
    # Async
    # =========================================================================

    async def call_async(
        self,
        method_name: str,
        parameters: Mapping[str, Any] | None = None,
        skip_authorization: bool = False,
    ) -> VkResponse:
        return await asyncio.to_thread(self.call, method_name, parameters, skip_authorization)

    async def call_as_async(
        self,
        method_name: str,
        parameters: Mapping[str, Any] | None,
        model_type: type[T] | Any,
        skip_authorization: bool = False,
        converters: ConverterSet | None = None,
    ) -> T:
        return await asyncio.to_thread(
            self.call_as, method_name, parameters, model_type, skip_authorization, converters
        )

    async def invoke_async(
        self,
        method_name: str,
        parameters: Mapping[str, Any] | None = None,
        skip_authorization: bool = False,
    ) -> str:
        return await asyncio.to_thread(self.invoke, method_name, parameters, skip_authorization)

    async def call_long_poll_async(self, server: str, parameters: Mapping[str, Any] | None = None) -> VkResponse:
        return await asyncio.to_thread(self.call_long_poll, server, parameters)

    async def invoke_long_poll_async(self, server: str, parameters: Mapping[str, Any] | None = None) -> str:
        return await asyncio.to_thread(self.invoke_long_poll, server, parameters)

    async def authorize_async(self, authorization_flow: AuthorizationFlow | None = None) -> None:
        await asyncio.to_thread(self.authorize, authorization_flow)

    async def log_out_async(self) -> None:
        await asyncio.to_thread(self.log_out)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Cancel the token timer and release the transport."""
        self._access_token.close()
        self.http_client.close()

    def __enter__(self) -> VkApi:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"VkApi(base_url={self.base_url!r}, version={self.version!r}, authorized={self.is_authorized})"

    # =========================================================================
    # Private
    # =========================================================================

    def _should_solve_captcha(self) -> bool:
        return (
            self._captcha_handler.solver is not None
            and self._captcha_handler.recognition_count < self.max_captcha_recognition_count
        )

    def _enrich(self, parameters: VkParameters) -> None:
        parameters.add_if_absent("v", self.version)
        if self._access_token.is_authorized:
            parameters.add_if_absent("access_token", self._access_token.token_value())
        if self._language is not None:
            parameters.add_if_absent("lang", self._language)

        flow = self.authorization_flow
        client_secret = flow.get_auth_params().client_secret if flow is not None else None
        if client_secret and client_secret.strip():
            parameters.add_if_absent("client_secret", client_secret)

    def _call_base(
        self,
        method_name: str,
        parameters: Mapping[str, Any] | None,
        skip_authorization: bool,
    ) -> str:
        assert method_name, "Method name cannot be empty."

        params = VkParameters(parameters)
        self._enrich(params)

        logger.debug(f"Calling method {method_name} with params {format_params_for_log(params)}")

        if not self._should_solve_captcha():
            return self.invoke(method_name, params, skip_authorization)

        def attempt(captcha_sid: str | None, captcha_key: str | None) -> str:
            attempt_params = params
            if captcha_sid is not None:
                attempt_params = params.copy()
                attempt_params["captcha_sid"] = captcha_sid
                attempt_params["captcha_key"] = captcha_key
            return self.invoke(method_name, attempt_params, skip_authorization)

        return self._captcha_handler.perform(attempt)

    def _invoke_base(self, url: str, parameters: VkParameters, timeout: int | None = None) -> str:
        request_timeout = timeout or self.options.request_timeout

        def send_request() -> str:
            self._last_invoke_time = datetime.now().astimezone()
            try:
                response = self.http_client.post(url, data=dict(parameters), timeout=request_timeout)
            except requests.Timeout as e:
                raise TransportError(f"Request to {url} timed out after {request_timeout}s", cause=e, timed_out=True) from e
            except requests.RequestException as e:
                raise TransportError(f"Request to {url} failed: {e}", cause=e) from e

            answer = response.text
            if not response.ok:
                try:
                    json.loads(answer)
                except ValueError as e:
                    raise TransportError(
                        f"Request to {url} failed with HTTP {response.status_code}", cause=e
                    ) from e
            return answer

        try:
            return self._rate_limiter.perform(send_request)
        except (TransportError, TokenAcquisitionTimeoutError) as e:
            if is_timeout_exception(e):
                logger.warning(f"⏱️ Request to {url} timed out: {e}")
            raise

    @staticmethod
    def _parse(answer: str, root: bool) -> VkResponse:
        try:
            return VkResponse.from_json(answer, root=root)
        except ValueError as e:
            raise DeserializationError(f"Response is not valid JSON: {e}", payload=answer, cause=e) from e
