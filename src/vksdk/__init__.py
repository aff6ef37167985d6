"""
VK SDK for Python.

A Python client for the VK social network API: method calls with typed
answers, authorization flows, client-side rate limiting, captcha solving
and long-poll queries.

Quick Start:
    >>> from vksdk import VkApi, VkParameters, User
    >>> api = VkApi()
    >>> api.authorize_with_token("my-token")
    >>> response = api.call("users.get", VkParameters({"user_ids": 1}))
    >>> users = api.call_as("users.get", VkParameters({"user_ids": 1}), list[User])

Global Configuration:
    >>> from vksdk import VKSDK
    >>>
    >>> # Pre-loaded with defaults + env vars
    >>> version = VKSDK.config.api.version
    >>>
    >>> # Custom configuration
    >>> VKSDK.configure(
    ...     api={"language": "en", "requests_per_second": 3},
    ...     auth={"client_id": "123", "client_secret": "s3cr3t"},
    ... )

Main Classes:
    - VkApi: Client for the VK API.
    - VkApiOptions: Per-client options overriding the global config.
    - VkParameters: Method parameters.
    - VkResponse: Wrapper around an API answer.
    - TokenManager: Access token holder with expiration notifications.

Configuration:
    - VKSDK: Global SDK singleton for configuration.
    - VKSDKConfig: Root configuration dataclass.
    - ApiConfig: API client configuration.
    - AuthConfig: Authorization configuration.
    - ConfigEnvVarError: Exception raised when env var parsing fails.
    - ConfigValidationError: Exception raised when config validation fails.

Authorization:
    - AuthorizationFlow: Abstract base class for authorization flows.
    - ClientCredentialsAuthorizationFlow: Service token for an application.
    - PasswordAuthorizationFlow: Direct authorization with login and password.
    - create_authorization_flow: Helper to create a flow from config.

Captcha:
    - CaptchaSolver: Abstract base class for captcha solvers.
    - CallbackCaptchaSolver: Solver backed by a plain function.
    - CaptchaHandler: Retries an operation once with a solved captcha.

HTTP Client:
    - HttpClient: Abstract base class for HTTP clients.
    - RequestsHttpClient: HTTP client backed by a requests Session. Default.

Rate Limiting:
    - RateLimiter: FIFO limiter allowing at most N operations per window.
    - TokenAcquisitionTimeoutError: Raised when the limiter exceeds max_wait_time.

Models:
    - deserialize, map_node, default_converters, ConverterSet, JsonConverter
    - VkCollection, Attachment, Video, Photo, Link, User, Message, RecentCalls, ...
"""

from importlib.metadata import version as _get_version

__version__ = _get_version("vksdk")

from vksdk._api import ResolvedApiOptions, VkApi, VkApiOptions
from vksdk._auth import (
    ApiAuthParams,
    AuthorizationFlow,
    AuthorizationResult,
    ClientCredentialsAuthorizationFlow,
    PasswordAuthorizationFlow,
    create_authorization_flow,
)
from vksdk._captcha import CallbackCaptchaSolver, CaptchaHandler, CaptchaSolver
from vksdk._config import (
    VKSDK,
    ApiConfig,
    AuthConfig,
    ConfigEnvVarError,
    ConfigValidationError,
    VKSDKConfig,
)
from vksdk._converters import (
    AttachmentConverter,
    CollectionConverter,
    ConverterSet,
    DefaultValueConverter,
    JsonConverter,
    StringEnumConverter,
    UnixDateTimeConverter,
    default_converters,
    deserialize,
    map_node,
)
from vksdk._envelope import VkParameters, VkResponse
from vksdk._errors import (
    AccessTokenInvalidError,
    AuthenticationError,
    CaptchaRequiredError,
    ConfigurationError,
    DeserializationError,
    InvalidParameterError,
    LongPollError,
    NeedValidationError,
    PermissionDeniedError,
    PublicServerError,
    TooManyRequestsError,
    TransportError,
    UnknownError,
    UserAuthorizationFailError,
    VkApiError,
    VkSdkError,
)
from vksdk._http import HttpClient, RequestsHttpClient
from vksdk._models import (
    Attachment,
    Language,
    Likes,
    Link,
    MediaAttachment,
    Message,
    Model,
    Photo,
    PhotoSize,
    RecentCalls,
    Sex,
    UnknownAttachment,
    User,
    Video,
    VkCollection,
)
from vksdk._rate_limit import RateLimiter, TokenAcquisitionTimeoutError
from vksdk._token import Credential, TokenManager

__all__ = [
    "__version__",
    # Client
    "VkApi",
    "VkApiOptions",
    "ResolvedApiOptions",
    "VkParameters",
    "VkResponse",
    # Configuration
    "VKSDK",
    "VKSDKConfig",
    "ApiConfig",
    "AuthConfig",
    "ConfigEnvVarError",
    "ConfigValidationError",
    # Authorization
    "ApiAuthParams",
    "AuthorizationFlow",
    "AuthorizationResult",
    "ClientCredentialsAuthorizationFlow",
    "PasswordAuthorizationFlow",
    "create_authorization_flow",
    "TokenManager",
    "Credential",
    # Captcha
    "CaptchaSolver",
    "CallbackCaptchaSolver",
    "CaptchaHandler",
    # HTTP Client
    "HttpClient",
    "RequestsHttpClient",
    # Rate Limiting
    "RateLimiter",
    "TokenAcquisitionTimeoutError",
    # Errors
    "VkSdkError",
    "ConfigurationError",
    "AccessTokenInvalidError",
    "AuthenticationError",
    "TransportError",
    "DeserializationError",
    "VkApiError",
    "UnknownError",
    "UserAuthorizationFailError",
    "TooManyRequestsError",
    "PermissionDeniedError",
    "PublicServerError",
    "InvalidParameterError",
    "CaptchaRequiredError",
    "NeedValidationError",
    "LongPollError",
    # Models
    "deserialize",
    "map_node",
    "default_converters",
    "ConverterSet",
    "JsonConverter",
    "CollectionConverter",
    "DefaultValueConverter",
    "UnixDateTimeConverter",
    "AttachmentConverter",
    "StringEnumConverter",
    "Model",
    "VkCollection",
    "Attachment",
    "MediaAttachment",
    "UnknownAttachment",
    "Video",
    "Photo",
    "PhotoSize",
    "Link",
    "Likes",
    "User",
    "Message",
    "RecentCalls",
    "Language",
    "Sex",
]
