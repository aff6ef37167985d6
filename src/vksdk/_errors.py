"""
Error taxonomy for the vksdk SDK.

Every error raised by the SDK derives from VkSdkError. Provider errors found in
the response envelope are mapped to VkApiError subclasses by their numeric
`error_code`; see `raise_for_error()`.

Example:
    >>> from vksdk import VkApi, CaptchaRequiredError, VkApiError
    >>> try:
    ...     api.call("wall.post", params)
    ... except CaptchaRequiredError as e:
    ...     print(f"Captcha {e.captcha_sid}: {e.captcha_img}")
    ... except VkApiError as e:
    ...     print(f"VK error {e.code}: {e.message}")
"""

from __future__ import annotations

import json
from typing import Any

# =============================================================================
# Base
# =============================================================================


class VkSdkError(Exception):
    """
    Base class for all errors raised by the SDK.

    Attributes:
        message: Description of the failure.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigurationError(VkSdkError, ValueError):
    """
    Raised at configuration time for invalid settings.

    Examples: a negative request rate, an empty long-poll server URL or a
    missing collaborator that cannot be built from the global config.
    """

    pass


class AccessTokenInvalidError(VkSdkError):
    """Raised when a method requiring authorization is called without a usable token."""

    pass


class AuthenticationError(VkSdkError):
    """
    Raised when an authorization flow fails to obtain an access token.

    Example:
        >>> try:
        ...     api.authorize()
        ... except AuthenticationError as e:
        ...     print(f"Auth failed: {e}")
    """

    pass


class TransportError(VkSdkError):
    """
    Raised when the HTTP round-trip fails (network error, timeout, bad status).

    The dispatcher never retries these; retry policy belongs to the caller.

    Attributes:
        timed_out: True when the failure was a request timeout.
    """

    def __init__(self, message: str, cause: Exception | None = None, timed_out: bool = False):
        super().__init__(message, cause=cause)
        self.timed_out = timed_out


class DeserializationError(VkSdkError):
    """
    Raised when a JSON payload cannot be mapped onto the requested model.

    Attributes:
        payload: The offending JSON text or node.
        model_type: The target type of the mapping.
    """

    def __init__(
        self,
        message: str,
        payload: Any = None,
        model_type: Any = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.payload = payload
        self.model_type = model_type


# =============================================================================
# Provider Errors
# =============================================================================


class VkApiError(VkSdkError):
    """
    Error returned by the provider inside the `error` member of a response.

    Attributes:
        code: The provider's numeric error code.
        request_params: Echo of the request parameters, when the provider sends it.
        raw_error: The raw `error` node.
    """

    def __init__(
        self,
        code: int,
        message: str,
        request_params: list[dict[str, Any]] | None = None,
        raw_error: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.request_params = request_params or []
        self.raw_error = raw_error or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class UnknownError(VkApiError):
    pass


class UserAuthorizationFailError(VkApiError):
    pass


class TooManyRequestsError(VkApiError):
    pass


class PermissionDeniedError(VkApiError):
    pass


class PublicServerError(VkApiError):
    pass


class InvalidParameterError(VkApiError):
    pass


class CaptchaRequiredError(VkApiError):
    """
    The provider asks for a CAPTCHA to be solved before accepting the call.

    Attributes:
        captcha_sid: Challenge id to send back as `captcha_sid`.
        captcha_img: URL of the challenge image.
    """

    def __init__(
        self,
        code: int,
        message: str,
        captcha_sid: str,
        captcha_img: str,
        request_params: list[dict[str, Any]] | None = None,
        raw_error: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, request_params=request_params, raw_error=raw_error)
        self.captcha_sid = captcha_sid
        self.captcha_img = captcha_img


class NeedValidationError(VkApiError):
    """
    The user must confirm the action on the provider's site.

    Attributes:
        redirect_uri: The validation page.
    """

    def __init__(
        self,
        code: int,
        message: str,
        redirect_uri: str | None = None,
        request_params: list[dict[str, Any]] | None = None,
        raw_error: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, request_params=request_params, raw_error=raw_error)
        self.redirect_uri = redirect_uri


class LongPollError(VkSdkError):
    """
    A long-poll server answered with a `failed` envelope.

    Attributes:
        failed: The failure kind (1 = history outdated, 2 = key expired, 3 = info lost).
        ts: The new event number, when the server sends one.
    """

    def __init__(self, failed: int, ts: Any = None):
        super().__init__(f"Long poll request failed (failed={failed})")
        self.failed = failed
        self.ts = ts


CAPTCHA_NEEDED = 14

ERROR_CODES: dict[int, type[VkApiError]] = {
    1: UnknownError,
    5: UserAuthorizationFailError,
    6: TooManyRequestsError,
    7: PermissionDeniedError,
    10: PublicServerError,
    15: PermissionDeniedError,
    100: InvalidParameterError,
    113: InvalidParameterError,
}


def error_from_node(error: dict[str, Any]) -> VkApiError:
    """
    Build the typed error for a provider `error` node.

    Args:
        error: The `error` member of a response document.

    Returns:
        The VkApiError subclass registered for the node's `error_code`,
        or VkApiError itself for unregistered codes.
    """
    code = int(error.get("error_code", 0))
    message = str(error.get("error_msg", ""))
    request_params = error.get("request_params")

    if code == CAPTCHA_NEEDED:
        return CaptchaRequiredError(
            code,
            message,
            captcha_sid=str(error.get("captcha_sid", "")),
            captcha_img=str(error.get("captcha_img", "")),
            request_params=request_params,
            raw_error=error,
        )
    if code == 17:
        return NeedValidationError(
            code,
            message,
            redirect_uri=error.get("redirect_uri"),
            request_params=request_params,
            raw_error=error,
        )

    error_class = ERROR_CODES.get(code, VkApiError)
    return error_class(code, message, request_params=request_params, raw_error=error)


def raise_for_error(answer: str | dict[str, Any]) -> None:
    """
    Raise the typed error carried by a response document, if any.

    Args:
        answer: Raw JSON text or an already parsed document.

    Raises:
        VkApiError: When the document has an `error` member.
        LongPollError: When the document is a long-poll `failed` envelope.
        DeserializationError: When the text is not valid JSON.
    """
    if isinstance(answer, str):
        try:
            document = json.loads(answer)
        except ValueError as e:
            raise DeserializationError(f"Response is not valid JSON: {e}", payload=answer, cause=e) from e
    else:
        document = answer

    if not isinstance(document, dict):
        return

    error = document.get("error")
    if isinstance(error, dict):
        raise error_from_node(error)

    failed = document.get("failed")
    if failed is not None:
        raise LongPollError(failed=int(failed), ts=document.get("ts"))
