"""
HTTP transport for the vksdk SDK.

The provider takes every method call as a form-encoded POST and answers with
JSON text. HttpClient is the seam the dispatcher talks to; RequestsHttpClient
is the default implementation.

Example:
    >>> from vksdk._http import RequestsHttpClient
    >>> client = RequestsHttpClient()
    >>> response = client.post("https://api.vk.com/method/users.get", data={"user_ids": "1"})
    >>> response.text
    '{"response": [...]}'
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, override

import requests

logger = logging.getLogger(__name__)


class HttpClient(ABC):
    """
    Abstract base class for HTTP clients.

    Implementations send a form-encoded POST and return the raw response.
    They can be wrapped with decorators for cross-cutting concerns.

    Example:
        >>> class MyHttpClient(HttpClient):
        ...     def post(self, url, data=None, headers=None, timeout=30):
        ...         return requests.post(url, data=data, headers=headers, timeout=timeout)
    """

    @abstractmethod
    def post(
        self,
        url: str,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        """
        Execute a POST request with a form-encoded body.

        Args:
            url: The full URL to request.
            data: Form parameters to send in the request body.
            headers: Additional headers to include.
            timeout: Request timeout in seconds.

        Returns:
            The HTTP response.

        Raises:
            requests.RequestException: If the HTTP request fails.
        """
        pass

    def close(self) -> None:
        """Release pooled connections. Does nothing by default."""
        pass


class RequestsHttpClient(HttpClient):
    """
    HTTP client backed by a `requests.Session`.

    The session keeps connections alive between calls to the same host.

    Args:
        session: Optional pre-configured session (proxies, adapters, ...).
        user_agent: Value of the User-Agent header.
    """

    DEFAULT_USER_AGENT = "vksdk-python"

    def __init__(
        self,
        session: requests.Session | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self._session = session or requests.Session()
        self._user_agent = user_agent

    @override
    def post(
        self,
        url: str,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        """
        Execute a form-encoded POST request.

        Raises:
            AssertionError: If url is empty or timeout is invalid.
            requests.RequestException: If the HTTP request fails.
        """
        assert url, "URL cannot be empty."
        assert timeout is not None, "Timeout cannot be None."
        assert timeout > 0, "Timeout must be greater than 0."

        merged_headers = {
            "User-Agent": self._user_agent,
            "Content-Type": "application/x-www-form-urlencoded",
            **(headers or {}),
        }
        return self._session.post(
            url,
            data=data or {},
            headers=merged_headers,
            timeout=timeout,
        )

    @override
    def close(self) -> None:
        self._session.close()
