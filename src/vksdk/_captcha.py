"""
CAPTCHA handling for the vksdk SDK.

When the provider answers with error 14 ("Captcha needed"), the call can be
repeated with `captcha_sid` and `captcha_key` parameters. CaptchaHandler does
that repetition once, asking a CaptchaSolver for the answer.

Example:
    >>> from vksdk import CaptchaHandler, CallbackCaptchaSolver
    >>> handler = CaptchaHandler(CallbackCaptchaSolver(lambda url: input(f"{url}: ")))
    >>> answer = handler.perform(lambda sid, key: send(sid, key))
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar, override

from vksdk._errors import CaptchaRequiredError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CaptchaSolver(ABC):
    """
    Abstract base class for CAPTCHA solvers.

    Implementations turn a challenge image into its text answer. They are
    called synchronously from the thread performing the API call.

    Example:
        >>> class ConsoleSolver(CaptchaSolver):
        ...     def solve(self, image_url: str) -> str:
        ...         return input(f"Captcha ({image_url}): ")
    """

    @abstractmethod
    def solve(self, image_url: str) -> str:
        """
        Solve the challenge shown at `image_url`.

        Args:
            image_url: URL of the CAPTCHA image.

        Returns:
            The answer to send as `captcha_key`.
        """
        pass

    def report_incorrect(self) -> None:
        """Called when the provider rejected the last answer. Does nothing by default."""
        pass


class CallbackCaptchaSolver(CaptchaSolver):
    """
    Adapts a plain callable into a CaptchaSolver.

    Args:
        solve_fn: Called with the image URL, returns the answer.
        on_incorrect: Optional callable invoked when an answer was rejected.
    """

    def __init__(
        self,
        solve_fn: Callable[[str], str],
        on_incorrect: Callable[[], None] | None = None,
    ):
        assert solve_fn is not None, "solve_fn can not be None."
        self._solve_fn = solve_fn
        self._on_incorrect = on_incorrect

    @override
    def solve(self, image_url: str) -> str:
        return self._solve_fn(image_url)

    @override
    def report_incorrect(self) -> None:
        if self._on_incorrect is not None:
            self._on_incorrect()


class CaptchaHandler:
    """
    Runs an operation and retries it once with a solved CAPTCHA.

    The operation receives `(captcha_sid, captcha_key)`: `(None, None)` on the
    first attempt and the solved pair on the retry. Without a solver, or when
    the retry is rejected again, the CaptchaRequiredError reaches the caller.

    Attributes:
        solver: The configured solver, or None.
        recognition_count: How many times the solver was asked over the
            handler's lifetime.
    """

    def __init__(self, solver: CaptchaSolver | None = None):
        self.solver = solver
        self._recognition_count = 0
        self._lock = threading.Lock()

    @property
    def recognition_count(self) -> int:
        return self._recognition_count

    def perform(self, operation: Callable[[str | None, str | None], T]) -> T:
        """
        Run the operation, solving at most one CAPTCHA on the way.

        Args:
            operation: Callable taking `(captcha_sid, captcha_key)`.

        Returns:
            The operation's result.

        Raises:
            CaptchaRequiredError: If there is no solver or the retry also needs a captcha.
        """
        try:
            return operation(None, None)
        except CaptchaRequiredError as e:
            if self.solver is None:
                raise
            captcha = e

        with self._lock:
            self._recognition_count += 1
        logger.debug(f"Captcha {captcha.captcha_sid} requested, asking the solver...")
        answer = self.solver.solve(captcha.captcha_img)

        try:
            return operation(captcha.captcha_sid, answer)
        except CaptchaRequiredError:
            logger.warning(f"⚠️ Captcha answer for {captcha.captcha_sid} was rejected.")
            self.solver.report_incorrect()
            raise
