"""Tests for the VkApi client."""

import asyncio
import json
import unittest
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
import requests

from vksdk import (
    VKSDK,
    AccessTokenInvalidError,
    ApiAuthParams,
    AuthorizationFlow,
    AuthorizationResult,
    CallbackCaptchaSolver,
    CaptchaRequiredError,
    ConfigurationError,
    DeserializationError,
    HttpClient,
    Language,
    LongPollError,
    RateLimiter,
    ResolvedApiOptions,
    Sex,
    TokenManager,
    TooManyRequestsError,
    TransportError,
    User,
    VkApi,
    VkApiError,
    VkApiOptions,
    VkParameters,
    VkResponse,
)

# =============================================================================
# Helpers
# =============================================================================


def _response(payload, status: int = 200) -> MagicMock:
    response = MagicMock(spec=requests.Response)
    response.text = payload if isinstance(payload, str) else json.dumps(payload)
    response.status_code = status
    response.ok = status < 400
    return response


def _captcha_answer(sid: str = "sid-1") -> dict:
    return {"error": {
        "error_code": 14,
        "error_msg": "Captcha needed",
        "captcha_sid": sid,
        "captcha_img": f"https://api.vk.com/captcha.php?sid={sid}",
    }}


def _api(*answers, token: str | None = "abc", **kwargs) -> tuple[VkApi, MagicMock]:
    http_client = MagicMock(spec=HttpClient)
    http_client.post.side_effect = [_response(answer) for answer in answers]
    options = kwargs.pop("options", VkApiOptions(requests_per_second=0))
    api = VkApi(options=options, http_client=http_client, **kwargs)
    if token:
        api.authorize_with_token(token)
    return api, http_client


def _sent_data(http_client: MagicMock, index: int = -1) -> dict:
    return http_client.post.call_args_list[index].kwargs["data"]


def _sent_url(http_client: MagicMock, index: int = -1) -> str:
    return http_client.post.call_args_list[index].args[0]


class StubFlow(AuthorizationFlow):
    """Authorization flow answering from memory."""

    def __init__(
        self,
        token: str = "new-token",
        user_id: int | None = 1,
        expires_in: int = 0,
        params: ApiAuthParams | None = None,
        captcha_first: bool = False,
    ):
        super().__init__(params or ApiAuthParams(client_id="123", client_secret="s3cr3t"))
        self.token = token
        self.user_id = user_id
        self.expires_in = expires_in
        self.captcha_first = captcha_first
        self.calls: list[ApiAuthParams] = []

    def authorize(self) -> AuthorizationResult:
        params = self.get_auth_params()
        self.calls.append(params)
        if self.captcha_first and params.captcha_sid is None:
            raise CaptchaRequiredError(14, "Captcha needed", captcha_sid="auth-sid", captcha_img="img")
        return AuthorizationResult(self.token, self.user_id, self.expires_in)


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        VKSDK.configure(allow_env_override=False)

    def tearDown(self):
        VKSDK.reset()


# =============================================================================
# Construction Tests
# =============================================================================


class TestVkApiConstruction(ApiTestCase):
    """Tests for VkApi.__init__()."""

    def test_defaults_from_global_config(self):
        api = VkApi(http_client=MagicMock(spec=HttpClient))

        self.assertEqual(api.base_url, "https://api.vk.com/method")
        self.assertEqual(api.version, "5.131")
        self.assertEqual(api.requests_per_second, 3)
        self.assertEqual(api.max_captcha_recognition_count, 5)
        self.assertIsNone(api.get_language())
        self.assertIsNone(api.authorization_flow)
        self.assertFalse(api.is_authorized)

    def test_options_override_global_config(self):
        VKSDK.configure(api={"version": "5.100", "request_timeout": 10}, allow_env_override=False)

        api = VkApi(options=VkApiOptions(version="5.199", language="en"), http_client=MagicMock(spec=HttpClient))

        self.assertEqual(api.version, "5.199")
        self.assertEqual(api.options.request_timeout, 10)
        self.assertEqual(api.get_language(), Language.EN)

    def test_with_defaults_from_fills_every_field(self):
        VKSDK.configure(api={"request_timeout": 12, "requests_per_second": 7}, allow_env_override=False)

        resolved = VkApiOptions(version="5.199").with_defaults_from(VKSDK.config.api)

        self.assertIsInstance(resolved, ResolvedApiOptions)
        self.assertEqual(resolved.base_url, "https://api.vk.com/method")
        self.assertEqual(resolved.version, "5.199")
        self.assertEqual(resolved.request_timeout, 12)
        self.assertEqual(resolved.requests_per_second, 7)
        self.assertEqual(resolved.max_captcha_recognition_count, 5)
        self.assertIsNone(resolved.language)

    def test_flow_built_from_configured_credentials(self):
        VKSDK.configure(auth={"client_id": "123", "client_secret": "s3cr3t"}, allow_env_override=False)

        api = VkApi(http_client=MagicMock(spec=HttpClient))

        self.assertIsNotNone(api.authorization_flow)
        self.assertEqual(api.authorization_flow.get_auth_params().client_id, "123")

    def test_rejects_invalid_http_client(self):
        with self.assertRaises(ConfigurationError):
            VkApi(http_client=object())  # type: ignore[arg-type]

    def test_rejects_invalid_captcha_solver(self):
        with self.assertRaises(ConfigurationError):
            VkApi(http_client=MagicMock(spec=HttpClient), captcha_solver=lambda url: "x")  # type: ignore[arg-type]

    def test_rejects_unknown_language(self):
        with self.assertRaises(ConfigurationError):
            VkApi(options=VkApiOptions(language="xx"), http_client=MagicMock(spec=HttpClient))

    def test_rate_limiter_set_to_requests_per_second(self):
        limiter = RateLimiter()

        VkApi(options=VkApiOptions(requests_per_second=20), http_client=MagicMock(spec=HttpClient), rate_limiter=limiter)

        self.assertEqual(limiter.max_operations, 20)
        self.assertEqual(limiter.window, 1.0)


# =============================================================================
# Call Tests
# =============================================================================


class TestVkApiCall(ApiTestCase):
    """Tests for VkApi.call() and invoke()."""

    def test_unauthorized_call_raises_before_transport(self):
        api, http_client = _api({"response": 1}, token=None)

        with self.assertRaises(AccessTokenInvalidError):
            api.call("users.get", VkParameters({"user_ids": 1}))

        http_client.post.assert_not_called()

    def test_skip_authorization_allows_call(self):
        api, http_client = _api({"response": 1}, token=None)

        response = api.call("utils.getServerTime", VkParameters(), skip_authorization=True)

        self.assertEqual(response.value, 1)
        self.assertNotIn("access_token", _sent_data(http_client))

    def test_call_returns_response_member(self):
        api, _ = _api({"response": 42})

        response = api.call("utils.getServerTime")

        self.assertIsInstance(response, VkResponse)
        self.assertEqual(response.value, 42)

    def test_call_posts_to_method_url(self):
        api, http_client = _api({"response": 1})

        api.call("users.get", VkParameters({"user_ids": 1}))

        self.assertEqual(_sent_url(http_client), "https://api.vk.com/method/users.get")

    def test_call_adds_version_and_token(self):
        api, http_client = _api({"response": 1})

        api.call("users.get", VkParameters({"user_ids": [1, 2]}))

        data = _sent_data(http_client)
        self.assertEqual(data["user_ids"], "1,2")
        self.assertEqual(data["v"], "5.131")
        self.assertEqual(data["access_token"], "abc")
        self.assertNotIn("lang", data)
        self.assertNotIn("client_secret", data)

    def test_call_keeps_caller_values(self):
        api, http_client = _api({"response": 1})

        api.call("users.get", VkParameters({"v": "5.100", "access_token": "other"}))

        data = _sent_data(http_client)
        self.assertEqual(data["v"], "5.100")
        self.assertEqual(data["access_token"], "other")

    def test_call_does_not_mutate_caller_parameters(self):
        api, _ = _api({"response": 1})
        params = VkParameters({"user_ids": 1})

        api.call("users.get", params)

        self.assertEqual(dict(params), {"user_ids": "1"})

    def test_call_adds_language(self):
        api, http_client = _api({"response": 1})
        api.set_language(Language.EN)

        api.call("users.get")

        self.assertEqual(_sent_data(http_client)["lang"], "en")

    def test_call_adds_client_secret_of_flow(self):
        api, http_client = _api({"response": 1}, authorization_flow=StubFlow())

        api.call("secure.getAppBalance")

        self.assertEqual(_sent_data(http_client)["client_secret"], "s3cr3t")

    def test_call_maps_provider_error(self):
        api, _ = _api({"error": {"error_code": 6, "error_msg": "Too many requests per second"}})

        with self.assertRaises(TooManyRequestsError) as ctx:
            api.call("users.get")

        self.assertEqual(ctx.exception.code, 6)
        self.assertEqual(str(ctx.exception), "[6] Too many requests per second")

    def test_unregistered_error_code_maps_to_base_error(self):
        api, _ = _api({"error": {"error_code": 9999, "error_msg": "Something"}})

        with self.assertRaises(VkApiError) as ctx:
            api.call("users.get")

        self.assertIs(type(ctx.exception), VkApiError)

    def test_invoke_returns_raw_json(self):
        api, http_client = _api({"response": [1, 2]})

        answer = api.invoke("friends.get", VkParameters({"v": "5.131"}))

        self.assertEqual(json.loads(answer), {"response": [1, 2]})
        self.assertNotIn("access_token", _sent_data(http_client))

    def test_invoke_checks_authorization(self):
        api, http_client = _api({"response": 1}, token=None)

        with self.assertRaises(AccessTokenInvalidError):
            api.invoke("friends.get")

        http_client.post.assert_not_called()

    def test_call_uses_shared_rate_limiter(self):
        now = {"value": 0.0}
        sleeps: list[float] = []

        def sleep(seconds):
            sleeps.append(seconds)
            now["value"] += seconds

        limiter = RateLimiter(clock=lambda: now["value"], sleep=sleep)
        api, _ = _api(
            {"response": 1}, {"response": 2},
            options=VkApiOptions(requests_per_second=1), rate_limiter=limiter,
        )

        api.call("users.get")
        api.call("users.get")

        self.assertEqual(sleeps, [1.0])


# =============================================================================
# call_as Tests
# =============================================================================


class TestVkApiCallAs(ApiTestCase):
    """Tests for VkApi.call_as()."""

    def test_maps_response_onto_model(self):
        api, _ = _api({"response": [{"id": 1, "first_name": "Pavel", "last_name": "Durov", "sex": 2}]})

        users = api.call_as("users.get", VkParameters({"user_ids": 1}), list[User])

        self.assertEqual(len(users), 1)
        self.assertEqual(users[0].first_name, "Pavel")
        self.assertEqual(users[0].sex.name, "MALE")

    def test_maps_primitive(self):
        api, _ = _api({"response": 42})

        self.assertEqual(api.call_as("utils.getServerTime", None, int), 42)

    def test_string_response_maps_onto_enum(self):
        api, _ = _api({"response": "male"})

        self.assertIs(api.call_as("users.getSex", None, Sex), Sex.MALE)

    def test_string_response_kept_for_optional_str(self):
        api, _ = _api({"response": "hello"}, {"response": "true"}, {"response": "[1]"})

        self.assertEqual(api.call_as("m.a", None, str | None), "hello")
        self.assertEqual(api.call_as("m.b", None, str | None), "true")
        self.assertEqual(api.call_as("m.c", None, str | None), "[1]")

    def test_string_response_maps_onto_datetime(self):
        api, _ = _api({"response": "1704067200"})

        self.assertEqual(api.call_as("utils.getServerTime", None, datetime), datetime(2024, 1, 1, tzinfo=UTC))

    def test_mismatched_answer_raises_deserialization_error(self):
        api, _ = _api({"response": {"id": "not-a-number"}})

        with self.assertRaises(DeserializationError) as ctx:
            api.call_as("users.get", None, User)

        self.assertIsNotNone(ctx.exception.payload)


# =============================================================================
# Transport Tests
# =============================================================================


class TestVkApiTransport(ApiTestCase):
    """Tests for transport failures."""

    def test_timeout_raises_transport_error(self):
        api, http_client = _api()
        http_client.post.side_effect = requests.Timeout("read timed out")

        with self.assertRaises(TransportError) as ctx:
            api.call("users.get")

        self.assertTrue(ctx.exception.timed_out)
        self.assertIsInstance(ctx.exception.cause, requests.Timeout)

    def test_connection_error_raises_transport_error(self):
        api, http_client = _api()
        http_client.post.side_effect = requests.ConnectionError("refused")

        with self.assertRaises(TransportError) as ctx:
            api.call("users.get")

        self.assertFalse(ctx.exception.timed_out)

    def test_http_error_without_json_raises_transport_error(self):
        api, http_client = _api()
        http_client.post.side_effect = [_response("<html>Bad gateway</html>", status=502)]

        with self.assertRaises(TransportError) as ctx:
            api.call("users.get")

        self.assertIn("502", str(ctx.exception))

    def test_http_error_with_json_error_raises_api_error(self):
        api, http_client = _api()
        http_client.post.side_effect = [_response({"error": {"error_code": 10, "error_msg": "Internal"}}, status=500)]

        with self.assertRaises(VkApiError) as ctx:
            api.call("users.get")

        self.assertEqual(ctx.exception.code, 10)

    def test_invalid_json_raises_deserialization_error(self):
        api, _ = _api("not json")

        with self.assertRaises(DeserializationError):
            api.call("users.get")

    def test_request_timeout_passed_to_transport(self):
        api, http_client = _api({"response": 1}, options=VkApiOptions(requests_per_second=0, request_timeout=7))

        api.call("users.get")

        self.assertEqual(http_client.post.call_args.kwargs["timeout"], 7)

    def test_last_invoke_time_recorded(self):
        api, _ = _api({"response": 1})
        self.assertIsNone(api.last_invoke_time)
        self.assertIsNone(api.last_invoke_timedelta)

        api.call("users.get")

        self.assertIsInstance(api.last_invoke_time, datetime)
        self.assertIsNotNone(api.last_invoke_time.tzinfo)
        self.assertGreaterEqual(api.last_invoke_timedelta.total_seconds(), 0)

    def test_last_invoke_time_recorded_on_failure(self):
        api, http_client = _api()
        http_client.post.side_effect = requests.ConnectionError("refused")

        with self.assertRaises(TransportError):
            api.call("users.get")

        self.assertIsNotNone(api.last_invoke_time)


# =============================================================================
# Captcha Tests
# =============================================================================


class TestVkApiCaptcha(ApiTestCase):
    """Tests for captcha solving during calls."""

    def test_captcha_without_solver_reaches_caller(self):
        api, http_client = _api(_captcha_answer())

        with self.assertRaises(CaptchaRequiredError) as ctx:
            api.call("wall.post")

        self.assertEqual(ctx.exception.captcha_sid, "sid-1")
        self.assertEqual(http_client.post.call_count, 1)

    def test_captcha_solved_and_call_retried(self):
        solver = CallbackCaptchaSolver(lambda url: "answer")
        api, http_client = _api(_captcha_answer(), {"response": 1}, captcha_solver=solver)

        response = api.call("wall.post", VkParameters({"message": "hi"}))

        self.assertEqual(response.value, 1)
        self.assertNotIn("captcha_sid", _sent_data(http_client, 0))
        retry = _sent_data(http_client, 1)
        self.assertEqual(retry["captcha_sid"], "sid-1")
        self.assertEqual(retry["captcha_key"], "answer")
        self.assertEqual(retry["message"], "hi")
        self.assertEqual(api.captcha_handler.recognition_count, 1)

    def test_rejected_answer_reported(self):
        on_incorrect = MagicMock()
        solver = CallbackCaptchaSolver(lambda url: "wrong", on_incorrect=on_incorrect)
        api, http_client = _api(_captcha_answer("sid-1"), _captcha_answer("sid-2"), captcha_solver=solver)

        with self.assertRaises(CaptchaRequiredError):
            api.call("wall.post")

        on_incorrect.assert_called_once()
        self.assertEqual(http_client.post.call_count, 2)

    def test_recognition_limit_stops_solving(self):
        solve = MagicMock(return_value="answer")
        api, http_client = _api(
            _captcha_answer("sid-1"), {"response": 1}, _captcha_answer("sid-2"),
            options=VkApiOptions(requests_per_second=0, max_captcha_recognition_count=1),
            captcha_solver=CallbackCaptchaSolver(solve),
        )

        api.call("wall.post")
        with self.assertRaises(CaptchaRequiredError):
            api.call("wall.post")

        solve.assert_called_once()
        self.assertEqual(http_client.post.call_count, 3)


# =============================================================================
# Long Poll Tests
# =============================================================================


class TestVkApiLongPoll(ApiTestCase):
    """Tests for long-poll queries."""

    def test_empty_server_raises_before_transport(self):
        api, http_client = _api({"ts": 1})

        with self.assertRaises(ConfigurationError):
            api.call_long_poll("", VkParameters({"ts": 1}))

        http_client.post.assert_not_called()

    def test_returns_whole_document(self):
        api, _ = _api({"ts": 5, "updates": [[4, 1]]})

        response = api.call_long_poll("https://lp.vk.com/wh1", VkParameters({"act": "a_check", "ts": 4}))

        self.assertEqual(response.value, {"ts": 5, "updates": [[4, 1]]})
        self.assertEqual(response["ts"].value, 5)

    def test_server_without_scheme_gets_https(self):
        api, http_client = _api({"ts": 5, "updates": []})

        api.call_long_poll("lp.vk.com/wh1", VkParameters({"ts": 4}))

        self.assertEqual(_sent_url(http_client), "https://lp.vk.com/wh1")

    def test_parameters_are_not_enriched(self):
        api, http_client = _api({"ts": 5, "updates": []}, token=None)

        api.call_long_poll("https://lp.vk.com/wh1", VkParameters({"key": "k", "ts": 4}))

        self.assertEqual(_sent_data(http_client), {"key": "k", "ts": "4"})

    def test_timeout_covers_wait(self):
        api, http_client = _api({"ts": 5, "updates": []})

        api.call_long_poll("https://lp.vk.com/wh1", VkParameters({"ts": 4, "wait": 90}))

        self.assertEqual(http_client.post.call_args.kwargs["timeout"], 100)

    def test_failed_envelope_raises_long_poll_error(self):
        api, _ = _api({"failed": 1, "ts": 30})

        with self.assertRaises(LongPollError) as ctx:
            api.call_long_poll("https://lp.vk.com/wh1", VkParameters({"ts": 4}))

        self.assertEqual(ctx.exception.failed, 1)
        self.assertEqual(ctx.exception.ts, 30)


# =============================================================================
# Authorization Tests
# =============================================================================


class TestVkApiAuthorization(ApiTestCase):
    """Tests for authorize(), log_out() and token listeners."""

    def test_authorize_installs_token(self):
        api, _ = _api(token=None)
        flow = StubFlow(token="new-token", user_id=7)

        api.authorize(flow)

        self.assertTrue(api.is_authorized)
        self.assertEqual(api.access_token.token_value(), "new-token")
        self.assertEqual(api.user_id, 7)
        self.assertIs(api.authorization_flow, flow)

    def test_authorize_without_flow_or_credentials_raises(self):
        api, _ = _api(token=None)

        with self.assertRaises(ConfigurationError):
            api.authorize()

    def test_authorize_uses_configured_flow(self):
        flow = StubFlow()
        api, _ = _api(token=None, authorization_flow=flow)

        api.authorize()

        self.assertEqual(len(flow.calls), 1)
        self.assertTrue(api.is_authorized)

    def test_authorize_answers_captcha(self):
        flow = StubFlow(captcha_first=True)
        api, _ = _api(token=None, captcha_solver=CallbackCaptchaSolver(lambda url: "key"))

        api.authorize(flow)

        self.assertEqual(len(flow.calls), 2)
        self.assertEqual(flow.calls[1].captcha_sid, "auth-sid")
        self.assertEqual(flow.calls[1].captcha_key, "key")
        self.assertTrue(api.is_authorized)

    def test_authorize_captcha_without_solver_raises(self):
        api, _ = _api(token=None)

        with self.assertRaises(CaptchaRequiredError):
            api.authorize(StubFlow(captcha_first=True))

        self.assertFalse(api.is_authorized)

    def test_authorize_closes_previous_token_manager(self):
        api, _ = _api()
        previous = api.access_token

        api.authorize(StubFlow())

        self.assertTrue(previous.closed)
        self.assertIsNot(previous, api.access_token)

    def test_log_out(self):
        api, _ = _api()
        previous = api.access_token

        api.log_out()

        self.assertFalse(api.is_authorized)
        self.assertTrue(previous.closed)
        with self.assertRaises(AccessTokenInvalidError):
            api.call("users.get")

    def test_refresh_token_reruns_flow(self):
        flow = StubFlow(token="refreshed")
        api, _ = _api(authorization_flow=flow)

        self.assertTrue(api.refresh_token())
        self.assertEqual(api.access_token.token_value(), "refreshed")

    def test_refresh_token_without_flow_returns_false(self):
        api, _ = _api()

        self.assertFalse(api.refresh_token())

    def test_listener_survives_reauthorization(self):
        api, _ = _api()
        listener = MagicMock()
        api.on_token_expires(listener)

        api.authorize_with_token("other")

        self.assertIn(listener, api.access_token.listeners)

    def test_removed_listener_not_installed(self):
        api, _ = _api()
        listener = MagicMock()
        api.on_token_expires(listener)
        api.remove_token_expires_listener(listener)

        api.authorize_with_token("other")

        self.assertNotIn(listener, api.access_token.listeners)

    def test_listener_notified_with_api_on_expiry(self):
        api, _ = _api()
        listener = MagicMock()
        api.on_token_expires(listener)
        timers = []

        def timer_factory(seconds, callback):
            timer = MagicMock()
            timer.fire = callback
            timers.append(timer)
            return timer

        api.access_token = TokenManager(api, token="t", expire_time=60, timer_factory=timer_factory)
        timers[0].fire()

        listener.assert_called_once_with(api)

    def test_authorize_with_expiring_token(self):
        api, _ = _api(token=None)

        api.authorize(StubFlow(expires_in=3600))

        self.assertEqual(api.access_token.expire_time, 3600)
        api.close()
        self.assertTrue(api.access_token.closed)


# =============================================================================
# Settings Tests
# =============================================================================


class TestVkApiSettings(ApiTestCase):
    """Tests for runtime settings."""

    def test_set_language_accepts_strings(self):
        api, _ = _api()

        api.set_language("EN")
        self.assertEqual(api.get_language(), Language.EN)

        api.set_language("ru")
        self.assertEqual(api.get_language(), Language.RU)

        api.set_language(None)
        self.assertIsNone(api.get_language())

    def test_set_language_rejects_unknown(self):
        api, _ = _api()

        with self.assertRaises(ConfigurationError):
            api.set_language("klingon")

    def test_requests_per_second_rejects_negative(self):
        api, _ = _api()

        with self.assertRaises(ConfigurationError):
            api.requests_per_second = -1

    def test_requests_per_second_updates_limiter(self):
        api, _ = _api()

        api.requests_per_second = 20
        self.assertEqual(api.rate_limiter.max_operations, 20)

        api.requests_per_second = 0
        self.assertEqual(api.rate_limiter.max_operations, 0)

    def test_captcha_solver_can_be_replaced(self):
        api, _ = _api()
        solver = CallbackCaptchaSolver(lambda url: "x")

        api.captcha_solver = solver

        self.assertIs(api.captcha_solver, solver)

    def test_context_manager_closes_transport(self):
        api, http_client = _api()

        with api:
            pass

        http_client.close.assert_called_once()


# =============================================================================
# Async Tests
# =============================================================================


class TestVkApiAsync:
    """Tests for the async twins."""

    def setup_method(self):
        VKSDK.configure(allow_env_override=False)

    def teardown_method(self):
        VKSDK.reset()

    def test_call_async(self):
        api, _ = _api({"response": 42})

        response = asyncio.run(api.call_async("utils.getServerTime"))

        assert response.value == 42

    def test_call_as_async(self):
        api, _ = _api({"response": [{"id": 1, "first_name": "Pavel"}]})

        users = asyncio.run(api.call_as_async("users.get", None, list[User]))

        assert users[0].id == 1

    def test_invoke_async(self):
        api, _ = _api({"response": 1})

        answer = asyncio.run(api.invoke_async("users.get"))

        assert json.loads(answer) == {"response": 1}

    def test_call_long_poll_async(self):
        api, _ = _api({"ts": 2, "updates": []})

        response = asyncio.run(api.call_long_poll_async("https://lp.vk.com/wh1", VkParameters({"ts": 1})))

        assert response["ts"].value == 2

    def test_async_errors_propagate(self):
        api, http_client = _api(token=None)

        with pytest.raises(AccessTokenInvalidError):
            asyncio.run(api.call_async("users.get"))

        http_client.post.assert_not_called()

    def test_authorize_and_log_out_async(self):
        api, _ = _api(token=None)

        asyncio.run(api.authorize_async(StubFlow()))
        assert api.is_authorized

        asyncio.run(api.log_out_async())
        assert not api.is_authorized

    def test_concurrent_async_calls(self):
        api, _ = _api({"response": 1}, {"response": 1}, {"response": 1})

        async def run_all():
            return await asyncio.gather(*(api.call_async("users.get") for _ in range(3)))

        results = asyncio.run(run_all())

        assert [r.value for r in results] == [1, 1, 1]
