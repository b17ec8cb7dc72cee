"""Unit tests for the dispatch engine."""

import json

import httpx
import pytest

from reststub import (
    ApiError,
    BindingError,
    CallContext,
    DeserializationError,
    ErrorKind,
    MetadataError,
    Page,
    RetryPolicy,
    ServiceError,
    TimeoutError,
    TransportError,
)
from tests.helpers.sample_services import BASE_URL, User, UsersApi


def _json(status: int, body) -> httpx.Response:
    return httpx.Response(status, json=body)


@pytest.mark.unit
class TestSuccessfulDispatch:
    async def test_get_user_without_token(self, engine_factory):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _json(200, {"id": 123, "name": "Ann"})

        api = engine_factory(handler).create(UsersApi)

        user = await api.get_user(123)

        assert user == User(id=123, name="Ann")
        assert seen[0].url.path == "/v1/users/123"
        assert "authorization" not in seen[0].headers

    async def test_page_result(self, engine_factory):
        items = [{"id": i, "name": f"u{i}"} for i in range(3)]

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["page"] == "0"
            assert request.url.params["size"] == "3"
            return _json(200, {"items": items, "totalCount": 30, "page": 0, "size": 3})

        api = engine_factory(handler).create(UsersApi)

        page = await api.list_users(size=3)

        assert isinstance(page, Page)
        assert len(page.items) == 3
        assert page.total_count == 30

    async def test_body_round_trip(self, engine_factory):
        def echo(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                201,
                content=request.content,
                headers={"content-type": request.headers["content-type"]},
            )

        api = engine_factory(echo).create(UsersApi)
        original = User(id=9, name="Zed", active=False)

        assert await api.create_user(original) == original

    async def test_no_content_for_optional_result(self, engine_factory):
        api = engine_factory(lambda r: httpx.Response(204)).create(UsersApi)

        assert await api.find_by_email("ann@example.test") is None

    async def test_void_method(self, engine_factory):
        api = engine_factory(lambda r: httpx.Response(204)).create(UsersApi)

        assert await api.delete_user(1) is None

    async def test_token_from_engine_source(self, engine_factory):
        seen: dict[str, str] = {}
        calls = 0

        def token_source() -> str:
            nonlocal calls
            calls += 1
            return "engine-token"

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return _json(200, {"id": 1, "name": "A"})

        api = engine_factory(handler, token_source=token_source).create(UsersApi)

        await api.get_user(1)
        await api.get_user(1)

        assert seen["authorization"] == "Bearer engine-token"
        assert calls == 2

    async def test_context_token_read_per_call(self, engine_factory):
        tokens: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            tokens.append(request.headers.get("authorization"))
            return _json(200, {"id": 1, "name": "A"})

        engine = engine_factory(handler, token_source=lambda: "fallback")
        api = engine.create(UsersApi)

        async def async_source() -> str:
            return "alice"

        await api.with_context(CallContext(token_source=async_source)).get_user(1)
        await api.with_context(CallContext(token="bob")).get_user(1)
        await api.get_user(1)

        assert tokens == ["Bearer alice", "Bearer bob", "Bearer fallback"]

    async def test_retry_get_then_success(self, engine_factory, sleep_recorder):
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise httpx.ConnectError("refused")
            return _json(200, {"id": 1, "name": "A"})

        api = engine_factory(handler, retry_policy=RetryPolicy(max_attempts=4)).create(
            UsersApi
        )

        assert (await api.get_user(1)).id == 1
        assert attempts == 3
        assert len(sleep_recorder.delays) == 2

    async def test_endpoint_timeout_used(self, engine_factory):
        api = engine_factory(lambda r: httpx.Response(204)).create(UsersApi)
        engine = api._engine
        template = api.service_descriptor.templates["touch"]

        assert engine._timeout_for(template, CallContext()) == 1.5
        assert engine._timeout_for(template, CallContext(timeout=9.0)) == 9.0
        assert (
            engine._timeout_for(
                api.service_descriptor.templates["get_user"], CallContext()
            )
            == engine.timeout
        )


@pytest.mark.unit
class TestFailedDispatch:
    async def test_not_found_is_api_error(self, engine_factory):
        api = engine_factory(lambda r: _json(404, {"error": "not found"})).create(UsersApi)

        with pytest.raises(ApiError) as exc_info:
            await api.get_user(42)

        error = exc_info.value
        assert error.status_code == 404
        assert error.body == {"error": "not found"}
        assert error.url == f"{BASE_URL}/users/42"
        assert error.method is not None and error.method.endswith("get_user")
        assert error.details["failed_at"] == "transforming"

    async def test_post_is_not_retried(self, engine_factory, sleep_recorder):
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ConnectError("refused")

        api = engine_factory(handler).create(UsersApi)

        with pytest.raises(TransportError) as exc_info:
            await api.create_user(User(id=1, name="A"))

        assert attempts == 1
        assert sleep_recorder.delays == []
        assert exc_info.value.details["failed_at"] == "executing"

    async def test_post_declared_idempotent_is_retried(self, engine_factory):
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise httpx.ConnectError("refused")
            return httpx.Response(204)

        api = engine_factory(handler).create(UsersApi)

        await api.touch(5)
        assert attempts == 2

    async def test_exhausted_503_becomes_api_error(self, engine_factory):
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            return _json(503, {"error": "busy"})

        api = engine_factory(handler).create(UsersApi)

        with pytest.raises(ApiError) as exc_info:
            await api.get_user(1)
        assert exc_info.value.status_code == 503
        assert attempts == 3

    async def test_missing_argument_is_binding_error(self, engine_factory):
        called = False

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal called
            called = True
            return httpx.Response(200)

        api = engine_factory(handler).create(UsersApi)

        with pytest.raises(BindingError):
            await api.get_user()
        with pytest.raises(BindingError) as exc_info:
            await api.get_user(None)
        assert exc_info.value.details["failed_at"] == "building"
        assert not called

    async def test_bad_body_is_deserialization_error(self, engine_factory):
        api = engine_factory(lambda r: _json(200, {"unexpected": True})).create(UsersApi)

        with pytest.raises(DeserializationError):
            await api.get_user(1)

    async def test_timeout_error(self, engine_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow")

        api = engine_factory(handler).create(UsersApi)

        with pytest.raises(TimeoutError) as exc_info:
            await api.get_user(1)
        assert exc_info.value.kind is ErrorKind.TIMEOUT

    async def test_failing_credential_source(self, engine_factory):
        def broken() -> str:
            raise RuntimeError("vault sealed")

        api = engine_factory(lambda r: httpx.Response(200), token_source=broken).create(
            UsersApi
        )

        with pytest.raises(BindingError, match="Credential source"):
            await api.get_user(1)

    async def test_non_ascii_credentials_and_headers(self, engine_factory):
        called = False

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal called
            called = True
            return _json(201, {"id": 1, "name": "A"})

        api = engine_factory(handler).create(UsersApi)

        with pytest.raises(BindingError):
            await api.with_context(CallContext(token="tök")).get_user(1)
        with pytest.raises(BindingError) as exc_info:
            await api.create_user(User(id=1, name="A"), trace="José")
        assert exc_info.value.details["failed_at"] == "building"
        assert not called

    async def test_decoding_error_is_transport_error(self, engine_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.DecodingError("corrupt gzip")

        api = engine_factory(handler).create(UsersApi)

        with pytest.raises(TransportError) as exc_info:
            await api.get_user(1)
        assert exc_info.value.details["failed_at"] == "executing"

    async def test_unknown_method_is_metadata_error(self, engine_factory):
        engine = engine_factory(lambda r: httpx.Response(200))
        descriptor = engine.register(UsersApi)

        with pytest.raises(MetadataError):
            await engine.invoke(descriptor, "nope", {})

    async def test_every_failure_is_a_service_error(self, engine_factory):
        api = engine_factory(lambda r: httpx.Response(500, text="boom")).create(UsersApi)

        with pytest.raises(ServiceError) as exc_info:
            await api.get_user(1)
        payload = exc_info.value.to_dict()
        assert payload["kind"] == "api"
        assert payload["status_code"] == 500
        assert payload["body"] == "boom"
        assert json.dumps(payload, default=str)
