"""Unit tests for the request pipeline and its refresh-and-retry behavior."""

import asyncio
import json
from typing import List
from unittest.mock import AsyncMock

import pytest

from pocketbase_client.core.auth_session import AuthSession, AuthState
from pocketbase_client.core.credential import Credential
from pocketbase_client.core.errors import (
    ApiError,
    DecodeError,
    NetworkConnectionError,
    ValidationError,
)
from pocketbase_client.core.formdata import FileUpload
from pocketbase_client.core.pipeline import RequestPipeline, decode_body, render_query
from pocketbase_client.core.query import QuerySpec
from pocketbase_client.core.transport import (
    HttpxTransport,
    Transport,
    TransportRequest,
    TransportResponse,
)
from pocketbase_client.models import ListResult, RecordModel

BASE_URL = "http://pb.test"


class ScriptedTransport(Transport):
    """Transport replaying canned responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: List[TransportRequest] = []

    async def send(self, request: TransportRequest) -> TransportResponse:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def reply(status: int, payload=None) -> TransportResponse:
    body = b"" if payload is None else json.dumps(payload).encode()
    return TransportResponse(status=status, body=body)


def unauthorized() -> TransportResponse:
    return reply(401, {"status": 401, "message": "The request requires valid authorization token.", "data": {}})


@pytest.fixture
def session(make_token):
    session = AuthSession()
    session.save(make_token(record_id="old"))
    return session


class TestRenderQuery:
    def test_query_spec(self):
        assert render_query(QuerySpec(page=1)) == "page=1"

    def test_mapping_drops_none_and_formats_bools(self):
        assert render_query({"a": None, "b": True, "c": "x y"}) == "b=true&c=x%20y"

    def test_string_passes_through(self):
        assert render_query("?a=1") == "a=1"

    def test_unsupported_type(self):
        with pytest.raises(ValidationError):
            render_query(42)


class TestDecodeBody:
    def test_empty_body_is_none(self):
        assert decode_body(b"") is None
        assert decode_body(b"  ") is None

    def test_invalid_json(self):
        with pytest.raises(DecodeError) as exc_info:
            decode_body(b"<html>")
        assert exc_info.value.body == b"<html>"


@pytest.mark.asyncio
class TestRequestPipeline:
    """Test header building, decoding and error mapping."""

    async def test_builds_url_and_headers(self, session):
        transport = ScriptedTransport(reply(200, {"ok": True}))
        pipeline = RequestPipeline(BASE_URL + "/", session, transport, lang="de-DE")

        result = await pipeline.execute(
            "POST", "/api/things", query={"expand": "a"}, body={"name": "x"}
        )

        assert result == {"ok": True}
        request = transport.requests[0]
        assert request.url == "http://pb.test/api/things?expand=a"
        assert request.headers["Accept-Language"] == "de-DE"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Authorization"] == session.token
        assert json.loads(request.body) == {"name": "x"}

    async def test_no_content_type_without_body(self, session):
        transport = ScriptedTransport(reply(204))
        pipeline = RequestPipeline(BASE_URL, session, transport)

        assert await pipeline.execute("DELETE", "/api/things/1") is None
        assert "Content-Type" not in transport.requests[0].headers

    async def test_public_call_omits_token(self, session):
        transport = ScriptedTransport(reply(200, {}))
        pipeline = RequestPipeline(BASE_URL, session, transport)

        await pipeline.execute("GET", "/api/health", requires_auth=False)
        assert "Authorization" not in transport.requests[0].headers

    async def test_extra_headers_override(self, session):
        transport = ScriptedTransport(reply(200, {}))
        pipeline = RequestPipeline(BASE_URL, session, transport)

        await pipeline.execute("GET", "/x", headers={"Accept-Language": "fr"})
        assert transport.requests[0].headers["Accept-Language"] == "fr"

    async def test_response_model_validation(self, session):
        payload = {"page": 1, "perPage": 2, "totalItems": 1, "totalPages": 1, "items": [{"id": "r1", "title": "t"}]}
        transport = ScriptedTransport(reply(200, payload))
        pipeline = RequestPipeline(BASE_URL, session, transport)

        result = await pipeline.execute("GET", "/x", response_model=ListResult[RecordModel])

        assert result.per_page == 2
        assert result.items[0]["title"] == "t"

    async def test_response_model_mismatch_is_decode_error(self, session):
        transport = ScriptedTransport(reply(200, {"items": "nope"}))
        pipeline = RequestPipeline(BASE_URL, session, transport)

        with pytest.raises(DecodeError, match="does not match"):
            await pipeline.execute("GET", "/x", response_model=ListResult[RecordModel])

    async def test_empty_body_with_model_is_decode_error(self, session):
        transport = ScriptedTransport(reply(204))
        pipeline = RequestPipeline(BASE_URL, session, transport)

        with pytest.raises(DecodeError):
            await pipeline.execute("GET", "/x", response_model=RecordModel)

    async def test_invalid_json_success_is_decode_error(self, session):
        transport = ScriptedTransport(TransportResponse(status=200, body=b"not json"))
        pipeline = RequestPipeline(BASE_URL, session, transport)

        with pytest.raises(DecodeError):
            await pipeline.execute("GET", "/x")

    async def test_non_2xx_raises_api_error(self, session):
        transport = ScriptedTransport(
            reply(400, {"status": 400, "message": "Bad.", "data": {"title": {"code": "c", "message": "Required."}}})
        )
        pipeline = RequestPipeline(BASE_URL, session, transport)

        with pytest.raises(ApiError) as exc_info:
            await pipeline.execute("POST", "/x", body={})

        assert exc_info.value.status == 400
        assert exc_info.value.field_errors == {"title": "Required."}
        assert exc_info.value.url == "http://pb.test/x"
        assert session.state is AuthState.AUTHENTICATED

    async def test_non_json_error_body_becomes_message(self, session):
        transport = ScriptedTransport(TransportResponse(status=502, body=b"Bad Gateway"))
        pipeline = RequestPipeline(BASE_URL, session, transport)

        with pytest.raises(ApiError, match="Bad Gateway"):
            await pipeline.execute("GET", "/x")

    @pytest.mark.parametrize("query", [QuerySpec(page=0), QuerySpec(per_page=-5)])
    async def test_invalid_paging_makes_no_transport_call(self, session, query):
        transport = ScriptedTransport()
        pipeline = RequestPipeline(BASE_URL, session, transport)

        with pytest.raises(ValidationError):
            await pipeline.execute("GET", "/x", query=query)
        assert transport.requests == []

    async def test_unserializable_body_makes_no_transport_call(self, session):
        transport = ScriptedTransport()
        pipeline = RequestPipeline(BASE_URL, session, transport)

        with pytest.raises(ValidationError):
            await pipeline.execute("POST", "/x", body={"when": object()})
        assert transport.requests == []

    async def test_file_body_is_sent_as_multipart(self, session):
        transport = ScriptedTransport(reply(200, {"id": "r1"}))
        pipeline = RequestPipeline(BASE_URL, session, transport)

        await pipeline.execute(
            "PATCH",
            "/api/collections/users/records/r1",
            body={"name": "Jane", "avatar": FileUpload("me.png", b"img")},
        )

        request = transport.requests[0]
        assert request.is_multipart
        assert request.body is None
        assert request.form == {"name": "Jane"}
        assert request.files == [("avatar", ("me.png", b"img", "image/png"))]
        assert "Content-Type" not in request.headers
        assert request.headers["Authorization"] == session.token

    async def test_network_error_is_not_retried(self, session):
        transport = ScriptedTransport(NetworkConnectionError("down"), reply(200, {}))
        handler = AsyncMock()
        pipeline = RequestPipeline(BASE_URL, session, transport, refresh_handler=handler)

        with pytest.raises(NetworkConnectionError):
            await pipeline.execute("GET", "/x")

        assert len(transport.requests) == 1
        handler.assert_not_awaited()


@pytest.mark.asyncio
class TestRefreshAndRetry:
    """Test the single refresh-and-retry after credential rejection."""

    async def test_refresh_success_retries_once_with_new_token(self, session, make_token):
        stale = session.token
        fresh = Credential.from_token(make_token(record_id="new"))
        handler = AsyncMock(return_value=fresh)
        transport = ScriptedTransport(unauthorized(), reply(200, {"id": "r1"}))
        pipeline = RequestPipeline(BASE_URL, session, transport, refresh_handler=handler)

        result = await pipeline.execute("GET", "/api/collections/posts/records/r1")

        assert result == {"id": "r1"}
        assert len(transport.requests) == 2
        assert transport.requests[0].headers["Authorization"] == stale
        assert transport.requests[1].headers["Authorization"] == fresh.token
        handler.assert_awaited_once()
        assert session.state is AuthState.AUTHENTICATED

    async def test_refresh_failure_surfaces_retry_error(self, session):
        handler = AsyncMock(return_value=None)
        transport = ScriptedTransport(
            unauthorized(),
            reply(403, {"status": 403, "message": "Only superusers can perform this action.", "data": {}}),
        )
        pipeline = RequestPipeline(BASE_URL, session, transport, refresh_handler=handler)

        with pytest.raises(ApiError) as exc_info:
            await pipeline.execute("GET", "/api/logs")

        assert exc_info.value.status == 403
        assert len(transport.requests) == 2
        assert "Authorization" not in transport.requests[1].headers
        assert session.state is AuthState.EXPIRED

    async def test_second_rejection_is_not_retried_again(self, session, make_token):
        handler = AsyncMock(return_value=Credential.from_token(make_token(record_id="new")))
        transport = ScriptedTransport(unauthorized(), unauthorized())
        pipeline = RequestPipeline(BASE_URL, session, transport, refresh_handler=handler)

        with pytest.raises(ApiError) as exc_info:
            await pipeline.execute("GET", "/x")

        assert exc_info.value.status == 401
        assert len(transport.requests) == 2
        handler.assert_awaited_once()

    async def test_without_handler_401_raises_and_expires(self, session):
        transport = ScriptedTransport(unauthorized())
        pipeline = RequestPipeline(BASE_URL, session, transport)

        with pytest.raises(ApiError) as exc_info:
            await pipeline.execute("GET", "/x")

        assert exc_info.value.is_auth_failure
        assert len(transport.requests) == 1
        assert session.state is AuthState.EXPIRED

    async def test_allow_refresh_false_skips_retry(self, session):
        handler = AsyncMock()
        transport = ScriptedTransport(unauthorized())
        pipeline = RequestPipeline(BASE_URL, session, transport, refresh_handler=handler)

        with pytest.raises(ApiError):
            await pipeline.execute("POST", "/x", allow_refresh=False)
        handler.assert_not_awaited()

    async def test_public_401_does_not_touch_session(self, session):
        handler = AsyncMock()
        transport = ScriptedTransport(unauthorized())
        pipeline = RequestPipeline(BASE_URL, session, transport, refresh_handler=handler)

        with pytest.raises(ApiError):
            await pipeline.execute("POST", "/auth", requires_auth=False)

        assert session.state is AuthState.AUTHENTICATED
        handler.assert_not_awaited()

    async def test_expired_session_retries_refresh_on_later_call(self, session, make_token):
        fresh = Credential.from_token(make_token(record_id="new"))
        calls = {"n": 0}

        async def handler(s):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("refresh endpoint timed out")
            return fresh

        transport = ScriptedTransport(
            unauthorized(),
            unauthorized(),
            unauthorized(),
            reply(200, {"id": "r1"}),
        )
        pipeline = RequestPipeline(BASE_URL, session, transport, refresh_handler=handler)

        with pytest.raises(ApiError):
            await pipeline.execute("GET", "/x")
        assert session.state is AuthState.EXPIRED

        result = await pipeline.execute("GET", "/x")

        assert result == {"id": "r1"}
        assert calls["n"] == 2
        assert len(transport.requests) == 4
        assert "Authorization" not in transport.requests[2].headers
        assert transport.requests[3].headers["Authorization"] == fresh.token
        assert session.state is AuthState.AUTHENTICATED

    async def test_expired_session_without_handler_stays_expired(self, session):
        session.on_response_signal(401, session.token)
        transport = ScriptedTransport(unauthorized())
        pipeline = RequestPipeline(BASE_URL, session, transport)

        with pytest.raises(ApiError) as exc_info:
            await pipeline.execute("GET", "/x")

        assert exc_info.value.status == 401
        assert len(transport.requests) == 1
        assert session.state is AuthState.EXPIRED

    async def test_401_while_unauthenticated_is_plain_error(self):
        handler = AsyncMock()
        transport = ScriptedTransport(unauthorized())
        pipeline = RequestPipeline(BASE_URL, AuthSession(), transport, refresh_handler=handler)

        with pytest.raises(ApiError):
            await pipeline.execute("GET", "/x")

        assert len(transport.requests) == 1
        handler.assert_not_awaited()


@pytest.mark.asyncio
class TestPipelineOverHttpx:
    """End-to-end pipeline runs against pytest-httpx."""

    async def test_refresh_round_trip(self, httpx_mock, make_token):
        session = AuthSession()
        session.save(make_token(record_id="old"))
        fresh = Credential.from_token(make_token(record_id="new"))

        httpx_mock.add_response(
            method="GET",
            url="http://pb.test/api/settings",
            status_code=401,
            json={"status": 401, "message": "Unauthorized.", "data": {}},
            match_headers={"Authorization": session.token},
        )
        httpx_mock.add_response(
            method="GET",
            url="http://pb.test/api/settings",
            json={"meta": {"appName": "Acme"}},
            match_headers={"Authorization": fresh.token},
        )

        transport = HttpxTransport()
        pipeline = RequestPipeline(
            BASE_URL, session, transport, refresh_handler=AsyncMock(return_value=fresh)
        )
        try:
            result = await pipeline.execute("GET", "/api/settings")
        finally:
            await transport.close()

        assert result == {"meta": {"appName": "Acme"}}
        assert len(httpx_mock.get_requests()) == 2


class BlockingTransport(Transport):
    """Transport that parks every request until the test releases it."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: List[TransportRequest] = []
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def send(self, request: TransportRequest) -> TransportResponse:
        self.requests.append(request)
        response = self.responses.pop(0)
        if response is None:
            self.entered.set()
            await self.release.wait()
            return reply(200, {})
        return response


@pytest.mark.asyncio
class TestCancellation:
    """Test that task cancellation propagates untouched."""

    async def test_cancel_while_waiting_in_transport(self, session):
        credential = session.credential
        handler = AsyncMock()
        transport = BlockingTransport(None)
        pipeline = RequestPipeline(BASE_URL, session, transport, refresh_handler=handler)

        task = asyncio.create_task(pipeline.execute("GET", "/x"))
        await transport.entered.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(transport.requests) == 1
        assert session.state is AuthState.AUTHENTICATED
        assert session.credential is credential
        handler.assert_not_awaited()

    async def test_cancel_during_refresh(self, session):
        stale = session.credential
        entered = asyncio.Event()

        async def handler(s):
            entered.set()
            await asyncio.Event().wait()

        transport = BlockingTransport(unauthorized())
        pipeline = RequestPipeline(BASE_URL, session, transport, refresh_handler=handler)

        task = asyncio.create_task(pipeline.execute("GET", "/x"))
        await entered.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(transport.requests) == 1
        assert session.state is AuthState.EXPIRED
        assert session.credential is stale
        assert not session._get_refresh_lock().locked()
