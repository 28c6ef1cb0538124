"""Request pipeline shared by every API call.

Composes query rendering, auth decoration, the transport call and error
mapping into one path. The only retry it ever performs is a single
refresh-and-retry after the server rejects the attached credential.
"""

import json
import logging
import time
from functools import lru_cache
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .auth_session import AUTHORIZATION_HEADER, AuthSession, RefreshHandler
from .errors import ApiError, AuthExpiredError, DecodeError, ValidationError
from .formdata import MultipartBody, build_multipart, has_files
from .query import QuerySpec, encode_params, render
from .transport import Transport, TransportRequest, TransportResponse

logger = logging.getLogger(__name__)

DEFAULT_LANG = "en-US"

QueryLike = Union[QuerySpec, Mapping[str, Any], str, None]

# at most one retry, and only after a credential refresh
_ATTEMPTS = ("first", "retry")


@lru_cache(maxsize=128)
def _type_adapter(model: Any) -> TypeAdapter:
    return TypeAdapter(model)


def render_query(query: QueryLike) -> str:
    """Render any supported query form to an encoded query string.

    Mappings drop ``None`` values and render booleans as ``true``/``false``.
    """
    if query is None:
        return ""
    if isinstance(query, QuerySpec):
        return render(query)
    if isinstance(query, str):
        return query.lstrip("?")
    if isinstance(query, Mapping):
        params = []
        for key, value in query.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            params.append((str(key), str(value)))
        return encode_params(params)
    raise ValidationError(f"Unsupported query type: {type(query).__name__}")


def decode_body(body: bytes) -> Any:
    """Decode a JSON body; an empty body decodes to None.

    Raises:
        DecodeError: If the body is not valid JSON
    """
    if not body or not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError as e:
        raise DecodeError(f"Response is not valid JSON: {e}", body=body) from e


class RequestPipeline:
    """Executes API calls on behalf of services and the batch engine."""

    def __init__(
        self,
        base_url: str,
        session: AuthSession,
        transport: Transport,
        lang: str = DEFAULT_LANG,
        refresh_handler: Optional[RefreshHandler] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.transport = transport
        self.lang = lang
        self.refresh_handler = refresh_handler

    def build_url(self, path: str, query: QueryLike = None) -> str:
        """Join base URL, path and rendered query.

        Raises:
            ValidationError: If the query is invalid
        """
        url = f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url
        query_string = render_query(query)
        if query_string:
            url += ("&" if "?" in url else "?") + query_string
        return url

    async def execute(
        self,
        method: str,
        path: str,
        *,
        query: QueryLike = None,
        body: Any = None,
        requires_auth: bool = True,
        headers: Optional[Mapping[str, str]] = None,
        response_model: Any = None,
        allow_refresh: bool = True,
    ) -> Any:
        """Execute one API call.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            query: QuerySpec, mapping or pre-encoded query string
            body: JSON-serializable request body; a mapping holding
                ``FileUpload`` values is sent as multipart form data
            requires_auth: Attach the session credential when authenticated
            headers: Extra headers (override defaults and auth)
            response_model: Pydantic model or type to validate the payload
            allow_refresh: Permit refresh-and-retry on credential rejection

        Returns:
            Decoded (and optionally validated) payload, None for empty bodies

        Raises:
            ValidationError: Invalid query or unserializable body
            NetworkError: Transport failure (never retried)
            DecodeError: Body does not match the expected shape
            ApiError: Server returned a non-2xx response
        """
        url = self.build_url(path, query)
        payload = self._encode_body(body)
        can_refresh = allow_refresh and requires_auth and self.refresh_handler is not None

        for attempt in _ATTEMPTS:
            try:
                response = await self._attempt(method, url, payload, requires_auth, headers)
            except AuthExpiredError as expired:
                if attempt == "retry" or not can_refresh:
                    raise expired.api_error from None
                logger.info(f"{method} {path}: credential rejected, refreshing before retry")
                await self.session.refresh(self.refresh_handler, expired.token)  # type: ignore[arg-type]
                continue
            return self._decode(response, response_model)

        raise AssertionError("attempt loop exhausted")  # pragma: no cover

    def _encode_body(self, body: Any) -> Union[bytes, MultipartBody, None]:
        if body is None:
            return None
        if has_files(body):
            return build_multipart(body)
        try:
            return json.dumps(body).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Request body is not JSON serializable: {e}") from e

    def _build_headers(
        self,
        json_body: bool,
        requires_auth: bool,
        extra: Optional[Mapping[str, str]],
    ) -> Tuple[dict, Optional[str]]:
        headers = {"Accept-Language": self.lang}
        if json_body:
            headers["Content-Type"] = "application/json"
        if requires_auth:
            headers = self.session.decorate(headers)
        if extra:
            headers.update(extra)
        sent_token = headers.get(AUTHORIZATION_HEADER) if requires_auth else None
        return headers, sent_token

    async def _attempt(
        self,
        method: str,
        url: str,
        payload: Union[bytes, MultipartBody, None],
        requires_auth: bool,
        extra_headers: Optional[Mapping[str, str]],
    ) -> TransportResponse:
        headers, sent_token = self._build_headers(
            isinstance(payload, bytes), requires_auth, extra_headers
        )
        if isinstance(payload, MultipartBody):
            request = TransportRequest(
                method=method,
                url=url,
                headers=headers,
                form=payload.fields,
                files=payload.files,
            )
        else:
            request = TransportRequest(method=method, url=url, headers=headers, body=payload)

        start = time.perf_counter()
        response = await self.transport.send(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"{method} {url} -> {response.status} ({elapsed_ms:.1f}ms)")

        if response.is_success:
            return response

        try:
            error_body = decode_body(response.body)
        except DecodeError:
            error_body = response.body.decode("utf-8", errors="replace")
        api_error = ApiError.from_response(response.status, error_body, url=url)

        if requires_auth and self.session.on_response_signal(response.status, sent_token):
            raise AuthExpiredError(api_error, sent_token or self.session.token)
        raise api_error

    def _decode(self, response: TransportResponse, response_model: Any) -> Any:
        data = decode_body(response.body)
        if response_model is None:
            return data
        if data is None:
            raise DecodeError("Expected a response body but got none")
        try:
            return _type_adapter(response_model).validate_python(data)
        except PydanticValidationError as e:
            raise DecodeError(
                f"Response does not match {getattr(response_model, '__name__', response_model)}: {e}",
                body=data,
            ) from e
