"""Authenticated request execution -- one HTTP call with a grant applied.

:class:`AuthenticatedRequestExecutor` injects the bearer token into a
caller's :class:`~grantclient.models.RequestSpec`, sends it through
:class:`httpx.AsyncClient`, and interprets the response according to the
requested :class:`~grantclient.models.ResponseMode`:

* ``RAW`` -- the open, unread :class:`httpx.Response` is returned as-is.
  Status codes are not checked; reading and closing the stream is the
  caller's job.
* ``JSON`` -- the body is buffered and the stream closed. 2xx bodies are
  decoded (empty body -> ``None``), anything else raises
  :class:`~grantclient.exceptions.RequestError` with the raw body text.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

import httpx

from grantclient.exceptions import ProtocolError, RequestError, TransportError
from grantclient.models import Grant, RequestSpec, ResponseMode

logger = logging.getLogger(__name__)

SetupHook = Callable[[httpx.Request], None]
"""Synchronous hook run on the outgoing request after auth injection, before sending."""


class AuthenticatedRequestExecutor:
    """Send requests carrying a grant's access token.

    Args:
        http_client: The async client used for dispatch. The executor
            never closes it.
    """

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._http = http_client

    async def execute(
        self,
        spec: RequestSpec,
        grant: Grant,
        setup: Optional[SetupHook] = None,
    ) -> Any:
        """Perform one request with ``Authorization: Bearer <token>`` applied.

        Args:
            spec: What to send and how to interpret the answer.
            grant: A usable grant whose access token is injected.
            setup: Optional hook that may alter the built request (for
                example to stream a body) before it is transmitted.

        Returns:
            The open :class:`httpx.Response` in ``RAW`` mode; the decoded
            JSON value, or ``None`` for an empty 2xx body, in ``JSON`` mode.

        Raises:
            RequestError: ``JSON`` mode only, on a non-2xx status.
            ProtocolError: ``JSON`` mode only, on a 2xx body that is not JSON.
            TransportError: On connection-level failures, in either mode.
        """
        request = self._build_request(spec, grant)
        if setup is not None:
            setup(request)

        logger.debug("%s %s (%s)", request.method, request.url, spec.response_mode.value)
        try:
            response = await self._http.send(request, stream=True)
        except httpx.DecodingError as exc:
            raise ProtocolError(f"{request.method} {request.url} sent an undecodable body: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransportError(f"{request.method} {request.url} failed: {exc}") from exc

        if spec.response_mode is ResponseMode.RAW:
            return response
        return await self._read_json(response)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _build_request(self, spec: RequestSpec, grant: Grant) -> httpx.Request:
        headers = httpx.Headers(spec.headers)
        # Assignment replaces any caller-supplied Authorization, whatever its casing.
        headers["Authorization"] = f"Bearer {grant.access_token}"

        if (
            spec.method == "POST"
            and spec.response_mode is ResponseMode.JSON
            and spec.data is None
            and not spec.has_header("Content-Type")
        ):
            headers["Content-Type"] = "application/json"

        kwargs: dict[str, Any] = {
            "method": spec.method,
            "url": spec.url,
            "headers": headers,
            "params": spec.params or None,
        }
        if spec.data is not None:
            kwargs["data"] = spec.data
        elif spec.json_body is not None:
            kwargs["json"] = spec.json_body
        elif spec.content is not None:
            kwargs["content"] = spec.content
        if spec.timeout is not None:
            kwargs["timeout"] = spec.timeout

        return self._http.build_request(**kwargs)

    async def _read_json(self, response: httpx.Response) -> Any:
        try:
            body = await response.aread()
        except httpx.DecodingError as exc:
            raise ProtocolError(f"Response from {response.request.url} could not be decoded: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransportError(f"Reading response body failed: {exc}") from exc
        finally:
            await response.aclose()

        status = response.status_code
        if not 200 <= status < 300:
            raise RequestError(status, response.text)

        if not body:
            return None
        try:
            return json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ProtocolError(f"Response from {response.request.url} is not valid JSON: {exc}") from exc
