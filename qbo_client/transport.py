from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from qbo_client import __version__
from qbo_client.auth import AuthProvider
from qbo_client.config import ClientConfiguration
from qbo_client.endpoints import EndpointSet
from qbo_client.errors import TransportError
from qbo_client.request_context import current_request_id

logger = logging.getLogger(__name__)

_IDEMPOTENT = ("GET", "HEAD")
MAX_RETRY_WAIT = 30.0


@dataclass
class RequestDescriptor:
    method: str
    url: str
    params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    json_body: Any = None
    files: Any = None
    auth: Optional[httpx.Auth] = None

    @property
    def request_id(self) -> Optional[str]:
        return self.headers.get("Request-Id")

    @property
    def expects_binary(self) -> bool:
        return self.headers.get("Accept") == "application/pdf"


class _RetryableResponse(Exception):
    def __init__(self, response: httpx.Response):
        super().__init__(f"retryable HTTP {response.status_code}")
        self.response = response


def _retryable_status(descriptor: RequestDescriptor, status_code: int) -> bool:
    if status_code == 429:
        return descriptor.files is None
    return status_code >= 500 and descriptor.method in _IDEMPOTENT


def _should_retry(descriptor: RequestDescriptor, exc: BaseException) -> bool:
    if isinstance(exc, _RetryableResponse):
        return True
    return isinstance(exc, httpx.TransportError) and descriptor.method in _IDEMPOTENT


def retry_after_delay(response: httpx.Response) -> Optional[float]:
    """Seconds from a numeric ``Retry-After`` header, capped at ``MAX_RETRY_WAIT``."""
    retry_after = response.headers.get("Retry-After", "").strip()
    if not retry_after.isdigit():
        return None
    return min(float(retry_after), MAX_RETRY_WAIT)


def _wait_strategy(backoff: float):
    exponential = wait_exponential(multiplier=backoff, max=MAX_RETRY_WAIT)

    def wait(retry_state) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, _RetryableResponse):
            delay = retry_after_delay(exc.response)
            if delay is not None:
                return delay
        return exponential(retry_state)

    return wait


class RequestTranslator:
    """Turn (verb, path, payload) into an authenticated QBO HTTP call."""

    def __init__(self, config: ClientConfiguration, endpoints: EndpointSet, auth: AuthProvider, http: httpx.AsyncClient):
        self.config = config
        self.endpoints = endpoints
        self.auth = auth
        self._http = http

    def absolute_url(self, path: str) -> str:
        if self.endpoints.is_out_of_band(path):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.endpoints.company_base}{self.config.realm_id}{path}"

    def build(
        self,
        method: str,
        path: str,
        entity: Optional[Mapping[str, Any]] = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        files: Any = None,
    ) -> RequestDescriptor:
        qparams: Dict[str, Any] = dict(params or {})
        body: Optional[Dict[str, Any]] = dict(entity) if entity is not None else None

        if body is not None:
            if body.get("allowDuplicateDocNum"):
                del body["allowDuplicateDocNum"]
                qparams["include"] = "allowduplicatedocnum"
            if body.get("requestId"):
                qparams["requestid"] = body.pop("requestId")

        qparams["minorversion"] = qparams.get("minorversion") or self.config.minor_version
        qparams["format"] = "json"

        hdrs: Dict[str, str] = {
            "User-Agent": f"qbo-client: version {__version__}",
            "Request-Id": str(uuid.uuid1()),
            "Accept": "application/json",
        }
        hdrs.update(headers or {})
        auth = self.auth.authenticate(hdrs)

        if path.endswith("pdf"):
            hdrs["Accept"] = "application/pdf"

        return RequestDescriptor(
            method=method.upper(),
            url=self.absolute_url(path),
            params=qparams,
            headers=hdrs,
            json_body=None if files is not None else body,
            files=files,
            auth=auth,
        )

    async def _send_once(self, descriptor: RequestDescriptor, timeout: Any) -> httpx.Response:
        kwargs: Dict[str, Any] = {
            "params": descriptor.params,
            "headers": descriptor.headers,
            "timeout": timeout,
        }
        if descriptor.auth is not None:
            kwargs["auth"] = descriptor.auth
        if descriptor.files is not None:
            kwargs["files"] = descriptor.files
        elif descriptor.json_body is not None:
            kwargs["json"] = descriptor.json_body

        if self.config.debug:
            logger.info(
                "QBO request %s %s params=%s body=%s",
                descriptor.method,
                descriptor.url,
                descriptor.params,
                descriptor.json_body,
            )
        resp = await self._http.request(descriptor.method, descriptor.url, **kwargs)
        if self.config.debug:
            logger.info("QBO response %s %s", resp.status_code, resp.text if not descriptor.expects_binary else "<binary>")
        else:
            logger.debug("QBO %s %s -> %s", descriptor.method, descriptor.url, resp.status_code)
        return resp

    async def _send_with_retries(self, descriptor: RequestDescriptor, timeout: Any) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=_wait_strategy(self.config.retry_backoff),
            retry=retry_if_exception(lambda exc: _should_retry(descriptor, exc)),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "Retrying QBO %s %s (attempt %d)",
                            descriptor.method,
                            descriptor.url,
                            attempt.retry_state.attempt_number,
                        )
                    resp = await self._send_once(descriptor, timeout)
                    if _retryable_status(descriptor, resp.status_code):
                        raise _RetryableResponse(resp)
            return resp
        except _RetryableResponse as e:
            return e.response

    async def send(self, descriptor: RequestDescriptor, *, timeout: Optional[float] = None) -> httpx.Response:
        """Send a built request, retrying transient failures.

        ``timeout`` bounds the whole call, retries and back-off waits included.
        Without it each attempt uses the client's default timeout.
        """
        timeout_arg: Any = httpx.USE_CLIENT_DEFAULT if timeout is None else timeout
        token = current_request_id.set(descriptor.request_id)
        try:
            if timeout is None:
                return await self._send_with_retries(descriptor, timeout_arg)
            return await asyncio.wait_for(self._send_with_retries(descriptor, timeout_arg), timeout)
        except asyncio.TimeoutError as e:
            logger.error("QBO %s %s timed out after %ss", descriptor.method, descriptor.url, timeout)
            raise TransportError(f"QBO request timed out after {timeout}s", original_exception=e) from e
        except httpx.HTTPError as e:
            logger.error("QBO %s %s failed: %s", descriptor.method, descriptor.url, e)
            raise TransportError(f"QBO request failed: {e}", original_exception=e) from e
        finally:
            current_request_id.reset(token)

    async def execute(
        self,
        method: str,
        path: str,
        entity: Optional[Mapping[str, Any]] = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        files: Any = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        descriptor = self.build(method, path, entity, params=params, headers=headers, files=files)
        return await self.send(descriptor, timeout=timeout)
