from __future__ import annotations

import datetime
import logging
from typing import Any, BinaryIO, Dict, Iterable, List, Mapping, Optional, Union

import httpx

from qbo_client import entities as ops
from qbo_client.auth import AuthProvider
from qbo_client.config import ClientConfiguration
from qbo_client.endpoints import EndpointSet, default_endpoints, discover_endpoints
from qbo_client.entities import Entity, resolve
from qbo_client.errors import ConfigurationError, RemoteFault, ValidationError
from qbo_client.query import MAX_RESULTS, Criteria, build_query, split_criteria, with_page
from qbo_client.response import fault_errors, normalize
from qbo_client.transport import RequestTranslator

logger = logging.getLogger(__name__)

MAX_BATCH_ITEMS = 30

IdOrEntity = Union[str, int, Mapping[str, Any]]


def _blank(value: Any) -> bool:
    return value is None or str(value) == ""


def _is_true(value: Any) -> bool:
    return value is True or str(value).lower() == "true"


def _timestamp(since: Union[str, datetime.date, datetime.datetime]) -> str:
    if isinstance(since, (datetime.date, datetime.datetime)):
        return since.isoformat()
    return str(since)


class QuickBooks:
    """Async client for one QuickBooks Online company.

    Every entity call goes through five generic verbs (``create``, ``read``,
    ``update``, ``delete``, ``void``). Per-entity access is available as
    ``qb.entity("invoice")`` or simply ``qb.invoice``.
    """

    def __init__(
        self,
        config: ClientConfiguration,
        *,
        endpoints: Optional[EndpointSet] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.endpoints = endpoints or default_endpoints(config.oauth_version, config.sandbox)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.timeout, transport=transport)
        self.auth = AuthProvider(config, self.endpoints, self._http)
        self.translator = RequestTranslator(config, self.endpoints, self.auth, self._http)

    @classmethod
    def from_env(cls, **overrides: Any) -> "QuickBooks":
        return cls(ClientConfiguration.from_env(**overrides))

    @classmethod
    async def discover(cls, config: ClientConfiguration, **kwargs: Any) -> "QuickBooks":
        """Build a client whose OAuth 2.0 endpoints come from Intuit's discovery document."""
        client = cls(config, **kwargs)
        client.endpoints = await discover_endpoints(client._http, config.sandbox, client.endpoints)
        client.auth.endpoints = client.endpoints
        client.translator.endpoints = client.endpoints
        return client

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "QuickBooks":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ----------------------
    # Low-level request
    # ----------------------

    async def request(
        self,
        method: str,
        path: str,
        entity: Optional[Mapping[str, Any]] = None,
        *,
        entity_name: Optional[str] = None,
        root_tag: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
        files: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send one request and normalize its response.

        Args:
            method: HTTP method
            path: path under the company base (e.g. '/invoice') or an out-of-band URL
            entity: JSON payload
            entity_name: unwrap the response envelope under this entity name
            root_tag: parse an XML response and return this subtree
            params: extra query parameters (``minorversion`` here overrides the default)
            files: multipart payload, sent instead of JSON
            timeout: per-call timeout in seconds, covering retries and their waits
        """
        descriptor = self.translator.build(method, path, entity, params=params, files=files)
        resp = await self.translator.send(descriptor, timeout=timeout)
        return normalize(resp, entity_name=entity_name, root_tag=root_tag, expects_binary=descriptor.expects_binary)

    # ----------------------
    # Generic entity verbs
    # ----------------------

    async def create(self, entity_name: str, entity: Mapping[str, Any], *, params: Optional[Mapping[str, Any]] = None) -> Any:
        e = resolve(entity_name)
        return await self.request("POST", f"/{e.url_segment}", entity, entity_name=e.envelope_key, params=params)

    async def read(
        self,
        entity_name: str,
        entity_id: Optional[Union[str, int]] = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        e = resolve(entity_name)
        path = f"/{e.url_segment}"
        if entity_id:
            path += f"/{entity_id}"
        return await self.request("GET", path, entity_name=e.envelope_key, params=params)

    async def update(self, entity_name: str, entity: Mapping[str, Any], *, params: Optional[Mapping[str, Any]] = None) -> Any:
        e = resolve(entity_name)
        if (_blank(entity.get("Id")) or _blank(entity.get("SyncToken"))) and e.url_segment != "exchangerate":
            raise ValidationError(f"{entity_name} must contain Id and SyncToken fields: {dict(entity)!r}")

        body = dict(entity)
        if "sparse" not in body:
            body["sparse"] = True

        qparams: Dict[str, Any] = dict(params or {})
        qparams["operation"] = "update"
        if _is_true(body.get("void")):
            del body["void"]
            qparams["include"] = "void"
        return await self.request("POST", f"/{e.url_segment}", body, entity_name=e.envelope_key, params=qparams)

    async def _resolve_entity(self, e: Entity, id_or_entity: IdOrEntity) -> Mapping[str, Any]:
        if isinstance(id_or_entity, Mapping):
            return id_or_entity
        return await self.read(e.name, id_or_entity)

    async def delete(self, entity_name: str, id_or_entity: IdOrEntity) -> Any:
        """Delete by full entity, or by id (the entity is read first for its SyncToken)."""
        e = resolve(entity_name)
        entity = await self._resolve_entity(e, id_or_entity)
        return await self.request(
            "POST", f"/{e.url_segment}", entity, entity_name=e.envelope_key, params={"operation": "delete"}
        )

    async def void(self, entity_name: str, id_or_entity: IdOrEntity) -> Any:
        e = resolve(entity_name)
        entity = await self._resolve_entity(e, id_or_entity)
        return await self.request(
            "POST", f"/{e.url_segment}", entity, entity_name=e.envelope_key, params={"operation": "void"}
        )

    # ----------------------
    # Batch / CDC / upload
    # ----------------------

    async def batch(self, items: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Send up to 30 operations at once. Items come back in request order, each with its own envelope."""
        if len(items) > MAX_BATCH_ITEMS:
            raise ValidationError(f"A batch holds at most {MAX_BATCH_ITEMS} items, got {len(items)}")
        data = await self.request("POST", "/batch", {"BatchItemRequest": list(items)})
        if isinstance(data, dict) and "BatchItemResponse" in data:
            return data["BatchItemResponse"]
        return data

    async def change_data_capture(
        self,
        entities: Union[str, Iterable[str]],
        since: Union[str, datetime.date, datetime.datetime],
    ) -> List[Dict[str, Any]]:
        names = entities if isinstance(entities, str) else ",".join(entities)
        data = await self.request("GET", "/cdc", params={"entities": names, "changedSince": _timestamp(since)})
        if isinstance(data, dict) and "CDCResponse" in data:
            return data["CDCResponse"]
        return data

    async def upload(
        self,
        filename: str,
        content_type: str,
        stream: Union[bytes, BinaryIO],
        entity_type: Optional[str] = None,
        entity_id: Optional[Union[str, int]] = None,
    ) -> Dict[str, Any]:
        """Upload a file as an Attachable, optionally linking it to an entity."""
        if bool(entity_type) != (not _blank(entity_id)):
            raise ValidationError("entity_type and entity_id must be given together")
        files = {"file_content_01": (filename, stream, content_type)}
        data = await self.request("POST", "/upload", files=files, entity_name="AttachableResponse")
        first = (data or [{}])[0] if isinstance(data, list) else {}
        if fault_errors(first):
            raise RemoteFault(
                f"Upload of {filename} failed",
                errors=fault_errors(first),
                detail=first,
            )
        attachable = first.get("Attachable")
        if attachable is None:
            raise RemoteFault(f"Upload of {filename} returned no Attachable", detail=data)
        if not entity_type:
            return attachable

        logger.debug("Linking attachable %s to %s %s", attachable.get("Id"), entity_type, entity_id)
        return await self.update(
            "attachable",
            {
                "Id": attachable["Id"],
                "SyncToken": attachable.get("SyncToken", "0"),
                "AttachableRef": [{"EntityRef": {"type": entity_type, "value": str(entity_id)}}],
            },
        )

    # ----------------------
    # Query / reports / PDF
    # ----------------------

    async def query(self, entity_name: str, criteria: Criteria = None) -> Union[List[Dict[str, Any]], int]:
        """Run ``select * from <Entity>`` with the given criteria and return the entities.

        With ``fetchAll`` in the criteria, pages of ``limit`` (default 1000) are
        requested until a short page comes back. With ``count`` the matching
        total is returned instead, as from :meth:`count`.
        """
        e = resolve(entity_name)
        _, controls = split_criteria(criteria)
        if controls.get("count"):
            return await self.count(entity_name, criteria)
        if not controls.get("fetchAll"):
            return await self._query_page(e, build_query(e.envelope_key, criteria))

        limit = int(controls.get("limit") or MAX_RESULTS)
        offset = int(controls.get("offset") or 1)
        results: List[Dict[str, Any]] = []
        while True:
            page = await self._query_page(e, build_query(e.envelope_key, with_page(criteria, offset, limit)))
            results.extend(page)
            if len(page) < limit:
                return results
            offset += limit

    async def _query_page(self, e: Entity, sql: str) -> List[Dict[str, Any]]:
        data = await self.request("GET", "/query", params={"query": sql})
        return (data or {}).get("QueryResponse", {}).get(e.envelope_key, [])

    async def count(self, entity_name: str, criteria: Criteria = None) -> int:
        e = resolve(entity_name)
        data = await self.request("GET", "/query", params={"query": build_query(e.envelope_key, criteria, count=True)})
        return int((data or {}).get("QueryResponse", {}).get("totalCount", 0))

    async def report(self, report_name: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("GET", f"/reports/{report_name}", params=params)

    async def get_pdf(self, entity_name: str, entity_id: Union[str, int]) -> bytes:
        e = resolve(entity_name)
        return await self.request("GET", f"/{e.url_segment}/{entity_id}/pdf")

    async def send_pdf(self, entity_name: str, entity_id: Union[str, int], send_to: Optional[str] = None) -> Any:
        """E-mail a transaction PDF, to ``send_to`` or the address on file."""
        e = resolve(entity_name)
        params = {"sendTo": send_to} if send_to else None
        return await self.request("POST", f"/{e.url_segment}/{entity_id}/send", entity_name=e.envelope_key, params=params)

    # ----------------------
    # OAuth / platform
    # ----------------------

    async def refresh_access_token(self) -> Dict[str, Any]:
        return await self.auth.refresh_access_token()

    async def revoke_access(self, use_refresh_token: bool = False) -> Any:
        return await self.auth.revoke_access(use_refresh_token)

    def _endpoint(self, name: str) -> str:
        url = getattr(self.endpoints, name)
        if not url:
            raise ConfigurationError(f"{name} is not available for OAuth {self.config.oauth_version}")
        return url

    async def get_user_info(self) -> Dict[str, Any]:
        return await self.request("GET", self._endpoint("user_info_url"))

    async def reconnect(self) -> Dict[str, Any]:
        return await self.request("GET", self._endpoint("reconnect_url"), root_tag="ReconnectResponse")

    async def disconnect(self) -> Dict[str, Any]:
        return await self.request("GET", self._endpoint("disconnect_url"), root_tag="PlatformResponse")

    # ----------------------
    # Per-entity access
    # ----------------------

    def entity(self, name: str) -> "EntityResource":
        return EntityResource(self, resolve(name))

    def __getattr__(self, name: str) -> "EntityResource":
        key = name.replace("_", "").lower()
        if not name.startswith("_") and key in ops.ENTITIES:
            return EntityResource(self, ops.ENTITIES[key])
        raise AttributeError(name)


class EntityResource:
    """Verbs bound to one registered entity, e.g. ``qb.invoice.create({...})``."""

    def __init__(self, client: QuickBooks, entity: Entity):
        self.client = client
        self.entity = entity

    def __repr__(self) -> str:
        return f"<EntityResource {self.entity.envelope_key}>"

    def _require(self, operation: str) -> None:
        if not self.entity.supports(operation):
            raise ValidationError(f"{self.entity.envelope_key} does not support {operation}")

    async def create(self, payload: Mapping[str, Any]) -> Any:
        self._require(ops.CREATE)
        return await self.client.create(self.entity.name, payload)

    async def get(self, entity_id: Optional[Union[str, int]] = None, **params: Any) -> Any:
        self._require(ops.READ)
        return await self.client.read(self.entity.name, entity_id, params=params or None)

    async def update(self, payload: Mapping[str, Any]) -> Any:
        self._require(ops.UPDATE)
        return await self.client.update(self.entity.name, payload)

    async def delete(self, id_or_entity: IdOrEntity) -> Any:
        self._require(ops.DELETE)
        return await self.client.delete(self.entity.name, id_or_entity)

    async def void(self, id_or_entity: IdOrEntity) -> Any:
        self._require(ops.VOID)
        return await self.client.void(self.entity.name, id_or_entity)

    async def find(self, criteria: Criteria = None) -> List[Dict[str, Any]]:
        self._require(ops.QUERY)
        return await self.client.query(self.entity.name, criteria)

    async def count(self, criteria: Criteria = None) -> int:
        self._require(ops.QUERY)
        return await self.client.count(self.entity.name, criteria)

    async def pdf(self, entity_id: Union[str, int]) -> bytes:
        self._require(ops.PDF)
        return await self.client.get_pdf(self.entity.name, entity_id)

    async def send(self, entity_id: Union[str, int], send_to: Optional[str] = None) -> Any:
        self._require(ops.SEND)
        return await self.client.send_pdf(self.entity.name, entity_id, send_to)
