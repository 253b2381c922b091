from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from xml.parsers.expat import ExpatError

import httpx
import xmltodict

from qbo_client.errors import AuthError, ParseError, RateLimitError, RemoteFault

logger = logging.getLogger(__name__)

_BINARY_TYPES = ("application/pdf", "application/octet-stream")


# ---------------------------
# Response shapes
# ---------------------------

@dataclass(frozen=True)
class JsonBody:
    data: Any


@dataclass(frozen=True)
class XmlText:
    text: str


@dataclass(frozen=True)
class Binary:
    content: bytes
    content_type: str


@dataclass(frozen=True)
class PlainText:
    text: str


ResponseShape = Union[JsonBody, XmlText, Binary, PlainText]


def _content_type(response: httpx.Response) -> str:
    return (response.headers.get("content-type") or "").split(";")[0].strip().lower()


def classify(response: httpx.Response, *, expects_binary: bool = False) -> ResponseShape:
    """Decide the body shape from the Content-Type header.

    A successful reply to a PDF request is binary whatever its Content-Type,
    unless it declares JSON.
    """
    ctype = _content_type(response)
    if ctype == "application/json" or ctype.endswith("+json"):
        if not response.content:
            return PlainText("")
        try:
            return JsonBody(response.json())
        except ValueError as e:
            raise ParseError(
                f"Response declared {ctype} but is not JSON",
                detail=response.text,
                original_exception=e,
            ) from e
    if ctype in _BINARY_TYPES or ctype.startswith("image/") or (expects_binary and response.status_code < 300):
        return Binary(response.content, ctype)
    if "xml" in ctype:
        return XmlText(response.text)
    return PlainText(response.text)


# ---------------------------
# Envelope helpers
# ---------------------------

def capitalize(name: str) -> str:
    """Upper-case the first character only: ``journalCode`` -> ``JournalCode``."""
    return name[:1].upper() + name[1:]


def wrap(name: str, payload: Any) -> Dict[str, Any]:
    return {capitalize(name): payload}


def unwrap(data: Any, name: str) -> Any:
    if not isinstance(data, dict):
        return None
    return data.get(capitalize(name))


def fault_errors(data: Any) -> List[Dict[str, Any]]:
    if not isinstance(data, dict):
        return []
    fault = data.get("Fault")
    if not isinstance(fault, dict):
        return []
    errors = fault.get("Error") or []
    return errors if isinstance(errors, list) else [errors]


def is_fault(status_code: int, shape: ResponseShape, *, expects_json: bool = True) -> bool:
    if status_code >= 300:
        return True
    if isinstance(shape, JsonBody):
        return bool(fault_errors(shape.data))
    if expects_json and isinstance(shape, (XmlText, PlainText)):
        return shape.text.startswith("<")
    return False


def _raw_body(shape: ResponseShape) -> Any:
    if isinstance(shape, JsonBody):
        return shape.data
    if isinstance(shape, Binary):
        return shape.content
    return shape.text


def raise_fault(response: httpx.Response, shape: ResponseShape) -> None:
    detail = _raw_body(shape)
    errors = fault_errors(detail)
    intuit_tid = response.headers.get("intuit_tid")
    summary = errors[0].get("Message") if errors else None
    message = f"QBO API error {response.status_code}" + (f": {summary}" if summary else "")
    logger.warning("%s (intuit_tid=%s)", message, intuit_tid)

    if response.status_code == 401:
        raise AuthError(message, status_code=401, detail=detail)
    cls = RateLimitError if response.status_code == 429 else RemoteFault
    raise cls(
        message,
        status_code=response.status_code,
        errors=errors,
        intuit_tid=intuit_tid,
        detail=detail,
    )


def parse_xml(text: str, root_tag: str) -> Any:
    try:
        tree = xmltodict.parse(text)
    except ExpatError as e:
        raise ParseError("Malformed XML response", detail=text, original_exception=e) from e
    if root_tag not in tree:
        raise ParseError(f"XML response has no <{root_tag}> root", detail=tree)
    return tree[root_tag]


# ---------------------------
# Normalizer
# ---------------------------

def normalize(
    response: httpx.Response,
    *,
    entity_name: Optional[str] = None,
    root_tag: Optional[str] = None,
    expects_binary: bool = False,
) -> Any:
    """Turn a raw QBO response into a plain result or raise a typed error.

    Args:
        response: the HTTP response
        entity_name: unwrap ``{EntityName: {...}}`` under this name
        root_tag: parse XML bodies and return the subtree at this tag
        expects_binary: the request asked for a PDF
    """
    shape = classify(response, expects_binary=expects_binary)
    expects_json = root_tag is None

    if isinstance(shape, XmlText) or (isinstance(shape, PlainText) and shape.text.startswith("<")):
        if root_tag is not None and response.status_code < 300:
            result = parse_xml(shape.text, root_tag)
            if isinstance(result, dict) and str(result.get("ErrorCode", "0")) != "0":
                raise RemoteFault(
                    f"QBO error {result.get('ErrorCode')}: {result.get('ErrorMessage')}",
                    status_code=response.status_code,
                    detail=result,
                )
            return result

    if is_fault(response.status_code, shape, expects_json=expects_json):
        raise_fault(response, shape)

    if isinstance(shape, Binary):
        return shape.content
    if isinstance(shape, JsonBody):
        if entity_name is None:
            return shape.data
        entity = unwrap(shape.data, entity_name)
        return shape.data if entity is None else entity
    if not shape.text:
        return None
    raise ParseError(
        f"Unexpected {_content_type(response) or 'untyped'} response body",
        detail=shape.text,
    )
