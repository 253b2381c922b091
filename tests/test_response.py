import httpx
import pytest

from qbo_client.errors import AuthError, ParseError, RateLimitError, RemoteFault
from qbo_client.response import (
    Binary,
    JsonBody,
    PlainText,
    XmlText,
    capitalize,
    classify,
    normalize,
    unwrap,
    wrap,
)

FAULT = {"Fault": {"Error": [{"Message": "Stale Object Error", "Detail": "stale", "code": "5010"}], "type": "ValidationFault"}}


def test_capitalize_only_touches_first_character():
    assert capitalize("invoice") == "Invoice"
    assert capitalize("journalCode") == "JournalCode"
    assert capitalize("JournalCode") == "JournalCode"
    assert capitalize("companyinfo") == "Companyinfo"
    assert capitalize("") == ""


@pytest.mark.parametrize("name", ["invoice", "billPayment", "Preferences", "taxService"])
def test_unwrap_inverts_wrap(name):
    payload = {"Id": "1", "Line": [{"Amount": 10}]}
    assert unwrap(wrap(name, payload), name) == payload


def test_unwrap_missing_data_or_key():
    assert unwrap(None, "invoice") is None
    assert unwrap({"Bill": {}}, "invoice") is None
    assert unwrap([1, 2], "invoice") is None


def test_classify_by_content_type():
    assert classify(httpx.Response(200, json={"a": 1})) == JsonBody({"a": 1})
    pdf = httpx.Response(200, content=b"%PDF-1.4", headers={"content-type": "application/pdf"})
    assert classify(pdf) == Binary(b"%PDF-1.4", "application/pdf")
    xml = httpx.Response(200, text="<a/>", headers={"content-type": "text/xml; charset=utf-8"})
    assert classify(xml) == XmlText("<a/>")
    assert classify(httpx.Response(200, text="hello")) == PlainText("hello")


def test_classify_rejects_malformed_json():
    resp = httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"})
    with pytest.raises(ParseError):
        classify(resp)


def test_normalize_unwraps_entity_envelope():
    resp = httpx.Response(200, json={"Invoice": {"Id": "123", "SyncToken": "0"}, "time": "2024-01-01"})
    assert normalize(resp, entity_name="invoice") == {"Id": "123", "SyncToken": "0"}


def test_normalize_falls_back_to_body_without_envelope():
    body = {"QueryResponse": {}, "time": "x"}
    assert normalize(httpx.Response(200, json=body), entity_name="invoice") == body
    assert normalize(httpx.Response(200, json=body)) == body


def test_fault_envelope_with_200_is_failure():
    resp = httpx.Response(200, json=FAULT, headers={"intuit_tid": "tid-1"})
    with pytest.raises(RemoteFault) as exc:
        normalize(resp, entity_name="invoice")
    assert exc.value.status_code == 200
    assert exc.value.code == "5010"
    assert exc.value.detail == FAULT
    assert exc.value.intuit_tid == "tid-1"
    assert "Stale Object Error" in str(exc.value)


def test_empty_fault_error_list_is_not_failure():
    body = {"Fault": {"Error": []}, "Invoice": {"Id": "1"}}
    assert normalize(httpx.Response(200, json=body), entity_name="invoice") == {"Id": "1"}


@pytest.mark.parametrize(
    "resp",
    [
        httpx.Response(302, text=""),
        httpx.Response(400, json={"Invoice": {"Id": "1"}}),
        httpx.Response(500, text="Internal error"),
        httpx.Response(503, content=b"\x00", headers={"content-type": "application/pdf"}),
    ],
)
def test_status_300_and_above_is_failure_regardless_of_shape(resp):
    with pytest.raises(RemoteFault) as exc:
        normalize(resp, entity_name="invoice")
    assert exc.value.status_code == resp.status_code


def test_html_page_on_json_call_is_failure():
    resp = httpx.Response(200, text="<html>Service unavailable</html>", headers={"content-type": "text/html"})
    with pytest.raises(RemoteFault) as exc:
        normalize(resp)
    assert exc.value.detail.startswith("<html>")


def test_unauthorized_maps_to_auth_error():
    with pytest.raises(AuthError) as exc:
        normalize(httpx.Response(401, json={"fault": {"error": [{"message": "Token expired"}]}}))
    assert exc.value.status_code == 401


def test_throttled_maps_to_rate_limit_error():
    with pytest.raises(RateLimitError):
        normalize(httpx.Response(429, json=FAULT))


def test_pdf_returned_as_bytes():
    resp = httpx.Response(200, content=b"%PDF-1.4 data", headers={"content-type": "application/pdf"})
    assert normalize(resp, entity_name="invoice") == b"%PDF-1.4 data"


def test_pdf_request_without_content_type_is_bytes():
    resp = httpx.Response(200, content=b"%PDF-1.4 data")
    assert normalize(resp, expects_binary=True) == b"%PDF-1.4 data"


def test_pdf_request_fault_still_raises():
    with pytest.raises(RemoteFault):
        normalize(httpx.Response(400, json=FAULT), expects_binary=True)


def test_empty_body_is_none():
    assert normalize(httpx.Response(200, content=b"")) is None


def test_unexpected_plain_text_is_parse_error():
    with pytest.raises(ParseError):
        normalize(httpx.Response(200, text="OK"))


RECONNECT_OK = (
    '<ReconnectResponse xmlns="http://platform.intuit.com/api/v1">'
    "<ErrorMessage/><ErrorCode>0</ErrorCode><ServerTime>2024-01-01T00:00:00</ServerTime>"
    "<OAuthToken>new-token</OAuthToken><OAuthTokenSecret>new-secret</OAuthTokenSecret>"
    "</ReconnectResponse>"
)


def test_xml_root_tag_subtree():
    resp = httpx.Response(200, text=RECONNECT_OK, headers={"content-type": "text/xml"})
    result = normalize(resp, root_tag="ReconnectResponse")
    assert result["ErrorCode"] == "0"
    assert result["OAuthToken"] == "new-token"


def test_xml_nonzero_error_code_is_failure():
    text = (
        '<PlatformResponse xmlns="http://platform.intuit.com/api/v1">'
        "<ErrorMessage>OAuth Token rejected</ErrorMessage><ErrorCode>270</ErrorCode>"
        "</PlatformResponse>"
    )
    resp = httpx.Response(200, text=text, headers={"content-type": "text/plain"})
    with pytest.raises(RemoteFault) as exc:
        normalize(resp, root_tag="PlatformResponse")
    assert exc.value.detail["ErrorCode"] == "270"


def test_xml_missing_root_tag_is_parse_error():
    resp = httpx.Response(200, text="<Other/>", headers={"content-type": "application/xml"})
    with pytest.raises(ParseError):
        normalize(resp, root_tag="ReconnectResponse")
