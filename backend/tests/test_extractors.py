"""Tests for XPath / Regex / JSONPath / Header extraction."""

import pytest

from integrations.http_transport import HttpResponse
from workflow.extractors import ExtractionFailure, ExtractorEvaluator
from workflow.models import Extractor

SOAP_BODY = """<?xml version="1.0"?>
<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/">
  <s:Body>
    <LoginResponse xmlns="urn:example:auth">
      <token>soap-token</token>
    </LoginResponse>
  </s:Body>
</s:Envelope>"""

ORDERS_JSON = '{"data": {"items": [{"id": 7, "sku": "A-1"}, {"id": 9, "sku": "B-2"}], "active": true, "meta": {"page": 1}}}'


def _extract(type_, path, body="", headers=None, source="body"):
    extractor = Extractor(type=type_, path=path, variable="out", source=source)
    return ExtractorEvaluator.evaluate(
        extractor, HttpResponse(status_code=200, headers=headers or {}, body=body)
    )


@pytest.mark.unit
class TestXPath:

    def test_element_text(self):
        assert _extract("XPath", "//token", "<login><token>abc123</token></login>") == "abc123"

    def test_text_node(self):
        assert _extract("XPath", "/login/token/text()", "<login><token>abc123</token></login>") == "abc123"

    def test_attribute(self):
        body = "<items><item id='1' price='3.50'/><item id='2' price='9.99'/></items>"
        assert _extract("XPath", "//item[@id='2']/@price", body) == "9.99"

    def test_first_match_wins(self):
        body = "<items><item>first</item><item>second</item></items>"
        assert _extract("XPath", "//item", body) == "first"

    def test_numeric_result(self):
        body = "<items><item/><item/></items>"
        assert _extract("XPath", "count(//item)", body) == "2"

    def test_default_namespace_retried_without_namespaces(self):
        assert _extract("XPath", "//token", SOAP_BODY) == "soap-token"

    def test_document_prefixes_usable(self):
        assert _extract("XPath", "//s:Body", SOAP_BODY).strip() == "soap-token"

    def test_no_match_is_failure(self):
        result = _extract("XPath", "//missing", "<login><token>x</token></login>")
        assert isinstance(result, ExtractionFailure)
        assert "matched nothing" in result.reason

    def test_malformed_xml_is_failure(self):
        result = _extract("XPath", "//token", "<login><token>")
        assert isinstance(result, ExtractionFailure)
        assert "not well-formed" in result.reason

    def test_invalid_expression_is_failure(self):
        result = _extract("XPath", "//[", "<a/>")
        assert isinstance(result, ExtractionFailure)
        assert "invalid XPath" in result.reason

    def test_empty_body_is_failure(self):
        assert isinstance(_extract("XPath", "//a", "   "), ExtractionFailure)


@pytest.mark.unit
class TestRegex:

    def test_first_capture_group(self):
        body = '{"token":"abc123","refresh":"zzz"}'
        assert _extract("Regex", r'"token":"([^"]+)"', body) == "abc123"

    def test_pattern_without_group_is_failure(self):
        result = _extract("Regex", r"token", "token")
        assert isinstance(result, ExtractionFailure)
        assert "no capture group" in result.reason

    def test_no_match_is_failure(self):
        assert isinstance(_extract("Regex", r"id=(\d+)", "nothing here"), ExtractionFailure)

    def test_invalid_pattern_is_failure(self):
        result = _extract("Regex", r"([", "x")
        assert isinstance(result, ExtractionFailure)
        assert "invalid regular expression" in result.reason

    def test_optional_group_not_participating(self):
        assert isinstance(_extract("Regex", r"a(b)?c", "ac"), ExtractionFailure)


@pytest.mark.unit
class TestJSONPath:

    def test_nested_value(self):
        assert _extract("JSONPath", "$.data.items[0].sku", ORDERS_JSON) == "A-1"

    def test_number_is_stringified(self):
        assert _extract("JSONPath", "$.data.items[1].id", ORDERS_JSON) == "9"

    def test_boolean_is_lowercase(self):
        assert _extract("JSONPath", "$.data.active", ORDERS_JSON) == "true"

    def test_object_is_serialized_as_json(self):
        assert _extract("JSONPath", "$.data.meta", ORDERS_JSON) == '{"page": 1}'

    def test_case_insensitive_type_name(self):
        assert _extract("jsonpath", "$.data.items[0].id", ORDERS_JSON) == "7"

    def test_missing_path_is_failure(self):
        result = _extract("JSONPath", "$.data.nothing", ORDERS_JSON)
        assert isinstance(result, ExtractionFailure)
        assert "matched nothing" in result.reason

    def test_non_json_body_is_failure(self):
        result = _extract("JSONPath", "$.a", "<xml/>")
        assert isinstance(result, ExtractionFailure)
        assert "not valid JSON" in result.reason


@pytest.mark.unit
class TestHeader:

    def test_header_type_is_case_insensitive(self):
        assert _extract("Header", "x-auth-token", headers={"X-Auth-Token": "hdr-1"}) == "hdr-1"

    def test_header_source_treats_path_as_name(self):
        result = _extract("XPath", "Location", headers={"location": "/orders/5"}, source="header")
        assert result == "/orders/5"

    def test_missing_header_is_failure(self):
        result = _extract("Header", "X-Missing", headers={"X-Other": "1"})
        assert isinstance(result, ExtractionFailure)
        assert str(result) == "Extraction of 'out' failed: header 'X-Missing' not present in response"
