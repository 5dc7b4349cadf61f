"""Extractor evaluation: pull one value out of a recorded response.

Supports:
- XPath: ``//token``, ``/Envelope/Body/LoginResponse/token/text()``,
  ``//item[@id='2']/@price``, ``count(//item)``
- Regex: ``"token":"([^"]+)"`` (first capture group of the first match)
- JSONPath: ``$.data.items[0].id``, ``data.token``
- Header: literal, case-insensitive header name

Evaluation never raises: parse errors, bad expressions and misses come
back as an ExtractionFailure carrying a readable reason.
"""

import copy
import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

import structlog
from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.ext import parse as parse_jsonpath
from lxml import etree

from core.constants import ExtractorType
from integrations.http_transport import HttpResponse
from workflow.models import Extractor

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExtractionFailure:
    """Why an extractor produced no value."""

    extractor_id: str
    variable: str
    reason: str

    def __str__(self) -> str:
        return f"Extraction of '{self.variable}' failed: {self.reason}"


ExtractionResult = Union[str, ExtractionFailure]


class _Miss(Exception):
    """Internal signal carrying the failure reason."""


# ─── XPath helpers ────────────────────────────────────────────

_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def _parse_xml(body: str):
    text = body.strip()
    if not text:
        raise _Miss("response body is empty")
    try:
        return etree.fromstring(text.encode("utf-8"), _XML_PARSER)
    except (etree.XMLSyntaxError, ValueError) as e:
        raise _Miss(f"response body is not well-formed XML: {e}")


def _document_prefixes(root) -> dict[str, str]:
    prefixes: dict[str, str] = {}
    for element in root.iter():
        for prefix, uri in (element.nsmap or {}).items():
            if prefix and prefix not in prefixes:
                prefixes[prefix] = uri
    return prefixes


def _uses_namespaces(root) -> bool:
    return any(isinstance(el.tag, str) and el.tag.startswith("{") for el in root.iter())


def _strip_namespaces(root):
    stripped = copy.deepcopy(root)
    for element in stripped.iter():
        if isinstance(element.tag, str) and element.tag.startswith("{"):
            element.tag = etree.QName(element).localname
        for key in list(element.attrib):
            if key.startswith("{"):
                value = element.attrib.pop(key)
                element.attrib[etree.QName(key).localname] = value
    etree.cleanup_namespaces(stripped)
    return stripped


def _xpath_string(result: Any) -> Optional[str]:
    """String value of the first node-set item, or of a scalar result."""
    if isinstance(result, list):
        if not result:
            return None
        item = result[0]
        if isinstance(item, etree._Element):
            return "".join(item.itertext())
        if isinstance(item, tuple):
            # namespace node: (prefix, uri)
            return str(item[1])
        return str(item)
    if isinstance(result, bool):
        return "true" if result else "false"
    if isinstance(result, float):
        return str(int(result)) if result.is_integer() else str(result)
    return str(result)


# ─── JSON helpers ─────────────────────────────────────────────

def _json_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


class ExtractorEvaluator:
    """Evaluate an Extractor against an HttpResponse."""

    @staticmethod
    def evaluate(extractor: Extractor, response: HttpResponse) -> ExtractionResult:
        try:
            if extractor.reads_header:
                value = ExtractorEvaluator._header(extractor.path, response)
            elif extractor.type == ExtractorType.XPATH:
                value = ExtractorEvaluator._xpath(extractor.path, response.body)
            elif extractor.type == ExtractorType.REGEX:
                value = ExtractorEvaluator._regex(extractor.path, response.body)
            elif extractor.type == ExtractorType.JSONPATH:
                value = ExtractorEvaluator._jsonpath(extractor.path, response.body)
            else:
                raise _Miss(f"unsupported extractor type {extractor.type}")
        except _Miss as miss:
            failure = ExtractionFailure(extractor.id, extractor.variable, str(miss))
            logger.debug(
                "Extraction failed",
                variable=extractor.variable,
                extractor_type=extractor.type.value,
                reason=failure.reason,
            )
            return failure
        return value

    @staticmethod
    def _header(name: str, response: HttpResponse) -> str:
        value = response.header(name)
        if value is None:
            raise _Miss(f"header '{name}' not present in response")
        return value

    @staticmethod
    def _xpath(expression: str, body: str) -> str:
        root = _parse_xml(body)
        try:
            value = _xpath_string(root.xpath(expression, namespaces=_document_prefixes(root)))
            if value is None and _uses_namespaces(root):
                value = _xpath_string(_strip_namespaces(root).xpath(expression))
        except etree.XPathError as e:
            raise _Miss(f"invalid XPath expression '{expression}': {e}")
        if value is None:
            raise _Miss(f"XPath '{expression}' matched nothing")
        return value

    @staticmethod
    def _regex(pattern: str, body: str) -> str:
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise _Miss(f"invalid regular expression '{pattern}': {e}")
        if compiled.groups < 1:
            raise _Miss(f"pattern '{pattern}' has no capture group")
        match = compiled.search(body)
        if match is None:
            raise _Miss(f"pattern '{pattern}' did not match")
        if match.group(1) is None:
            raise _Miss(f"capture group of '{pattern}' did not participate in the match")
        return match.group(1)

    @staticmethod
    def _jsonpath(path: str, body: str) -> str:
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, TypeError) as e:
            raise _Miss(f"response body is not valid JSON: {e}")
        try:
            matches = parse_jsonpath(path).find(data)
        except (JSONPathError, TypeError, ValueError, AttributeError) as e:
            raise _Miss(f"invalid JSONPath '{path}': {e}")
        if not matches:
            raise _Miss(f"JSONPath '{path}' matched nothing")
        return _json_string(matches[0].value)
