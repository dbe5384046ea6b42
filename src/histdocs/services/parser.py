"""Parses the classifier's raw text answer into a ParsedAnalysis."""

import json
import re
from typing import Any

import structlog

from histdocs.errors import AnalysisParseFailed
from histdocs.models.analysis import ParsedAnalysis
from histdocs.models.entity import EntityInput
from histdocs.models.enums import DocumentType, EntityType

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_DOCUMENT_TYPES = frozenset(t.value for t in DocumentType)
_ENTITY_TYPES = frozenset(t.value for t in EntityType)

logger = structlog.get_logger(__name__)


def parse_analysis(raw_text: str) -> ParsedAnalysis:
    """Turn model output into structured fields.

    Accepts a bare JSON object, a fenced ```json block, or a JSON object
    embedded in surrounding prose. Keys may be camelCase or snake_case.
    Entities with an empty name or an unknown type are dropped.

    Raises:
        AnalysisParseFailed: If no JSON object can be read, a required
            field is missing, or the document type is unknown.
    """
    data = _load_json_object(raw_text)

    document_type = _normalize_enum_value(_pick(data, "documentType", "document_type", "type"))
    if document_type not in _DOCUMENT_TYPES:
        raise AnalysisParseFailed(f"Unknown document type: {document_type or '<missing>'}")

    title = _pick_text(data, "title")
    content = _pick_text(data, "content", "text")
    if not title:
        raise AnalysisParseFailed("Analysis is missing a title")
    if not content:
        raise AnalysisParseFailed("Analysis is missing content")

    raw_entities = data.get("entities") or []
    if not isinstance(raw_entities, list):
        raise AnalysisParseFailed("Analysis entities must be a list")

    return ParsedAnalysis(
        document_type=DocumentType(document_type),
        title=title,
        content=content,
        entities=_parse_entities(raw_entities),
    )


def _load_json_object(raw_text: str) -> dict[str, Any]:
    if not raw_text or not raw_text.strip():
        raise AnalysisParseFailed("Classifier returned no text")

    fenced = _FENCE_RE.search(raw_text)
    candidate = fenced.group(1) if fenced else raw_text

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        raise AnalysisParseFailed("No JSON object found in classifier output")

    try:
        data = json.loads(candidate[start : end + 1])
    except json.JSONDecodeError as e:
        raise AnalysisParseFailed(f"Invalid JSON in classifier output: {e}", cause=e) from e
    if not isinstance(data, dict):
        raise AnalysisParseFailed("Classifier output is not a JSON object")
    return data


def _parse_entities(raw_entities: list[Any]) -> list[EntityInput]:
    entities: list[EntityInput] = []
    for item in raw_entities:
        if not isinstance(item, dict):
            continue
        name = _pick_text(item, "name")
        entity_type = _normalize_enum_value(_pick(item, "type", "entityType", "entity_type"))
        if not name or entity_type not in _ENTITY_TYPES:
            logger.debug("entity_dropped", name=name, entity_type=entity_type)
            continue
        entities.append(EntityInput(name=name, type=entity_type))
    return entities


def _pick(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _pick_text(data: dict[str, Any], *keys: str) -> str:
    value = _pick(data, *keys)
    if value is None:
        return ""
    return str(value).strip()


def _normalize_enum_value(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"[\s\-]+", "_", str(value).strip().lower())
