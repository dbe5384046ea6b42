"""Unit tests for parsing classifier output."""

import json

import pytest

from histdocs.errors import AnalysisParseFailed
from histdocs.models.enums import DocumentType
from histdocs.services.parser import parse_analysis
from tests.fakes import analysis_json


class TestParseAnalysis:
    def test_parses_bare_json(self) -> None:
        parsed = parse_analysis(analysis_json())

        assert parsed.document_type == DocumentType.LETTER
        assert parsed.title == "Letter from the Front"
        assert [(e.name, e.entity_type) for e in parsed.entities] == [
            ("John Smith", "person"),
            ("Verdun", "location"),
            ("1916-03-02", "date"),
        ]

    def test_parses_fenced_block_with_prose(self) -> None:
        raw = f"Here is the analysis:\n```json\n{analysis_json()}\n```\nLet me know if you need more."

        parsed = parse_analysis(raw)

        assert parsed.document_type == DocumentType.LETTER

    def test_parses_object_embedded_in_prose(self) -> None:
        parsed = parse_analysis(f"Sure. {analysis_json()} Done.")

        assert parsed.title == "Letter from the Front"

    def test_accepts_snake_case_keys(self) -> None:
        raw = json.dumps(
            {
                "document_type": "newspaper",
                "title": "Armistice Signed",
                "content": "Fighting has ceased.",
                "entities": [{"name": "Compiegne", "entity_type": "location"}],
            }
        )

        parsed = parse_analysis(raw)

        assert parsed.document_type == DocumentType.NEWSPAPER
        assert parsed.entities[0].entity_type == "location"

    def test_normalizes_enum_spelling(self) -> None:
        parsed = parse_analysis(
            analysis_json(documentType="Diary Entry", entities=[{"name": "Kaiser Wilhelm", "type": "PERSON"}])
        )

        assert parsed.document_type == DocumentType.DIARY_ENTRY
        assert parsed.entities[0].entity_type == "person"

    def test_drops_invalid_entities(self) -> None:
        parsed = parse_analysis(
            analysis_json(
                entities=[
                    {"name": "", "type": "person"},
                    {"name": "Atlantis", "type": "myth"},
                    "not an entity",
                    {"name": "Red Cross", "type": "organization"},
                ]
            )
        )

        assert [e.name for e in parsed.entities] == ["Red Cross"]

    def test_missing_entities_yields_empty_list(self) -> None:
        raw = json.dumps({"documentType": "report", "title": "Scrap", "content": "Illegible"})

        assert parse_analysis(raw).entities == []

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "I cannot read this document.",
            "{not json}",
            "[1, 2, 3]",
        ],
    )
    def test_rejects_unreadable_output(self, raw: str) -> None:
        with pytest.raises(AnalysisParseFailed):
            parse_analysis(raw)

    def test_rejects_unknown_document_type(self) -> None:
        with pytest.raises(AnalysisParseFailed, match="Unknown document type: telegram"):
            parse_analysis(analysis_json(documentType="telegram"))

    @pytest.mark.parametrize(("field", "message"), [("title", "missing a title"), ("content", "missing content")])
    def test_rejects_missing_required_text(self, field: str, message: str) -> None:
        with pytest.raises(AnalysisParseFailed, match=message):
            parse_analysis(analysis_json(**{field: "  "}))

    def test_rejects_non_list_entities(self) -> None:
        with pytest.raises(AnalysisParseFailed):
            parse_analysis(analysis_json(entities={"name": "Verdun"}))
