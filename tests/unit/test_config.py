"""Tests for Settings.from_env."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from histdocs.config import Settings


def test_defaults_without_environment() -> None:
    settings = Settings.from_env({})

    assert settings.db_path == "histdocs.db"
    assert settings.ai_model == "gpt-4o-mini"
    assert settings.analysis_ttl == 3600
    assert settings.image_ttl == 7200
    assert settings.job_retention_hours == 24
    assert settings.files_root == Path.cwd()
    assert settings.db_busy_timeout == 30.0


def test_reads_prefixed_variables() -> None:
    settings = Settings.from_env(
        {
            "HISTDOCS_DB_PATH": "/var/lib/histdocs/archive.db",
            "HISTDOCS_FILES_ROOT": "/srv/scans",
            "HISTDOCS_AI_TIMEOUT": "12.5",
            "HISTDOCS_DB_BUSY_TIMEOUT": "5",
            "HISTDOCS_ANALYSIS_TTL": "60",
            "HISTDOCS_AI_API_KEY": "sk-histdocs",
            "OPENAI_API_KEY": "sk-openai",
        }
    )

    assert settings.db_path == "/var/lib/histdocs/archive.db"
    assert settings.files_root == Path("/srv/scans")
    assert settings.ai_timeout == 12.5
    assert settings.db_busy_timeout == 5.0
    assert settings.analysis_ttl == 60
    assert settings.ai_api_key == "sk-histdocs"


def test_falls_back_to_openai_api_key() -> None:
    assert Settings.from_env({"OPENAI_API_KEY": "sk-openai"}).ai_api_key == "sk-openai"


def test_blank_values_keep_defaults() -> None:
    assert Settings.from_env({"HISTDOCS_DB_PATH": "  "}).db_path == "histdocs.db"


def test_rejects_non_positive_ttl() -> None:
    with pytest.raises(ValidationError):
        Settings.from_env({"HISTDOCS_IMAGE_TTL": "0"})
