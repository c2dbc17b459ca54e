"""Tests for analysis request parsing."""

import pytest

from codelens.core.analysis import AnalysisOptions, AnalysisStatus, AnalysisType
from codelens.core.errors import ValidationError

KNOWN = ["typescript", "javascript", "python", "go"]
DEFAULTS = AnalysisOptions(languages=list(KNOWN), max_symbols=50, batch_size=5)


class TestAnalysisType:
    @pytest.mark.parametrize("raw", ["FULL", "full", "Full", AnalysisType.FULL])
    def test_parse(self, raw):
        assert AnalysisType.parse(raw) is AnalysisType.FULL

    @pytest.mark.parametrize("raw", ["", "SECURITY", None, 3])
    def test_rejects_unknown(self, raw):
        with pytest.raises(ValidationError):
            AnalysisType.parse(raw)


class TestAnalysisStatus:
    def test_terminal_statuses(self):
        assert {s for s in AnalysisStatus if s.is_terminal} == {
            AnalysisStatus.COMPLETED,
            AnalysisStatus.FAILED,
            AnalysisStatus.CANCELLED,
        }


class TestAnalysisOptions:
    def test_defaults_when_missing(self):
        opts = AnalysisOptions.from_dict(None, KNOWN, DEFAULTS)
        assert opts == DEFAULTS
        assert opts.languages is not DEFAULTS.languages

    def test_camel_and_snake_keys(self):
        camel = AnalysisOptions.from_dict(
            {"languages": ["go"], "maxSymbols": 3, "batchSize": 2, "filePath": "cmd/main.go"},
            KNOWN, DEFAULTS,
        )
        snake = AnalysisOptions.from_dict(
            {"languages": ["go"], "max_symbols": 3, "batch_size": 2, "file_path": "cmd/main.go"},
            KNOWN, DEFAULTS,
        )
        assert camel == snake
        assert camel.to_dict() == {
            "languages": ["go"],
            "maxSymbols": 3,
            "batchSize": 2,
            "filePath": "cmd/main.go",
        }

    def test_empty_language_list_means_all(self):
        assert AnalysisOptions.from_dict({"languages": []}, KNOWN, DEFAULTS).languages == []

    @pytest.mark.parametrize("raw", [
        {"languages": "python"},
        {"languages": ["python", 3]},
        {"languages": ["rust"]},
        {"maxSymbols": 0},
        {"maxSymbols": True},
        {"batchSize": 2.5},
        {"filePath": ""},
        {"filePath": "/abs/path.py"},
        {"filePath": "src/../../secret.py"},
        {"depth": 3},
    ])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            AnalysisOptions.from_dict(raw, KNOWN, DEFAULTS)
