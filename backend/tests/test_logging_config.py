"""Tests for log renderer selection."""

import pytest
import structlog

from core.logging_config import select_renderer


@pytest.mark.unit
class TestSelectRenderer:

    def test_json_by_default(self):
        assert isinstance(select_renderer("json"), structlog.processors.JSONRenderer)

    def test_text_format_uses_console(self):
        assert isinstance(select_renderer("TEXT"), structlog.dev.ConsoleRenderer)

    def test_development_forces_console(self):
        assert isinstance(select_renderer("json", development=True), structlog.dev.ConsoleRenderer)
