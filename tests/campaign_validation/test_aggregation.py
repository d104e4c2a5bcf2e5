"""Tests for campaign_validation.aggregation module."""

from __future__ import annotations

import pytest

from campaign_validation.aggregation import ValidationSummary, can_import, summarize
from campaign_validation.base import Issue, Severity
from campaign_validation.logging import BufferingHandler, LogLevel, configure_logging


def _issues():
    return [
        Issue(0, "Range", Severity.CRITICAL, "Range is required"),
        Issue(0, "Jan", Severity.WARNING, "Jan is blank"),
        Issue(2, "Range", Severity.WARNING, "r"),
        Issue(3, "Year", Severity.SUGGESTION, "y"),
    ]


class TestSummarize:
    """Tests for summarize."""

    def test_counts(self):
        """Test counts by severity, field and row."""
        issues = _issues()
        summary = summarize(issues)
        assert summary == ValidationSummary(
            total=4,
            critical=1,
            warning=2,
            suggestion=1,
            by_field={
                "Range": [issues[0], issues[2]],
                "Jan": [issues[1]],
                "Year": [issues[3]],
            },
            unique_rows=3,
        )
        assert summary.field_counts == {"Range": 2, "Jan": 1, "Year": 1}
        assert not summary.can_import

    def test_empty(self):
        """Test no issues gives an importable empty summary."""
        summary = summarize([])
        assert summary.total == 0
        assert summary.can_import

    def test_wire_dicts(self):
        """Test wire-shaped dicts are accepted."""
        summary = summarize([issue.to_dict() for issue in _issues()])
        assert summary.total == 4
        assert summary.critical == 1

    def test_malformed_entries_skipped(self):
        """Test junk entries are skipped and logged."""
        handler = BufferingHandler()
        configure_logging(level=LogLevel.DEBUG, handlers=[handler])
        summary = summarize([*_issues(), "oops", {"severity": "fatal"}, None])
        assert summary.total == 4
        assert handler.records[-1].extra["skipped"] == 3

    @pytest.mark.parametrize("severity", [None, 3, ["critical"]])
    def test_non_string_severity_skipped(self, severity):
        """Test entries whose severity is not a string are skipped."""
        entry = {"rowIndex": 0, "columnName": "Range", "severity": severity, "message": "x"}
        summary = summarize([entry, *_issues()[1:2]])
        assert summary.total == 1
        assert summary.warning == 1

    def test_not_a_list(self):
        """Test non-list input yields an empty summary."""
        assert summarize(None) == ValidationSummary()
        assert summarize("issues") == ValidationSummary()

    def test_to_dict(self):
        """Test the wire shape of the summary."""
        assert summarize(_issues()[1:2]).to_dict() == {
            "total": 1,
            "critical": 0,
            "warning": 1,
            "suggestion": 0,
            "byField": {
                "Jan": [
                    {
                        "rowIndex": 0,
                        "columnName": "Jan",
                        "severity": "warning",
                        "message": "Jan is blank",
                        "currentValue": None,
                    }
                ]
            },
            "uniqueRows": 1,
            "canImport": True,
        }


class TestCanImport:
    """Tests for can_import."""

    def test_blocked_by_critical(self):
        """Test any critical issue blocks the import."""
        assert not can_import(_issues())

    def test_warnings_allowed(self):
        """Test warnings and suggestions do not block."""
        assert can_import(_issues()[1:])
        assert can_import([])

    def test_wire_dicts(self):
        """Test wire-shaped dicts are evaluated."""
        assert not can_import([{"rowIndex": 0, "columnName": "Range", "severity": "critical"}])

    def test_non_string_severity_ignored(self):
        """Test an entry with a non-string severity neither raises nor blocks."""
        assert can_import([{"rowIndex": 0, "columnName": "Range", "severity": None}])

    def test_not_a_list(self):
        """Test non-list input cannot be vouched for."""
        assert not can_import(None)
        assert not can_import({"severity": "warning"})
