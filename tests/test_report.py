"""Tests for impact report rendering."""

from __future__ import annotations

import re

import pytest

from conftest import add_dep
from policygraph.errors import ValidationError
from policygraph.report import render_pdf, render_report, report_lines


@pytest.fixture
def analysis(orchestrator):
    orchestrator.register_policy("pol-1", title="Expenses (EU)")
    for i in range(5):
        add_dep(orchestrator, "pol-1", "workflow", f"wf-{i}")
    orchestrator.set_dependent_metadata("workflow", "wf-0", name="Claims", department="Finance")
    return orchestrator.get_impact_analysis("pol-1")


class TestRenderReport:
    def test_json_is_analysis_dict(self, analysis):
        body, media_type = render_report(analysis, "json")
        assert media_type == "application/json"
        assert body["riskAssessment"]["riskLevel"] == "high"
        assert body["policy"]["title"] == "Expenses (EU)"

    def test_format_case_insensitive(self, analysis):
        _, media_type = render_report(analysis, "HTML")
        assert media_type == "text/html"

    def test_unknown_format(self, analysis):
        with pytest.raises(ValidationError, match="Unsupported report format"):
            render_report(analysis, "xlsx")

    def test_html_sections(self, analysis):
        body, _ = render_report(analysis, "html")
        assert body.startswith("<!DOCTYPE html>")
        assert "Expenses (EU)" in body
        assert "Confirm readiness with Finance (required)" in body
        assert "<td>Claims</td>" in body

    def test_pdf_structure(self, analysis):
        body, media_type = render_report(analysis, "pdf")
        assert media_type == "application/pdf"
        assert body.startswith(b"%PDF-1.4")
        assert body.rstrip().endswith(b"%%EOF")
        # parentheses in text are escaped inside PDF string literals
        assert b"Expenses \\(EU\\)" in body


class TestReportLines:
    def test_outline(self, analysis):
        lines = report_lines(analysis.to_dict())
        assert lines[0] == "Policy Impact Report: Expenses (EU)"
        assert "Risk score: 60 (high)" in lines
        assert "Requires approval: yes" in lines
        assert "  [high] 5 strong dependencies" in lines


class TestRenderPdf:
    def test_xref_offsets_point_at_objects(self):
        body = render_pdf(["hello", "world"])
        xref_at = int(re.search(rb"startxref\n(\d+)", body).group(1))
        assert body[xref_at:xref_at + 4] == b"xref"
        offsets = [int(m) for m in re.findall(rb"(\d{10}) 00000 n", body)]
        for number, offset in enumerate(offsets, start=1):
            assert body[offset:].startswith(f"{number} 0 obj".encode())

    def test_paginates(self):
        body = render_pdf([f"line {i}" for i in range(120)])
        assert b"/Count 3" in body

    def test_empty_still_one_page(self):
        assert b"/Count 1" in render_pdf([])

    def test_non_latin_text_replaced(self):
        body = render_pdf(["Richtlinie → über"])
        assert b"Richtlinie ? \xfcber" in body
