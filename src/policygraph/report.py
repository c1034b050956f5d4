"""Impact report rendering: JSON, HTML and PDF views of an ImpactAnalysis.

All three formats render the same ``ImpactAnalysis.to_dict()`` payload; the
HTML and PDF variants only change presentation.
"""

from __future__ import annotations

import html
from typing import Any

from policygraph.errors import ValidationError
from policygraph.models import ImpactAnalysis

REPORT_FORMATS = {
    "json": "application/json",
    "html": "text/html",
    "pdf": "application/pdf",
}

_PDF_LINES_PER_PAGE = 50
_PDF_FONT_SIZE = 10
_PDF_LEADING = 14


def resolve_format(fmt: str | None) -> str:
    """Normalise a report format name; unknown names raise ``ValidationError``."""
    fmt = (fmt or "json").lower()
    if fmt not in REPORT_FORMATS:
        allowed = ", ".join(REPORT_FORMATS)
        raise ValidationError(f"Unsupported report format: {fmt!r} (expected one of: {allowed})",
                              ["format"])
    return fmt


def render_report(analysis: ImpactAnalysis, fmt: str = "json") -> tuple[Any, str]:
    """Return ``(body, media_type)`` for the requested format."""
    fmt = resolve_format(fmt)
    data = analysis.to_dict()
    if fmt == "json":
        return data, REPORT_FORMATS[fmt]
    if fmt == "html":
        return render_html(data), REPORT_FORMATS[fmt]
    return render_pdf(report_lines(data)), REPORT_FORMATS[fmt]


# ---------------------------------------------------------------------------
# Plain-text outline (shared by PDF)
# ---------------------------------------------------------------------------

def _policy_title(data: dict[str, Any]) -> str:
    policy = data.get("policy", {})
    return policy.get("title") or policy.get("id", "")


def report_lines(data: dict[str, Any]) -> list[str]:
    risk = data["riskAssessment"]
    scope = data["changeScope"]
    graph = data["dependencyGraph"]
    lines = [
        f"Policy Impact Report: {_policy_title(data)}",
        f"Policy ID: {data['policy'].get('id', '')}",
        f"Analyzed at: {data['analyzedAt']}",
        "",
        f"Risk score: {risk['overallRiskScore']} ({risk['riskLevel']})",
        f"Requires approval: {'yes' if risk['requiresApproval'] else 'no'}",
        f"Dependencies: {risk['dependencyCount']}  "
        f"(strong {risk['byStrength'].get('strong', 0)}, "
        f"medium {risk['byStrength'].get('medium', 0)}, "
        f"weak {risk['byStrength'].get('weak', 0)})",
        f"Graph: {graph['metadata'].get('nodeCount', 0)} nodes, "
        f"max depth {graph['metadata'].get('maxDepthReached', 0)}",
        "",
        f"Scope: {'system-wide' if scope['isSystemWide'] else 'localized'}, "
        f"radius {scope['impactRadius']}, {scope['totalAffected']} affected",
    ]
    if scope["affectedDepartments"]:
        lines.append("Departments: " + ", ".join(scope["affectedDepartments"]))

    lines += ["", "Risk factors:"]
    lines += [f"  [{f['severity']}] {f['factor']}" for f in risk["riskFactors"]] or ["  none"]

    lines += ["", "Mitigation strategies:"]
    lines += [f"  - {s}" for s in data["recommendations"]["mitigationStrategies"]]

    notifications = data["recommendations"]["notifications"]
    if notifications:
        lines += ["", "Notifications:"]
        lines += [f"  {n['recipient']} ({n['priority']}): {n['message']}" for n in notifications]

    lines += ["", "Pre-publish checklist:"]
    for item in data["prePublishChecklist"]:
        mark = "required" if item["required"] else "optional"
        lines.append(f"  [ ] {item['item']} ({mark})")
    return lines


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------

def _li(items: list[str]) -> str:
    return "".join(f"<li>{html.escape(i)}</li>" for i in items)


def _affected_rows(section: dict[str, Any]) -> str:
    rows = []
    for item in section.get("items", []):
        rows.append(
            "<tr>"
            f"<td>{html.escape(item['name'])}</td>"
            f"<td>{html.escape(item['dependencyStrength'])}</td>"
            f"<td>{html.escape(item['riskLevel'])}</td>"
            f"<td>{html.escape(item['department'] or '')}</td>"
            "</tr>"
        )
    return "".join(rows)


def render_html(data: dict[str, Any]) -> str:
    risk = data["riskAssessment"]
    scope = data["changeScope"]
    title = html.escape(_policy_title(data))
    factors = [f"[{f['severity']}] {f['factor']}" for f in risk["riskFactors"]]
    checklist = [
        f"{c['item']} ({'required' if c['required'] else 'optional'})"
        for c in data["prePublishChecklist"]
    ]
    notifications = [
        f"{n['recipient']} ({n['priority']}): {n['message']}"
        for n in data["recommendations"]["notifications"]
    ]
    affected = _affected_rows(data["affectedWorkflows"]) + _affected_rows(data["affectedModules"])
    return (
        "<!DOCTYPE html>\n"
        "<html><head><meta charset=\"utf-8\">"
        f"<title>Impact Report: {title}</title></head><body>\n"
        f"<h1>Policy Impact Report: {title}</h1>\n"
        f"<p>Analyzed at {html.escape(data['analyzedAt'])}</p>\n"
        "<h2>Risk Assessment</h2>\n"
        f"<p>Score: <strong>{risk['overallRiskScore']}</strong> "
        f"({html.escape(risk['riskLevel'])}); approval "
        f"{'required' if risk['requiresApproval'] else 'not required'}</p>\n"
        f"<ul class=\"risk-factors\">{_li(factors)}</ul>\n"
        "<h2>Change Scope</h2>\n"
        f"<p>{'System-wide' if scope['isSystemWide'] else 'Localized'} change, "
        f"impact radius {scope['impactRadius']}, {scope['totalAffected']} affected</p>\n"
        f"<ul class=\"departments\">{_li(scope['affectedDepartments'])}</ul>\n"
        "<h2>Affected Workflows and Modules</h2>\n"
        "<table><tr><th>Name</th><th>Strength</th><th>Risk</th><th>Department</th></tr>"
        f"{affected}</table>\n"
        "<h2>Mitigation Strategies</h2>\n"
        f"<ul>{_li(data['recommendations']['mitigationStrategies'])}</ul>\n"
        "<h2>Notifications</h2>\n"
        f"<ul>{_li(notifications)}</ul>\n"
        "<h2>Pre-publish Checklist</h2>\n"
        f"<ul class=\"checklist\">{_li(checklist)}</ul>\n"
        "</body></html>\n"
    )


# ---------------------------------------------------------------------------
# PDF (single font, text only)
# ---------------------------------------------------------------------------

def _pdf_text(line: str) -> str:
    safe = line.encode("latin-1", "replace").decode("latin-1")
    return safe.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _page_stream(lines: list[str]) -> bytes:
    ops = ["BT", f"/F1 {_PDF_FONT_SIZE} Tf", f"{_PDF_LEADING} TL", "50 792 Td"]
    for line in lines:
        ops.append(f"({_pdf_text(line)}) '")
    ops.append("ET")
    return "\n".join(ops).encode("latin-1")


def render_pdf(lines: list[str]) -> bytes:
    """Build a minimal PDF 1.4 document, one Helvetica text page per 50 lines."""
    pages = [
        lines[i:i + _PDF_LINES_PER_PAGE] for i in range(0, len(lines), _PDF_LINES_PER_PAGE)
    ] or [[]]

    # 1 catalog, 2 pages tree, 3 font, then (page, content) pairs
    objects: list[bytes] = []
    page_ids = [4 + 2 * i for i in range(len(pages))]
    objects.append(b"<< /Type /Catalog /Pages 2 0 R >>")
    kids = " ".join(f"{pid} 0 R" for pid in page_ids)
    objects.append(f"<< /Type /Pages /Kids [{kids}] /Count {len(pages)} >>".encode("latin-1"))
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")
    for pid, page_lines in zip(page_ids, pages):
        objects.append(
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 842] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {pid + 1} 0 R >>".encode("latin-1")
        )
        stream = _page_stream(page_lines)
        objects.append(
            f"<< /Length {len(stream)} >>\nstream\n".encode("latin-1") + stream + b"\nendstream"
        )

    out = bytearray(b"%PDF-1.4\n")
    offsets: list[int] = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode("latin-1") + body + b"\nendobj\n"
    xref = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode("latin-1")
    out += b"0000000000 65535 f \n"
    for off in offsets:
        out += f"{off:010d} 00000 n \n".encode("latin-1")
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref}\n%%EOF\n"
    ).encode("latin-1")
    return bytes(out)
