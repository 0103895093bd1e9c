"""Markdown renderings of tool results that must reach the user verbatim."""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

_WHITESPACE = re.compile(r"\s+")


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def clean_cell(value: Any, max_length: int) -> str:
    """Make ``value`` safe for a single markdown table cell."""
    if value is None:
        return "-"
    text = str(value).replace("\r", "")
    text = _WHITESPACE.sub(" ", text).strip()
    if not text:
        return "-"
    text = truncate(text, max_length).rstrip("\\") or "-"
    return text.replace("|", "\\|")


def normalize_score(value: Any) -> float:
    """Scale scores reported on a 0-10 scale into 0-100.

    Any value in (0, 10] is treated as 0-10, so a genuine 10/100 is shown as 100.
    """
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if 0 < score <= 10:
        return score * 10
    return score


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.1f}"


def format_search_results(payload: dict[str, Any]) -> str | None:
    results = payload.get("results") or []
    if not results:
        return None
    summary = payload.get("summary") or {}
    lines = [
        f"## Funding opportunities found ({len(results)})",
        "",
        (
            f"National grants: {summary.get('nationalGrants', 0)} | "
            f"International grants: {summary.get('internationalGrants', 0)} | "
            f"National tenders: {summary.get('nationalTenders', 0)}"
        ),
        "",
        "| Title | Source | Published | Deadline | Budget | URL |",
        "|---|---|---|---|---|---|",
    ]
    for item in results:
        url = str(item.get("url") or "").strip()
        link = f"[View call]({url})" if url and url != "#" else "-"
        lines.append(
            "| "
            + " | ".join(
                [
                    clean_cell(item.get("title"), 60),
                    clean_cell(item.get("source"), 20),
                    clean_cell(item.get("publicationDate"), 30),
                    clean_cell(item.get("deadlineDate"), 30),
                    clean_cell(item.get("budget"), 30),
                    link,
                ]
            )
            + " |"
        )
    lines.append("")
    lines.append("Always show the URL column so the user can open each call.")
    return "\n".join(lines)


def format_validation_scores(payload: dict[str, Any]) -> str | None:
    if "overallScore" not in payload:
        return None
    overall = normalize_score(payload.get("overallScore"))
    lines = [
        "## Validation Scores",
        "",
        f"**Overall score: {_fmt_number(overall)}/100**",
        "",
    ]
    for item in payload.get("criteria") or []:
        name = clean_cell(item.get("criterion") or item.get("name"), 80)
        weight = _fmt_number(float(item.get("weight") or 0))
        score = _fmt_number(normalize_score(item.get("score")))
        lines.append(f"- **{name}** (weight {weight}%): {score}/100")
    role = payload.get("suggestedRole")
    if role:
        lines.extend(["", f"Suggested role: {role}"])
    lines.extend(["", "---", "Show these scores before any explanation."])
    return "\n".join(lines)


def format_comparative_report(payload: dict[str, Any]) -> str | None:
    rows = payload.get("comparativeReport") or []
    if not rows:
        return None
    lines = [
        "## Comparative report",
        "",
        "| Section | Original | Adapted | Reason |",
        "|---|---|---|---|",
    ]
    for row in rows:
        lines.append(
            "| "
            + " | ".join(
                [
                    clean_cell(row.get("section"), 50),
                    clean_cell(row.get("original"), 200),
                    clean_cell(row.get("adapted"), 200),
                    clean_cell(row.get("reason"), 150),
                ]
            )
            + " |"
        )
    return "\n".join(lines)


PREFORMATTERS: dict[str, Callable[[dict[str, Any]], str | None]] = {
    "searchOpportunities": format_search_results,
    "validateGrant": format_validation_scores,
    "adaptProposal": format_comparative_report,
}
