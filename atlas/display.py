"""
ANSI terminal formatting for Cloud Atlas CLI output.

All public functions return strings; the caller decides where to print them.
Inputs are the JSON-ready dicts produced by the tool dispatcher.
"""

from __future__ import annotations

import re
import textwrap
from typing import Any, Dict, List


# ---------------------------------------------------------------------------
# ANSI colour constants
# ---------------------------------------------------------------------------

RED = "\033[31m"
BOLD_RED = "\033[1;31m"
BOLD_WHITE_ON_RED = "\033[41;37;1m"      # CRITICAL badge
BOLD_WHITE_ON_YELLOW = "\033[43;30;1m"   # HIGH badge
YELLOW = "\033[33m"
GREEN = "\033[32m"
CYAN = "\033[36m"
RESET = "\033[0m"
BOLD = "\033[1m"

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

_SEPARATOR_WIDTH = 56
_BORDER = "━" * _SEPARATOR_WIDTH
_INDENT = "  "
_CONTENT_WIDTH = _SEPARATOR_WIDTH - len(_INDENT)
_MAX_CELL = 40


def _risk_badge(level: str | None) -> str:
    """Return the risk-level string wrapped in the appropriate ANSI colour."""
    level_upper = (level or "").upper()
    if level_upper == "CRITICAL":
        return f"{BOLD_WHITE_ON_RED} CRITICAL {RESET}"
    if level_upper == "HIGH":
        return f"{BOLD_WHITE_ON_YELLOW} HIGH {RESET}"
    if level_upper == "MEDIUM":
        return f"{BOLD}{YELLOW}{level_upper}{RESET}"
    if level_upper == "LOW":
        return f"{YELLOW}{level_upper}{RESET}"
    return level_upper


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, list):
        text = ", ".join(str(v) for v in value) or "-"
    else:
        text = str(value)
    if len(text) > _MAX_CELL:
        text = text[: _MAX_CELL - 1] + "…"
    return text


def _format_table(rows: List[Dict[str, Any]]) -> List[str]:
    """Render a list of flat dicts as an aligned plain-text table."""
    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)

    cells = [[_cell(row.get(col)) for col in columns] for row in rows]
    widths = [
        max([len(col)] + [len(r[i]) for r in cells])
        for i, col in enumerate(columns)
    ]

    header = "  ".join(col.ljust(widths[i]) for i, col in enumerate(columns))
    lines = [f"{_INDENT}{BOLD}{header}{RESET}"]
    for r in cells:
        lines.append(_INDENT + "  ".join(v.ljust(widths[i]) for i, v in enumerate(r)))
    return lines


def _apply_inline_bold(text: str) -> str:
    """Replace ``**bold**`` with ANSI bold sequences."""
    return re.sub(r"\*\*(.+?)\*\*", rf"{BOLD}\1{RESET}", text)


# ---------------------------------------------------------------------------
# Public formatting functions
# ---------------------------------------------------------------------------

def format_error(message: str) -> str:
    return f"{BOLD_RED}Error:{RESET} {message}"


def format_snapshot(snapshot: Dict[str, Any]) -> str:
    """Summarize a graph snapshot as node counts per type plus its edges."""
    nodes = snapshot.get("nodes") or []
    edges = snapshot.get("edges") or []

    by_type: dict[str, int] = {}
    for node in nodes:
        by_type[node.get("type", "Unknown")] = by_type.get(node.get("type", "Unknown"), 0) + 1

    lines = [f"{_INDENT}{BOLD}{len(nodes)} nodes, {len(edges)} edges{RESET}"]
    for node_type, count in sorted(by_type.items(), key=lambda item: (-item[1], item[0])):
        lines.append(f"{_INDENT}→ {node_type}: {count}")
    if edges:
        lines.append("")
        for edge in edges:
            lines.append(
                f"{_INDENT}{edge.get('source')} {CYAN}-[{edge.get('type')}]->{RESET} {edge.get('target')}"
            )
    return "\n".join(lines)


def format_query_result(body: Dict[str, Any]) -> str:
    """Return the display for a tool result or error envelope."""
    if "error" in body and "summary" not in body:
        return format_error(str(body["error"]))

    summary = body.get("summary", "")
    data = body.get("data") or []
    risk_level = body.get("riskLevel")

    lines = [f"{BOLD_RED}{_BORDER}{RESET}", f"{_INDENT}{BOLD}{summary}{RESET}"]
    if risk_level:
        lines.append(f"{_INDENT}Risk: {_risk_badge(risk_level)}")
    lines.append("")

    if not data:
        lines.append(f"{GREEN}{_INDENT}No results.{RESET}")
    elif all(isinstance(item, dict) and "nodes" in item and "edges" in item for item in data):
        for snapshot in data:
            lines.append(format_snapshot(snapshot))
    elif all(isinstance(item, dict) for item in data):
        lines.extend(_format_table(data))
        lines.append("")
        lines.append(f"{_INDENT}{len(data)} result(s)")
    else:
        lines.extend(f"{_INDENT}{_cell(item)}" for item in data)

    lines.append(f"{BOLD_RED}{_BORDER}{RESET}")
    return "\n".join(lines)


def format_tool_list(descriptions: Dict[str, Dict[str, Any]]) -> str:
    """One line per tool: name, category, default risk level and description."""
    width = max((len(name) for name in descriptions), default=0)
    lines = []
    for name, meta in descriptions.items():
        lines.append(
            f"{_INDENT}{BOLD}{name.ljust(width)}{RESET}  "
            f"[{meta.get('category', '')}] {_risk_badge(meta.get('riskLevel'))}"
        )
        description = meta.get("description", "")
        if description:
            lines.append(
                textwrap.fill(
                    description,
                    width=_CONTENT_WIDTH + width,
                    initial_indent=_INDENT * 3,
                    subsequent_indent=_INDENT * 3,
                )
            )
    return "\n".join(lines)


def format_answer(text: str, tool_calls: List[str] | None = None) -> str:
    """Render an assistant answer; headers and bullets get light styling."""
    lines: list[str] = []
    for raw_line in (text or "").splitlines():
        stripped = raw_line.strip()
        header_match = re.match(r"^#{1,3}\s+(.+)$", stripped)
        if header_match:
            lines.append(f"{BOLD}{_apply_inline_bold(header_match.group(1))}{RESET}")
            continue
        bullet_match = re.match(r"^[-*]\s+(.+)$", stripped)
        if bullet_match:
            lines.append(f"{_INDENT}→ {_apply_inline_bold(bullet_match.group(1))}")
            continue
        lines.append(_apply_inline_bold(raw_line))

    if tool_calls:
        lines.append("")
        lines.append(f"{CYAN}Tools used: {', '.join(tool_calls)}{RESET}")
    return "\n".join(lines)
