"""
Tests for atlas.display — terminal rendering of tool results.
"""

import os
import re
import sys

# Ensure project root is importable.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from atlas.display import (
    format_answer,
    format_error,
    format_query_result,
    format_snapshot,
    format_tool_list,
)
from atlas.tools import describe_tools

_ANSI = re.compile(r"\033\[[0-9;]*m")


def _plain(text):
    return _ANSI.sub("", text)


class TestFormatQueryResult:

    def test_error_envelope(self):
        out = _plain(format_query_result({"error": "Invalid toolName: 'x'"}))
        assert out == "Error: Invalid toolName: 'x'"

    def test_table_with_risk(self):
        body = {
            "summary": "EC2 instances exposed to the public internet",
            "riskLevel": "HIGH",
            "data": [
                {"id": "i-1", "publicIp": "54.1.2.3", "isPublic": True},
                {"id": "i-22", "publicIp": None, "isPublic": False},
            ],
        }
        out = _plain(format_query_result(body))
        assert "EC2 instances exposed to the public internet" in out
        assert "Risk:  HIGH" in out
        assert "i-22" in out
        assert "2 result(s)" in out
        row = next(line for line in out.splitlines() if "i-22" in line)
        assert row.split() == ["i-22", "-", "no"]

    def test_empty_data(self):
        out = _plain(format_query_result({"summary": "All S3 buckets in the account", "data": []}))
        assert "No results." in out
        assert "Risk" not in out

    def test_snapshot_data(self):
        body = {
            "summary": "Cloud infrastructure relationship graph",
            "data": [{
                "summary": "Cloud infrastructure relationship graph",
                "nodes": [
                    {"id": "b", "type": "S3Bucket", "label": "b", "meta": {}},
                    {"id": "us-east-1", "type": "Region", "label": "us-east-1", "meta": {}},
                ],
                "edges": [{"source": "b", "target": "us-east-1", "type": "IN_REGION"}],
            }],
        }
        out = _plain(format_query_result(body))
        assert "2 nodes, 1 edges" in out
        assert "b -[IN_REGION]-> us-east-1" in out

    def test_long_cells_truncated(self):
        body = {"summary": "s", "data": [{"arn": "x" * 100}]}
        out = _plain(format_query_result(body))
        assert "x" * 100 not in out
        assert "…" in out


class TestFormatSnapshot:

    def test_counts_per_type(self):
        snap = {
            "nodes": [{"type": "EC2Instance"}, {"type": "EC2Instance"}, {"type": "Region"}],
            "edges": [],
        }
        lines = _plain(format_snapshot(snap)).splitlines()
        assert lines[0].strip() == "3 nodes, 0 edges"
        assert lines[1].strip() == "→ EC2Instance: 2"
        assert lines[2].strip() == "→ Region: 1"


class TestOtherFormatters:

    def test_format_error(self):
        assert _plain(format_error("boom")) == "Error: boom"

    def test_tool_list_has_every_tool(self):
        out = _plain(format_tool_list(describe_tools()))
        assert "find_public_s3_buckets" in out
        assert "CRITICAL" in out
        assert "[Visualization]" in out

    def test_answer_markdown(self):
        out = _plain(format_answer("## Findings\n- **logs** is public\nDone.", ["find_public_s3_buckets"]))
        lines = out.splitlines()
        assert lines[0] == "Findings"
        assert lines[1].strip() == "→ logs is public"
        assert lines[-1] == "Tools used: find_public_s3_buckets"

    def test_answer_without_tools(self):
        assert "Tools used" not in format_answer("plain", [])
