"""
Cloud Atlas Assistant — answers one infrastructure question with Claude.

Sends the question to the Anthropic API together with the tool registry's
definitions and runs the tool-use loop, executing every requested tool through
the ``ToolDispatcher``.  Nothing is persisted between questions.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field

import anthropic

from atlas.config import DEFAULT_MODEL
from atlas.tools import ToolDispatcher, build_tool_definitions

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class AssistantReply:
    text: str
    tool_calls: list[str] = field(default_factory=list)  # tool names, in call order


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_ROUNDS = 5  # Cap tool-use loop iterations
MAX_RESULT_BYTES = 50 * 1024  # 50 KB per tool result

NO_KEY_MESSAGE = (
    "No Anthropic API key configured. Set ANTHROPIC_API_KEY to use the assistant."
)
API_ERROR_MESSAGE = "The assistant is unavailable right now. Try the tools directly with `cloud-atlas call`."

_SYSTEM_PROMPT = """\
You are Cloud Atlas, an assistant for exploring AWS infrastructure.
The infrastructure is stored in a graph database populated by Cartography.

Use the tools to answer questions; never invent resources.
- Listing tools return inventories; find_* tools return risky resources with a risk level.
- get_cloud_graph_snapshot returns nodes and edges; filter by a graph label such as
  EC2Instance, S3Bucket or IAMRole when the question is about one resource type.
- Summarize findings briefly, lead with the highest risk, and name concrete resource ids.
"""


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _extract_text(response) -> str | None:
    """Extract text content from an Anthropic API response."""
    parts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
    if parts:
        return "\n".join(parts)
    return None


def _tool_result_content(body) -> str:
    text = json.dumps(body, indent=2, default=str)
    encoded = text.encode("utf-8")
    if len(encoded) > MAX_RESULT_BYTES:
        text = encoded[:MAX_RESULT_BYTES].decode("utf-8", errors="ignore")
        text += "\n\n... [TRUNCATED: result exceeded 50KB]"
    return text


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def ask(
    question: str,
    dispatcher: ToolDispatcher,
    api_key: str | None = None,
    model: str = DEFAULT_MODEL,
) -> AssistantReply:
    """Answer *question*, letting Claude call registered tools as needed."""
    key = api_key or os.environ.get("ANTHROPIC_API_KEY")
    if not key:
        return AssistantReply(NO_KEY_MESSAGE)

    client = anthropic.Anthropic(api_key=key, timeout=60.0)
    tools = build_tool_definitions(dispatcher.registry)
    messages: list[dict] = [{"role": "user", "content": question}]
    tool_calls: list[str] = []

    try:
        for _ in range(MAX_ROUNDS):
            response = client.messages.create(
                model=model,
                max_tokens=4096,
                system=_SYSTEM_PROMPT,
                messages=messages,
                tools=tools,
            )

            if response.stop_reason != "tool_use":
                return AssistantReply(_extract_text(response) or "", tool_calls)

            messages.append({"role": "assistant", "content": response.content})

            tool_results = []
            for block in response.content:
                if block.type != "tool_use":
                    continue
                tool_calls.append(block.name)
                result = dispatcher.invoke(block.name, block.input)
                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": block.id,
                    "content": _tool_result_content(result.body),
                    "is_error": not result.ok,
                })
            messages.append({"role": "user", "content": tool_results})

    except anthropic.APIError as exc:
        logger.warning("Anthropic API call failed: %s", exc)
        return AssistantReply(API_ERROR_MESSAGE, tool_calls)

    # Exhausted MAX_ROUNDS: return whatever text the last response carried.
    logger.info("Assistant stopped after %d tool-use rounds", MAX_ROUNDS)
    return AssistantReply(_extract_text(response) or "", tool_calls)
