#!/usr/bin/env python3
"""
Cloud Atlas — CLI entry point.

Usage:
    cloud-atlas serve [--host H] [--port P]         Run the tool API server
    cloud-atlas tools                               List registered tools
    cloud-atlas call TOOL [JSON_ARGS] [--server URL] [--json]
                                                    Invoke one tool
    cloud-atlas status                              Check the graph connection
    cloud-atlas ask QUESTION...                     Ask the assistant a question

JSON_ARGS follows the tool API convention: omit it to call with no
arguments, pass a JSON array to spread positional arguments, or any other JSON
value (usually an object of options) as a single argument.
"""

from __future__ import annotations

import json
import logging
import sys

logger = logging.getLogger("cloud-atlas")

_KNOWN_COMMANDS = ("serve", "tools", "call", "status", "ask")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(name)s: %(message)s",
        stream=sys.stderr,
    )


def _pop_option(args: list[str], flag: str) -> str | None:
    """Remove ``flag VALUE`` from *args* and return VALUE (or None)."""
    if flag not in args:
        return None
    index = args.index(flag)
    if index + 1 >= len(args):
        print(f"\033[1;31mError:\033[0m {flag} requires a value", file=sys.stderr)
        sys.exit(2)
    value = args[index + 1]
    del args[index:index + 2]
    return value


def main(argv: list[str] | None = None) -> None:
    """Dispatch to the appropriate sub-command."""
    from atlas.config import load_settings

    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] not in _KNOWN_COMMANDS:
        print(__doc__, file=sys.stderr)
        sys.exit(0 if not args or args[0] in ("-h", "--help") else 1)

    settings = load_settings()
    _configure_logging(settings.log_level)

    command, rest = args[0], args[1:]
    if command == "serve":
        _cmd_serve(settings, rest)
    elif command == "tools":
        _cmd_tools()
    elif command == "call":
        _cmd_call(settings, rest)
    elif command == "status":
        _cmd_status(settings)
    elif command == "ask":
        _cmd_ask(settings, rest)


# ---------------------------------------------------------------------------
# cloud-atlas serve
# ---------------------------------------------------------------------------

def _cmd_serve(settings, args: list[str]) -> None:
    import uvicorn

    from atlas.server import create_app

    host = _pop_option(args, "--host") or settings.host
    port_raw = _pop_option(args, "--port")
    try:
        port = int(port_raw) if port_raw else settings.port
    except ValueError:
        print(f"\033[1;31mError:\033[0m invalid port {port_raw!r}", file=sys.stderr)
        sys.exit(2)

    print(f"\033[36mCloud Atlas listening on http://{host}:{port}\033[0m", file=sys.stderr)
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())


# ---------------------------------------------------------------------------
# cloud-atlas tools
# ---------------------------------------------------------------------------

def _cmd_tools() -> None:
    from atlas.display import format_tool_list
    from atlas.tools import describe_tools

    print(format_tool_list(describe_tools()))


# ---------------------------------------------------------------------------
# cloud-atlas call
# ---------------------------------------------------------------------------

def _call_remote(server_url: str, payload: dict) -> tuple[int, dict]:
    """POST a tool call to a running Cloud Atlas server."""
    import requests

    from atlas.server import TOOLS_PATH

    try:
        resp = requests.post(
            f"{server_url.rstrip('/')}{TOOLS_PATH}",
            json=payload,
            timeout=120,
        )
    except requests.RequestException as exc:
        logger.warning("POST %s failed: %s", server_url, exc)
        return 503, {"error": f"Could not reach {server_url}: {exc}"}

    try:
        body = resp.json()
    except ValueError:
        body = {"error": resp.text[:200] or f"HTTP {resp.status_code}"}
    return resp.status_code, body


def _cmd_call(settings, args: list[str]) -> None:
    from atlas.display import format_query_result
    from atlas.tools import NO_ARGS, ToolDispatcher
    from cloudgraph.client import GraphClient

    server_url = _pop_option(args, "--server")
    raw_json = "--json" in args
    if raw_json:
        args.remove("--json")

    if not args:
        print("\033[1;31mError:\033[0m call requires a tool name", file=sys.stderr)
        sys.exit(2)

    tool_name = args[0]
    tool_args = NO_ARGS
    if len(args) > 1:
        try:
            tool_args = json.loads(args[1])
        except json.JSONDecodeError as exc:
            print(f"\033[1;31mError:\033[0m arguments are not valid JSON: {exc}", file=sys.stderr)
            sys.exit(2)

    if server_url:
        payload: dict = {"toolName": tool_name}
        if tool_args is not NO_ARGS:
            payload["args"] = tool_args
        status_code, body = _call_remote(server_url, payload)
    else:
        client = GraphClient(settings.graph)
        try:
            result = ToolDispatcher(client).invoke(tool_name, tool_args)
        finally:
            client.disconnect()
        status_code, body = result.status_code, result.body

    if raw_json:
        print(json.dumps(body, indent=2, default=str))
    else:
        print(format_query_result(body) if isinstance(body, dict) else body)

    if status_code >= 400:
        sys.exit(1)


# ---------------------------------------------------------------------------
# cloud-atlas status
# ---------------------------------------------------------------------------

def _cmd_status(settings) -> None:
    from cloudgraph.client import GraphClient, QueryExecutionError

    client = GraphClient(settings.graph)
    print("\033[1;31m━━━ CLOUD ATLAS STATUS ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━\033[0m")
    print(f"\033[31m  Graph:       {settings.graph.uri}\033[0m")
    try:
        if not client.test_connection():
            # The failure reason was logged by test_connection().
            print("\033[31m  Connection:  failed\033[0m")
            print("\033[1;31m━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━\033[0m")
            sys.exit(1)
        try:
            count = client.node_count()
        except QueryExecutionError:
            count = "unavailable"
    finally:
        client.disconnect()

    print("\033[31m  Connection:  ok\033[0m")
    print(f"\033[31m  Nodes:       {count}\033[0m")
    print("\033[1;31m━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━\033[0m")


# ---------------------------------------------------------------------------
# cloud-atlas ask
# ---------------------------------------------------------------------------

def _cmd_ask(settings, args: list[str]) -> None:
    from atlas.assistant import ask
    from atlas.display import format_answer
    from atlas.tools import ToolDispatcher
    from cloudgraph.client import GraphClient

    question = " ".join(args).strip()
    if not question:
        print("\033[1;31mError:\033[0m ask requires a question", file=sys.stderr)
        sys.exit(2)

    client = GraphClient(settings.graph)
    try:
        reply = ask(question, ToolDispatcher(client), model=settings.model)
    finally:
        client.disconnect()
    print(format_answer(reply.text, reply.tool_calls))


if __name__ == "__main__":
    main()
