"""
HTTP boundary for Cloud Atlas tools.

A single request/response operation: ``POST /api/cloudatlas/tools`` with
``{"toolName": ..., "args": ...}``.  The body is handed to the dispatcher
as-is; ``args`` absent and ``args: null`` are different calls.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from atlas.config import AtlasSettings, load_settings
from atlas.tools import NO_ARGS, ToolDispatcher, describe_tools
from cloudgraph.client import GraphClient

logger = logging.getLogger(__name__)

TOOLS_PATH = "/api/cloudatlas/tools"


def create_app(
    settings: AtlasSettings | None = None,
    client: GraphClient | None = None,
) -> FastAPI:
    """Build the FastAPI app around one shared ``GraphClient``.

    The client connects lazily on the first tool call and is disconnected
    when the app shuts down.
    """
    settings = settings or load_settings()
    graph_client = client or GraphClient(settings.graph)
    dispatcher = ToolDispatcher(graph_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Cloud Atlas server starting (graph=%s)", settings.graph.uri)
        yield
        graph_client.disconnect()

    app = FastAPI(title="Cloud Atlas", lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.graph_client = graph_client

    @app.post(TOOLS_PATH)
    async def invoke_tool(request: Request) -> JSONResponse:
        try:
            body: Any = await request.json()
        except ValueError:
            return JSONResponse({"error": "Request body must be JSON"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Invalid toolName"}, status_code=400)

        # The dispatcher blocks on the graph driver; keep it off the event loop.
        result = await run_in_threadpool(
            dispatcher.invoke, body.get("toolName"), body.get("args", NO_ARGS)
        )
        return JSONResponse(result.body, status_code=result.status_code)

    @app.get(TOOLS_PATH)
    def list_tools() -> dict:
        return describe_tools(dispatcher.registry)

    @app.get("/healthz")
    def healthz() -> JSONResponse:
        try:
            graph_client.ensure_connected()
        except ConnectionError as exc:
            return JSONResponse({"status": "unavailable", "error": str(exc)}, status_code=503)
        return JSONResponse({"status": "ok"})

    return app
