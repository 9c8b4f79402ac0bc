"""
Cloud Atlas Tools — tool registry and dispatcher.

Every callable tool is declared once as a ``ToolSpec`` in a closed, immutable
registry.  A spec carries its typed parameters, the JSON schemas shown to the
assistant, and the handler.  ``ToolDispatcher.invoke`` is the only place where
failures become the caller-visible ``{"error": ...}`` envelope; nothing raised
by a tool crosses that boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Callable, Mapping

from cloudgraph import catalog
from cloudgraph.client import GraphClient, InvalidArgumentError
from cloudgraph.snapshot import DEFAULT_LIMIT, get_cloud_graph_snapshot

logger = logging.getLogger("cloud-atlas.tools")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class UnknownToolError(LookupError):
    """Raised when a tool name is not in the registry."""


# ---------------------------------------------------------------------------
# Argument normalization
# ---------------------------------------------------------------------------

class _NoArgs:
    def __repr__(self) -> str:
        return "NO_ARGS"


NO_ARGS: Any = _NoArgs()  # "args" was not supplied at all


def normalize_args(args: Any = NO_ARGS) -> tuple:
    """Turn the loosely-shaped ``args`` of a tool call into positional args.

    * absent -> no arguments
    * list/tuple -> spread, after stripping trailing ``None`` entries only
      (``[a, None, b]`` keeps its interior ``None``)
    * anything else -> a single argument
    """
    if args is NO_ARGS:
        return ()
    if isinstance(args, (list, tuple)):
        values = list(args)
        while values and values[-1] is None:
            values.pop()
        return tuple(values)
    return (args,)


# ---------------------------------------------------------------------------
# Tool declarations
# ---------------------------------------------------------------------------

_REQUIRED: Any = object()

_JSON_TYPES: dict[type, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


@dataclass(frozen=True)
class ToolParam:
    name: str
    type: type
    default: Any = _REQUIRED
    alias: str | None = None  # camelCase name used by the chat UI
    description: str = ""

    @property
    def required(self) -> bool:
        return self.default is _REQUIRED

    def check(self, value: Any) -> Any:
        if value is None and (self.default is None or self.type is object):
            return value
        if self.type is object:
            return value
        if self.type is int and isinstance(value, bool):
            raise InvalidArgumentError(f"{self.name} must be an integer, got {value!r}")
        if not isinstance(value, self.type):
            raise InvalidArgumentError(
                f"{self.name} must be of type {_JSON_TYPES.get(self.type, self.type.__name__)}, "
                f"got {type(value).__name__}"
            )
        return value

    def schema(self) -> dict:
        prop: dict[str, Any] = {}
        if self.type in _JSON_TYPES:
            prop["type"] = _JSON_TYPES[self.type]
        if self.description:
            prop["description"] = self.description
        if not self.required and self.default is not None:
            prop["default"] = self.default
        return prop


@dataclass(frozen=True)
class ToolSpec:
    """One registered tool.

    ``handler`` receives the shared ``GraphClient`` first, followed by the
    bound keyword arguments.
    """

    name: str
    description: str
    handler: Callable[..., Any]
    category: str = "General"
    risk_level: str = "LOW"
    params: tuple[ToolParam, ...] = ()
    output_schema: dict = field(default_factory=dict)

    def input_schema(self) -> dict:
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {p.alias or p.name: p.schema() for p in self.params},
        }
        required = [p.alias or p.name for p in self.params if p.required]
        if required:
            schema["required"] = required
        return schema

    def bind(self, args: tuple) -> dict:
        """Map normalized positional args onto this tool's parameters.

        A single mapping is read as named options, unless the first parameter
        itself takes a mapping.  A lone ``None`` for a parameterless tool binds
        to nothing, the same as a trailing ``None``.
        """
        if not self.params and args == (None,):
            return {}
        if (
            len(args) == 1
            and isinstance(args[0], Mapping)
            and not (self.params and self.params[0].type in (dict, object))
        ):
            return self._bind_options(args[0])
        return self._bind_positional(args)

    def _bind_positional(self, args: tuple) -> dict:
        if len(args) > len(self.params):
            raise InvalidArgumentError(
                f"{self.name} takes at most {len(self.params)} argument(s), got {len(args)}"
            )
        bound: dict[str, Any] = {}
        for index, param in enumerate(self.params):
            if index < len(args):
                bound[param.name] = param.check(args[index])
            elif param.required:
                raise InvalidArgumentError(f"{self.name} is missing required argument {param.name}")
        return bound

    def _bind_options(self, options: Mapping) -> dict:
        by_key: dict[str, ToolParam] = {}
        for param in self.params:
            by_key[param.name] = param
            if param.alias:
                by_key[param.alias] = param

        bound: dict[str, Any] = {}
        for key, value in options.items():
            param = by_key.get(key)
            if param is None:
                raise InvalidArgumentError(f"{self.name} got an unexpected option {key!r}")
            if value is None and param.default is not _REQUIRED:
                continue
            bound[param.name] = param.check(value)

        for param in self.params:
            if param.required and param.name not in bound:
                raise InvalidArgumentError(f"{self.name} is missing required argument {param.name}")
        return bound


# ---------------------------------------------------------------------------
# Output schemas
# ---------------------------------------------------------------------------

def _query_result_schema(item: dict, with_risk: bool = False) -> dict:
    schema = {
        "type": "object",
        "properties": {
            "summary": {"type": "string"},
            "data": {"type": "array", "items": item},
            "riskLevel": {"type": "string", "enum": ["LOW", "MEDIUM", "HIGH", "CRITICAL"]},
        },
        "required": ["summary", "data"],
    }
    if with_risk:
        schema["required"].append("riskLevel")
    return schema


_EC2_ITEM = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "region": {"type": "string"},
        "publicIp": {"type": ["string", "null"]},
        "isPublic": {"type": "boolean"},
        "openIngress": {"type": "boolean"},
        "instanceType": {"type": ["string", "null"]},
        "state": {"type": ["string", "null"]},
    },
}

_S3_ITEM = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "region": {"type": "string"},
        "isPublic": {"type": "boolean"},
        "creationDate": {"type": ["string", "null"]},
        "versioningStatus": {"type": ["string", "null"]},
    },
}

_IAM_ITEM = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "arn": {"type": ["string", "null"]},
        "createDate": {"type": ["string", "null"]},
        "maxSessionDuration": {"type": ["integer", "null"]},
        "isOverprivileged": {"type": "boolean"},
        "riskyPolicies": {"type": "array", "items": {"type": "string"}},
    },
}

_EXPOSED_ITEM = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "type": {"type": "string", "enum": ["EC2Instance", "S3Bucket", "LoadBalancer", "RDSInstance"]},
        "region": {"type": "string"},
        "exposureType": {"type": "string"},
        "riskLevel": {"type": "string"},
    },
}

_SNAPSHOT_ITEM = {
    "type": "object",
    "properties": {
        "summary": {"type": "string"},
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "type": {"type": "string"},
                    "label": {"type": "string"},
                    "meta": {"type": "object"},
                },
            },
        },
        "edges": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "source": {"type": "string"},
                    "target": {"type": "string"},
                    "type": {"type": "string"},
                    "meta": {"type": "object"},
                },
            },
        },
    },
}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="list_ec2_instances",
        description="List all EC2 instances in the AWS infrastructure",
        handler=catalog.list_ec2_instances,
        category="EC2",
        output_schema=_query_result_schema(_EC2_ITEM),
    ),
    ToolSpec(
        name="find_public_ec2_instances",
        description="Find EC2 instances exposed to the public internet",
        handler=catalog.find_public_ec2_instances,
        category="EC2",
        risk_level="HIGH",
        output_schema=_query_result_schema(_EC2_ITEM, with_risk=True),
    ),
    ToolSpec(
        name="list_s3_buckets",
        description="List all S3 buckets in the AWS account",
        handler=catalog.list_s3_buckets,
        category="S3",
        output_schema=_query_result_schema(_S3_ITEM),
    ),
    ToolSpec(
        name="find_public_s3_buckets",
        description="Find publicly accessible S3 buckets",
        handler=catalog.find_public_s3_buckets,
        category="S3",
        risk_level="CRITICAL",
        output_schema=_query_result_schema(_S3_ITEM, with_risk=True),
    ),
    ToolSpec(
        name="list_iam_roles",
        description="List all IAM roles in the AWS account",
        handler=catalog.list_iam_roles,
        category="IAM",
        output_schema=_query_result_schema(_IAM_ITEM),
    ),
    ToolSpec(
        name="find_overprivileged_iam_roles",
        description="Find IAM roles with overly permissive policies",
        handler=catalog.find_overprivileged_iam_roles,
        category="IAM",
        risk_level="HIGH",
        output_schema=_query_result_schema(_IAM_ITEM, with_risk=True),
    ),
    ToolSpec(
        name="find_internet_exposed_resources",
        description="Find all resources exposed to the internet across services",
        handler=catalog.find_internet_exposed_resources,
        category="Networking",
        risk_level="HIGH",
        output_schema=_query_result_schema(_EXPOSED_ITEM, with_risk=True),
    ),
    ToolSpec(
        name="get_cloud_graph_snapshot",
        description="Get a graph snapshot of cloud infrastructure relationships",
        handler=get_cloud_graph_snapshot,
        category="Visualization",
        params=(
            ToolParam(
                "resource_type", str, None, alias="resourceType",
                description="Graph label to seed from, e.g. EC2Instance or S3Bucket",
            ),
            ToolParam(
                "limit", int, DEFAULT_LIMIT,
                description="Maximum number of seed resources before one-hop expansion",
            ),
        ),
        output_schema=_query_result_schema(_SNAPSHOT_ITEM),
    ),
)

TOOL_REGISTRY: Mapping[str, ToolSpec] = MappingProxyType({spec.name: spec for spec in _TOOLS})


def build_tool_definitions(registry: Mapping[str, ToolSpec] = TOOL_REGISTRY) -> list[dict]:
    """Tool definition dicts for the Anthropic messages API."""
    return [
        {
            "name": spec.name,
            "description": spec.description,
            "input_schema": spec.input_schema(),
        }
        for spec in registry.values()
    ]


def describe_tools(registry: Mapping[str, ToolSpec] = TOOL_REGISTRY) -> dict[str, dict]:
    """Discovery metadata keyed by tool name."""
    return {
        name: {
            "description": spec.description,
            "category": spec.category,
            "riskLevel": spec.risk_level,
            "inputSchema": spec.input_schema(),
            "outputSchema": spec.output_schema,
        }
        for name, spec in registry.items()
    }


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _serialize_value(obj: Any) -> Any:
    """Recursively convert a tool result to JSON-serializable form."""
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if hasattr(obj, "to_dict"):
        return _serialize_value(obj.to_dict())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return "<binary data omitted>"
    if isinstance(obj, Mapping):
        return {str(k): _serialize_value(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_serialize_value(item) for item in obj]
    return str(obj)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

@dataclass
class DispatchResult:
    body: Any
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def _error_message(exc: BaseException) -> str:
    message = str(exc)
    return message if message else "Tool execution failed"


class ToolDispatcher:
    """Validates, binds and invokes registered tools against one GraphClient."""

    def __init__(
        self,
        client: GraphClient,
        registry: Mapping[str, ToolSpec] = TOOL_REGISTRY,
    ) -> None:
        self._client = client
        self._registry = registry

    @property
    def registry(self) -> Mapping[str, ToolSpec]:
        return self._registry

    def lookup(self, tool_name: Any) -> ToolSpec:
        if not isinstance(tool_name, str) or tool_name not in self._registry:
            raise UnknownToolError(f"Invalid toolName: {tool_name!r}")
        return self._registry[tool_name]

    def invoke(self, tool_name: Any, args: Any = NO_ARGS) -> DispatchResult:
        """Run a tool and return its serialized result or an error envelope.

        Unknown tools and unusable arguments map to status 400, every other
        failure (including graph connection errors) to 500.  Never raises.
        """
        try:
            spec = self.lookup(tool_name)
            kwargs = spec.bind(normalize_args(args))

            logger.info("Invoking tool %s", spec.name)
            self._client.ensure_connected()
            result = spec.handler(self._client, **kwargs)

            return DispatchResult(_serialize_value(result))

        except (UnknownToolError, InvalidArgumentError) as exc:
            logger.info("Rejected tool call %r: %s", tool_name, exc)
            return DispatchResult({"error": _error_message(exc)}, 400)
        except Exception as exc:
            logger.warning("Tool execution error for %s: %s", tool_name, exc)
            return DispatchResult({"error": _error_message(exc)}, 500)
