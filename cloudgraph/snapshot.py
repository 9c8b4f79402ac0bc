"""
Bounded graph snapshots for visualization.

A snapshot is built in two steps:

1. ``build_snapshot_query`` produces a Cypher query that picks at most
   ``limit`` seed entities (optionally restricted to one label) and expands
   each seed by one hop.  The expansion is not capped by ``limit``, so a
   densely connected seed set can return many more entities than requested.
2. ``assemble_snapshot`` turns the raw rows into a deduplicated node/edge
   graph keyed by external AWS identity (see ``cloudgraph.identity``), dropping
   anything that cannot be identified.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from cloudgraph.client import GraphClient, InvalidArgumentError, QueryResult
from cloudgraph.identity import resolve_identity

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
SNAPSHOT_SUMMARY = "Cloud infrastructure relationship graph"
UNKNOWN_TYPE = "Unknown"
MAX_LIMIT = 2**63 - 1  # largest integer a Cypher parameter can carry

_LABEL_STRIP_RE = re.compile(r"[^A-Za-z0-9_]")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class GraphNode:
    id: str
    type: str
    label: str
    meta: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "type": self.type, "label": self.label, "meta": self.meta}


@dataclass
class GraphEdge:
    source: str
    target: str
    type: str
    meta: dict | None = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"source": self.source, "target": self.target, "type": self.type}
        if self.meta is not None:
            out["meta"] = self.meta
        return out


@dataclass
class GraphSnapshot:
    summary: str
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


@dataclass(frozen=True)
class Query:
    text: str
    parameters: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Query builder
# ---------------------------------------------------------------------------

def sanitize_label(value: str | None) -> str | None:
    """Reduce *value* to ``[A-Za-z0-9_]`` characters.

    Returns None when nothing usable remains, which callers treat as "no
    filter" rather than an error.

    >>> sanitize_label("EC2Instance); DROP ALL")
    'EC2InstanceDROPALL'
    """
    if value is None:
        return None
    cleaned = _LABEL_STRIP_RE.sub("", str(value))
    return cleaned or None


_SNAPSHOT_TEMPLATE = """\
MATCH (seed)
{where}WITH seed
ORDER BY elementId(seed)
LIMIT $limit
OPTIONAL MATCH (seed)-[rel]-(neighbor)
RETURN seed,
       labels(seed) AS seed_labels,
       elementId(seed) AS seed_key,
       rel,
       type(rel) AS rel_type,
       startNode(rel) = seed AS outgoing,
       neighbor,
       labels(neighbor) AS neighbor_labels,
       elementId(neighbor) AS neighbor_key
"""


def build_snapshot_query(resource_type: str | None = None, limit: int = DEFAULT_LIMIT) -> Query:
    """Build the seed-bounded, one-hop snapshot query.

    Labels cannot be passed as Cypher parameters, so the filter is embedded
    structurally, but only after ``sanitize_label`` has reduced it to an
    identifier token.  ``limit`` is always a query parameter.
    """
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InvalidArgumentError(f"limit must be a positive integer, got {limit!r}")
    if limit > MAX_LIMIT:
        raise InvalidArgumentError(f"limit must be at most {MAX_LIMIT}, got {limit}")

    label = sanitize_label(resource_type)
    where = f"WHERE seed:`{label}`\n" if label else ""
    if resource_type is not None and label is None:
        logger.info("Resource type filter %r sanitized to nothing; no filter applied", resource_type)

    return Query(text=_SNAPSHOT_TEMPLATE.format(where=where), parameters={"limit": limit})


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------

def _primary_label(labels: Any) -> str:
    if isinstance(labels, (list, tuple)) and labels:
        return str(labels[0])
    return UNKNOWN_TYPE


class _Assembly:
    """Accumulates nodes and edges while walking snapshot rows."""

    def __init__(self) -> None:
        self.nodes: dict[str, GraphNode] = {}
        self.edges: dict[tuple[str, str, str], GraphEdge] = {}
        # internal key -> resolved id (None = unresolvable)
        self._resolved: dict[str, str | None] = {}

    def add_entity(self, properties: Any, labels: Any, key: Any) -> str | None:
        if not isinstance(properties, dict):
            return None
        if key is not None and key in self._resolved:
            return self._resolved[key]

        entity_type = _primary_label(labels)
        identity = resolve_identity(entity_type, properties, internal_id=key)
        if identity is None:
            logger.debug("Dropping unresolvable %s entity", entity_type)
            node_id = None
        else:
            node_id, label = identity
            if node_id not in self.nodes:
                self.nodes[node_id] = GraphNode(
                    id=node_id, type=entity_type, label=label, meta=dict(properties)
                )

        if key is not None:
            self._resolved[key] = node_id
        return node_id

    def add_edge(self, source: str, target: str, rel_type: str, meta: Any) -> None:
        edge_key = (source, target, rel_type)
        if edge_key in self.edges:
            return
        self.edges[edge_key] = GraphEdge(
            source=source,
            target=target,
            type=rel_type,
            meta=dict(meta) if isinstance(meta, dict) else None,
        )


def assemble_snapshot(rows: Iterable[Any], summary: str = SNAPSHOT_SUMMARY) -> GraphSnapshot:
    """Build a deduplicated ``GraphSnapshot`` from raw snapshot query rows.

    Never raises on malformed rows: entities that cannot be identified are
    left out, and so is every edge that touches them.
    """
    assembly = _Assembly()

    for row in rows:
        if not isinstance(row, dict):
            logger.debug("Skipping malformed snapshot row: %r", row)
            continue

        seed_id = assembly.add_entity(row.get("seed"), row.get("seed_labels"), row.get("seed_key"))
        neighbor_id = assembly.add_entity(
            row.get("neighbor"), row.get("neighbor_labels"), row.get("neighbor_key")
        )

        rel_type = row.get("rel_type")
        if not rel_type or seed_id is None or neighbor_id is None:
            continue

        if row.get("outgoing") is False:
            assembly.add_edge(neighbor_id, seed_id, str(rel_type), row.get("rel"))
        else:
            assembly.add_edge(seed_id, neighbor_id, str(rel_type), row.get("rel"))

    edges = [
        edge for edge in assembly.edges.values()
        if edge.source in assembly.nodes and edge.target in assembly.nodes
    ]
    return GraphSnapshot(summary=summary, nodes=list(assembly.nodes.values()), edges=edges)


# ---------------------------------------------------------------------------
# Tool entry point
# ---------------------------------------------------------------------------

def get_cloud_graph_snapshot(
    client: GraphClient,
    resource_type: str | None = None,
    limit: int = DEFAULT_LIMIT,
) -> QueryResult:
    """Return a graph slice of the infrastructure suitable for visualization.

    Node ids are AWS identifiers wherever the entity has one; the database's
    internal id is used only as a last resort.
    """
    query = build_snapshot_query(resource_type, limit)
    rows = client.run(query.text, query.parameters)
    snapshot = assemble_snapshot(rows, SNAPSHOT_SUMMARY)
    logger.info(
        "Snapshot assembled: %d nodes, %d edges (filter=%s, limit=%d)",
        len(snapshot.nodes), len(snapshot.edges), resource_type, limit,
    )
    return QueryResult(summary=SNAPSHOT_SUMMARY, data=[snapshot])
