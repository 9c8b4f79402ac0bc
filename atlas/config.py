"""
Configuration for Cloud Atlas.

Settings come from an optional YAML file and are then overridden by
environment variables.  Anything missing falls back to local-development
defaults (a Neo4j instance on ``bolt://localhost:7687``).

Example ``~/.cloud-atlas/config.yaml``::

    neo4j:
      uri: bolt://graph.internal:7687
      username: reader
      password: s3cret
    server:
      host: 0.0.0.0
      port: 8080
    log_level: INFO
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from cloudgraph.client import GraphSettings

logger = logging.getLogger(__name__)

# The directory where Cloud Atlas looks for its config file.
ATLAS_DIR = Path.home() / ".cloud-atlas"
DEFAULT_CONFIG_FILE = ATLAS_DIR / "config.yaml"

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

# env var -> (section, key)
_ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "NEO4J_URI": ("neo4j", "uri"),
    "NEO4J_USERNAME": ("neo4j", "username"),
    "NEO4J_PASSWORD": ("neo4j", "password"),
    "NEO4J_DATABASE": ("neo4j", "database"),
    "CLOUD_ATLAS_HOST": ("server", "host"),
    "CLOUD_ATLAS_PORT": ("server", "port"),
    "CLOUD_ATLAS_LOG_LEVEL": (None, "log_level"),
    "CLOUD_ATLAS_MODEL": (None, "model"),
}


@dataclass(frozen=True)
class AtlasSettings:
    graph: GraphSettings = field(default_factory=GraphSettings)
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "WARNING"
    model: str = DEFAULT_MODEL


def _read_yaml(path: Path) -> dict:
    """Load *path* as a YAML mapping.  Missing or malformed files yield {}."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except (yaml.YAMLError, OSError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not a mapping", path)
        return {}
    return data


def _apply_env(raw: dict, environ: dict) -> dict:
    merged = {key: (dict(value) if isinstance(value, dict) else value) for key, value in raw.items()}
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if not value:
            continue
        if section is None:
            merged[key] = value
        else:
            target = merged.get(section)
            if not isinstance(target, dict):
                target = {}
                merged[section] = target
            target[key] = value
    return merged


def load_settings(
    path: str | Path | None = None,
    environ: dict | None = None,
) -> AtlasSettings:
    """Build ``AtlasSettings`` from the config file and the environment."""
    env = os.environ if environ is None else environ
    config_path = Path(path or env.get("CLOUD_ATLAS_CONFIG") or DEFAULT_CONFIG_FILE)

    raw = _apply_env(_read_yaml(config_path), env)
    neo4j_cfg = raw.get("neo4j") if isinstance(raw.get("neo4j"), dict) else {}
    server_cfg = raw.get("server") if isinstance(raw.get("server"), dict) else {}

    defaults = GraphSettings()
    graph = GraphSettings(
        uri=str(neo4j_cfg.get("uri") or defaults.uri),
        username=str(neo4j_cfg.get("username") or defaults.username),
        password=str(neo4j_cfg.get("password") or defaults.password),
        database=neo4j_cfg.get("database") or None,
    )

    port_raw = server_cfg.get("port", AtlasSettings.port)
    try:
        port = int(port_raw)
    except (TypeError, ValueError):
        logger.warning("Invalid server port %r, using %d", port_raw, AtlasSettings.port)
        port = AtlasSettings.port

    return AtlasSettings(
        graph=graph,
        host=str(server_cfg.get("host") or AtlasSettings.host),
        port=port,
        log_level=str(raw.get("log_level") or AtlasSettings.log_level).upper(),
        model=str(raw.get("model") or DEFAULT_MODEL),
    )
