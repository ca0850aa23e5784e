"""Runtime tunables from a config file and CLI overrides.

Precedence: CLI flags > config file > ``Constants`` defaults. Applying
overrides never breaks the CLI: invalid values are logged and the previous
value is kept.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)

# config key -> (Constants attribute, converter)
_CONFIG_KEYS: Dict[str, tuple] = {
    "max_iterations": ("MAX_ALIGNMENT_ITERATIONS", int),
    "max_selection_passes": ("MAX_SELECTION_PASSES", int),
    "max_concurrency": ("METADATA_MAX_CONCURRENCY", int),
    "cache_ttl_sec": ("METADATA_CACHE_TTL_SEC", int),
    "cache_max_entries": ("METADATA_CACHE_MAX_ENTRIES", int),
    "request_timeout": ("REQUEST_TIMEOUT", int),
    "http_retry_max": ("HTTP_RETRY_MAX", int),
    "http_retry_base_delay_sec": ("HTTP_RETRY_BASE_DELAY_SEC", float),
    "scheme": ("DEFAULT_VERSION_SCHEME", str),
}


def load_config(path: Optional[str]) -> Dict[str, Any]:
    """Load a YAML or JSON config file.

    Returns an empty dict when ``path`` is empty or the file cannot be read;
    the failure is logged.
    """
    if not isinstance(path, str) or not path.strip():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            if path.lower().endswith(".json"):
                cfg = json.load(fh)
            else:
                cfg = yaml.safe_load(fh)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        logger.warning("Could not load config file %s: %s", path, exc)
        return {}
    if not isinstance(cfg, dict):
        logger.warning("Config file %s does not contain a mapping; ignoring it.", path)
        return {}
    return cfg


def _set(attribute: str, value: Any, convert: Callable[[Any], Any], source: str) -> None:
    try:
        converted = convert(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s value for %s: %r", source, attribute, value)
        return
    if attribute == "DEFAULT_VERSION_SCHEME" and converted not in Constants.SUPPORTED_SCHEMES:
        logger.warning("Ignoring unknown version scheme %r from %s", converted, source)
        return
    if isinstance(converted, (int, float)) and converted <= 0:
        logger.warning("Ignoring non-positive %s value for %s: %r", source, attribute, value)
        return
    setattr(Constants, attribute, converted)


def apply_config(cfg: Dict[str, Any]) -> None:
    """Apply the ``resolution`` section of a loaded config to ``Constants``."""
    section = cfg.get("resolution") if isinstance(cfg, dict) else None
    if section is None:
        return
    if not isinstance(section, dict):
        logger.warning("Config section 'resolution' must be a mapping; ignoring it.")
        return
    for key, value in section.items():
        target = _CONFIG_KEYS.get(key)
        if target is None:
            logger.warning("Unknown config key resolution.%s", key)
            continue
        attribute, convert = target
        _set(attribute, value, convert, "config")


def apply_resolution_overrides(args) -> None:
    """Apply CLI overrides for resolution tunables (highest precedence)."""
    if getattr(args, "MAX_ITERATIONS", None) is not None:
        _set("MAX_ALIGNMENT_ITERATIONS", args.MAX_ITERATIONS, int, "CLI")
    if getattr(args, "CONCURRENCY", None) is not None:
        _set("METADATA_MAX_CONCURRENCY", args.CONCURRENCY, int, "CLI")
    if getattr(args, "CACHE_TTL", None) is not None:
        _set("METADATA_CACHE_TTL_SEC", args.CACHE_TTL, int, "CLI")
    if getattr(args, "TIMEOUT", None) is not None:
        _set("REQUEST_TIMEOUT", args.TIMEOUT, int, "CLI")
    if getattr(args, "SCHEME", None):
        _set("DEFAULT_VERSION_SCHEME", args.SCHEME, str, "CLI")
