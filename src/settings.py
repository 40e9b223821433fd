"""Static configuration for tgcrawler.

All user-editable settings (paging, retries, output, checkpoints, logging)
live in a single JSON file for quick edits without touching Python. Secrets
stay in `.env`.
"""

import json
import os

from core.config import LOOKUP_RETRY, TRAVERSAL_RETRY, ResolverConfig, RetryPolicy, TraversalConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Config path can be overridden for alternate setups (tests, CI).
CONFIG_PATH = os.getenv("TGCRAWLER_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Paging and retry policy for walking the chat history.
_traversal = _CONFIG.get("traversal", {})
TRAVERSAL = TraversalConfig(
    page_size=int(_traversal.get("page_size", 100)),
    retry=RetryPolicy.from_mapping(_traversal.get("retry", {}), TRAVERSAL_RETRY),
)

# Handle lookups: pool size and a tighter retry budget (per handle, not per page).
_resolver = _CONFIG.get("resolver", {})
RESOLVER = ResolverConfig(
    concurrency=int(_resolver.get("concurrency", 4)),
    retry=RetryPolicy.from_mapping(_resolver.get("retry", {}), LOOKUP_RETRY),
)

# Output location and filtering.
# - resolved_only: drop identities that never resolved (the legacy behavior)
_output = _CONFIG.get("output", {})
OUTPUT_DIR = _output.get("directory", ".")
RESOLVED_ONLY = bool(_output.get("resolved_only", False))

# Checkpoints make interrupted scans resumable.
_checkpoints = _CONFIG.get("checkpoints", {})
CHECKPOINTS_ENABLED = bool(_checkpoints.get("enabled", True))
CHECKPOINT_DB_PATH = _resolve_path(_checkpoints.get("path", "tgcrawler.db"))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
