"""Unified path constants for deploy-pipeline.

All local state lives under the .deploy-pipeline directory:
- .deploy-pipeline/rollback/   # Rollback snapshots, one directory per environment
- .deploy-pipeline/logs/       # JSON run logs
"""

from pathlib import Path

BASE_DIR = Path(".deploy-pipeline")

ROLLBACK_DIR = BASE_DIR / "rollback"
LOGS_DIR = BASE_DIR / "logs"

# Marker written next to installed dependencies to remember the cache key.
CACHE_KEY_MARKER = ".deploy-pipeline-cache-key"
