"""
Whole-file JSON persistence shared by the log, memory, persona and state stores.

Each collection is saved as a complete snapshot (read-modify-write), never
patched in place.
"""

import json
import logging
from pathlib import Path
from typing import Any

from errors import PersistenceError

logger = logging.getLogger(__name__)


def read_json_file(path: Path, default: Any) -> Any:
    """Load JSON from path.

    Missing file returns default. An unreadable or unparsable file also
    returns default, with a warning, so corrupt state never crashes the process.
    """
    if not path.exists():
        return default
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return default
    if not raw.strip():
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring corrupt file %s: %s", path, e)
        return default


def write_json_file(path: Path, data: Any) -> None:
    """Write data as indented JSON, replacing the file atomically."""
    tmp = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
    except OSError as e:
        raise PersistenceError(f"Could not write {path}: {e}") from e
