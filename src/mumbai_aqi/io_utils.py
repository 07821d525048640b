from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .errors import PersistenceFailure

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def atomic_write_json(payload: Dict[str, Any], path: Path) -> None:
    """
    Atomic JSON write: write to temp in same directory, then replace.
    """
    ensure_dir(path.parent)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=str, ensure_ascii=False)
    os.replace(tmp, path)


def read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def read_previous_json(path: Path) -> Optional[Dict[str, Any]]:
    """Read a previously published document; None when absent or unreadable."""
    if not path.exists():
        logger.info("[snapshot] no previous document at %s", path)
        return None
    try:
        payload = read_json(path)
    except (OSError, ValueError) as exc:
        logger.warning("[snapshot] previous document unreadable, ignoring: %s (%s)", path, exc)
        return None
    if not isinstance(payload, dict):
        logger.warning("[snapshot] previous document is not an object, ignoring: %s", path)
        return None
    return payload


def publish_snapshot(payload: Dict[str, Any], paths: Iterable[Path]) -> list[str]:
    """
    Replace the snapshot at every path (canonical store first, then publish copies).

    Raises PersistenceFailure on the first write that fails.
    """
    written: list[str] = []
    for path in paths:
        try:
            atomic_write_json(payload, path)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceFailure(f"Failed to write snapshot to {path}: {exc}") from exc
        logger.info("[snapshot] wrote %s", path)
        written.append(str(path))
    return written


def write_run_log(summary: Dict[str, Any], path: Path) -> None:
    try:
        atomic_write_json(summary, path)
    except OSError as exc:
        logger.warning("[run-log] could not write %s: %s", path, exc)
