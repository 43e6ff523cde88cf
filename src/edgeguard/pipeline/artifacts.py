"""JSON artifact I/O and content hashing.

Every report document goes through write_json so that numpy scalars and
non-finite floats are stored as plain JSON (NaN/inf become null).
"""

from __future__ import annotations

import hashlib
import json
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

import numpy as np

PathLike = Union[str, Path]


def sha256_file(path: PathLike) -> Optional[str]:
    """Hex SHA-256 of a file's bytes, or None when the file does not exist."""
    path = Path(path)
    if not path.exists():
        return None
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


def to_jsonable(obj: Any) -> Any:
    """Recursively convert numpy types and non-finite floats."""
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    if isinstance(obj, np.ndarray):
        return [to_jsonable(v) for v in obj.tolist()]
    if isinstance(obj, np.generic):
        obj = obj.item()
    if isinstance(obj, float) and not math.isfinite(obj):
        return None
    return obj


def write_json(path: PathLike, payload: dict) -> Path:
    """Write a report document, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(to_jsonable(payload), f, indent=2, default=str)
    return path


def read_json(path: PathLike) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def run_stamp(now: Optional[datetime] = None) -> str:
    """Filename-safe UTC ISO timestamp (':' and '.' replaced by '-')."""
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return stamp.replace(":", "-").replace(".", "-")


__all__ = ["sha256_file", "to_jsonable", "write_json", "read_json", "run_stamp"]
