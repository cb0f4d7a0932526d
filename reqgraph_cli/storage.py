"""Persistence layer for per-project module records.

Architecture:
- **SQLite** holds one row per module, keyed by module path, with the
  record serialized as JSON.
- A small ``project.json`` beside the database keeps run metadata.

Records are looked up by path only.  The stored content hash is returned
with the record but never used to invalidate it: a record written for an
older version of a file is served until the store is cleared.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .models import ModuleRecord, StoreDecodeError

logger = logging.getLogger(__name__)


class StoreWriteError(Exception):
    """A module record could not be persisted."""


# ===================================================================
# ProjectManager  (manages per-project store directories)
# ===================================================================

class ProjectManager:
    """Manage project store directories under the configured memory dir."""

    def __init__(self) -> None:
        config.ensure_base_dirs()

    def list_projects(self) -> List[str]:
        if not config.MEMORY_DIR.exists():
            return []
        return sorted([p.name for p in config.MEMORY_DIR.iterdir() if p.is_dir()])

    def project_dir(self, project_name: str) -> Path:
        return config.MEMORY_DIR / project_name

    def create_or_get_project(self, project_name: str) -> Path:
        path = self.project_dir(project_name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def delete_project(self, project_name: str) -> bool:
        path = self.project_dir(project_name)
        if not path.exists():
            return False
        for child in sorted(path.glob("**/*"), reverse=True):
            if child.is_file():
                child.unlink()
            elif child.is_dir():
                child.rmdir()
        path.rmdir()
        return True


def project_name_from_path(project_path: Path) -> str:
    return project_path.resolve().name.replace(" ", "_")


# ===================================================================
# ModuleStore  (SQLite, keyed by module path)
# ===================================================================

class ModuleStore:
    """Module records keyed by module path.

    A row that fails to decode is deleted and reported as a miss, so the
    caller re-parses the module and writes a fresh record.
    """

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir
        project_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = project_dir / "modules.db"
        self.meta_path = project_dir / "project.json"
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "ModuleStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS modules (
                path         TEXT PRIMARY KEY,
                content_hash TEXT NOT NULL,
                record       BLOB NOT NULL
            )
        """)
        self.conn.commit()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get(self, path: str) -> Optional[ModuleRecord]:
        row = self.conn.execute(
            "SELECT record FROM modules WHERE path = ?", (path,),
        ).fetchone()
        if row is None:
            return None
        try:
            return ModuleRecord.from_json(row["record"])
        except StoreDecodeError as exc:
            logger.warning("Discarding unreadable stored record for %s: %s", path, exc)
            self.delete(path)
            return None

    def put(self, path: str, record: ModuleRecord) -> None:
        try:
            payload = record.to_json()
            self.conn.execute(
                "INSERT OR REPLACE INTO modules (path, content_hash, record) VALUES (?, ?, ?)",
                (path, record.content_hash, payload.encode("utf-8")),
            )
            self.conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise StoreWriteError(f"Cannot store record for {path}: {exc}") from exc

    def delete(self, path: str) -> bool:
        cur = self.conn.execute("DELETE FROM modules WHERE path = ?", (path,))
        self.conn.commit()
        return cur.rowcount > 0

    def clear(self) -> None:
        self.conn.execute("DELETE FROM modules")
        self.conn.commit()

    def paths(self) -> List[str]:
        rows = self.conn.execute("SELECT path FROM modules ORDER BY path").fetchall()
        return [r["path"] for r in rows]

    def content_hash(self, path: str) -> Optional[str]:
        row = self.conn.execute(
            "SELECT content_hash FROM modules WHERE path = ?", (path,),
        ).fetchone()
        return row["content_hash"] if row is not None else None

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def set_metadata(self, payload: Dict[str, Any]) -> None:
        self.meta_path.write_text(
            json.dumps(payload, indent=2), encoding="utf-8",
        )

    def get_metadata(self) -> Dict[str, Any]:
        if not self.meta_path.exists():
            return {}
        try:
            return json.loads(self.meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}


def is_stale(record: ModuleRecord, content_hash: str) -> bool:
    """True when *record* was built from different source text."""
    return record.content_hash != content_hash
