# storage/repos.py
#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import logging
import sqlite3
import uuid
from typing import List, Optional

from core.errors import StoreError
from domain.models import DEFAULT_TAG_COLOR, Record, Tag
from storage.db import Database

logger = logging.getLogger(__name__)


class AppStateRepo:
    def __init__(self, db: Database):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        row = self.db.conn.execute(
            "SELECT value FROM app_state WHERE key=?",
            (key,),
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self.db.conn.execute(
            """
            INSERT INTO app_state(key, value) VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
        self.db.conn.commit()

    def delete(self, key: str) -> None:
        self.db.conn.execute("DELETE FROM app_state WHERE key=?", (key,))
        self.db.conn.commit()


class TagRepo:
    def __init__(self, db: Database):
        self.db = db

    def create(self, name: str, color: str = DEFAULT_TAG_COLOR, note: str = "") -> Tag:
        tid = str(uuid.uuid4())
        self.db.conn.execute(
            "INSERT INTO tags(id, name, color, note) VALUES(?,?,?,?)",
            (tid, name, color or DEFAULT_TAG_COLOR, note or ""),
        )
        self.db.conn.commit()
        return self.get(tid)

    def get(self, tag_id: str) -> Optional[Tag]:
        r = self.db.conn.execute(
            "SELECT id, name, color, note FROM tags WHERE id=?",
            (tag_id,),
        ).fetchone()
        return Tag(**dict(r)) if r else None

    def list(self) -> List[Tag]:
        rows = self.db.conn.execute(
            "SELECT id, name, color, note FROM tags ORDER BY name ASC"
        ).fetchall()
        return [Tag(**dict(r)) for r in rows]


class RecordRepo:
    """Append-only record store."""

    def __init__(self, db: Database):
        self.db = db

    def append(self, record: Record) -> None:
        try:
            self.db.conn.execute(
                """
                INSERT INTO records(id, tag_id, start_ts, stop_ts, distraction_min)
                VALUES(?,?,?,?,?)
                """,
                (
                    record.id,
                    record.tag_id,
                    record.start_ts,
                    record.stop_ts,
                    int(record.distraction_min),
                ),
            )
            self.db.conn.commit()
        except sqlite3.Error as e:
            self.db.conn.rollback()
            raise StoreError(f"could not save record {record.id}: {e}") from e
        logger.debug("record %s appended", record.id)

    def list(self, tag_id: Optional[str] = None) -> List[Record]:
        if tag_id:
            rows = self.db.conn.execute(
                """
                SELECT id, tag_id, start_ts, stop_ts, distraction_min
                FROM records WHERE tag_id=? ORDER BY start_ts DESC
                """,
                (tag_id,),
            ).fetchall()
        else:
            rows = self.db.conn.execute(
                """
                SELECT id, tag_id, start_ts, stop_ts, distraction_min
                FROM records ORDER BY start_ts DESC
                """
            ).fetchall()
        return [Record(**dict(r)) for r in rows]
