#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import sqlite3


class Database:
    def __init__(self, db_path: str = "clockedin.db"):
        self.db_path = db_path
        # the engine thread and the caller thread both reach the repos
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON;")

    def init_schema(self):
        cur = self.conn.cursor()

        cur.execute("""
            CREATE TABLE IF NOT EXISTS app_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS tags (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                color TEXT NOT NULL DEFAULT '#007AFF',
                note TEXT NOT NULL DEFAULT ''
            );
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                tag_id TEXT NOT NULL,
                start_ts REAL NOT NULL,
                stop_ts REAL NOT NULL,
                distraction_min INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY(tag_id) REFERENCES tags(id) ON DELETE CASCADE
            );
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_records_tag ON records(tag_id);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_records_start ON records(start_ts);")

        self.conn.commit()

    def close(self):
        try:
            self.conn.close()
        except sqlite3.Error:
            pass
