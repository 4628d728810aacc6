"""Server-side store of rendered calendar instances.

Every render writes the sanitized doors of a calendar under its instance id,
the reveal endpoint reads them back. Entries expire after ``CACHE_TTL``
seconds and are removed lazily when read.
"""

import json
import logging
import os
import sqlite3
import time

BASE_DIR = os.path.abspath(os.path.dirname(__file__))
CACHE_DATABASE = os.environ.get("ADVENT_CACHE_DATABASE", os.path.join(BASE_DIR, "advent_cache.db"))
CACHE_TTL = int(os.environ.get("ADVENT_CACHE_TTL", 12 * 60 * 60))

CACHE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS advent_instances (
        instance_id TEXT PRIMARY KEY,
        owner_page_id INTEGER NOT NULL,
        doors TEXT NOT NULL,
        expires_at REAL NOT NULL
    )
"""


def get_db_connection():
    connection = sqlite3.connect(CACHE_DATABASE)
    connection.row_factory = sqlite3.Row
    connection.execute(CACHE_TABLE_SQL)
    return connection


def put_instance(instance_id, owner_page_id, doors, now=None):
    if not instance_id:
        return False
    if now is None:
        now = time.time()
    try:
        with get_db_connection() as connection:
            connection.execute(
                """
                INSERT INTO advent_instances (instance_id, owner_page_id, doors, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(instance_id) DO UPDATE SET
                    owner_page_id=excluded.owner_page_id,
                    doors=excluded.doors,
                    expires_at=excluded.expires_at
                """,
                (
                    str(instance_id),
                    int(owner_page_id or 0),
                    json.dumps(doors, ensure_ascii=False),
                    now + CACHE_TTL,
                ),
            )
    except sqlite3.DatabaseError as exc:
        logging.error("Kalender %s konnte nicht zwischengespeichert werden: %s", instance_id, exc)
        return False
    return True


def get_instance(instance_id, now=None):
    if not instance_id:
        return None
    if now is None:
        now = time.time()
    try:
        with get_db_connection() as connection:
            row = connection.execute(
                "SELECT instance_id, owner_page_id, doors, expires_at FROM advent_instances WHERE instance_id = ?",
                (str(instance_id),),
            ).fetchone()
            if row is None:
                return None
            if row["expires_at"] <= now:
                connection.execute("DELETE FROM advent_instances WHERE instance_id = ?", (row["instance_id"],))
                return None
            doors = json.loads(row["doors"])
    except (sqlite3.DatabaseError, ValueError) as exc:
        logging.error("Kalender %s konnte nicht aus dem Zwischenspeicher gelesen werden: %s", instance_id, exc)
        return None

    return {
        "instanceId": row["instance_id"],
        "ownerPageId": row["owner_page_id"],
        "doors": doors,
    }


def find_door(instance, day):
    for door in instance.get("doors") or []:
        if isinstance(door, dict) and door.get("day") == day:
            return door
    return None
