from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from inspector.preferences import PreferenceStore
from inspector.query import QueryEngine
from inspector.schema import SchemaIntrospector
from inspector.settings import Settings

SHOP_SCHEMA = """
CREATE TABLE users(
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT DEFAULT 'n/a'
);
CREATE TABLE orders(
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
    total REAL
);
CREATE TABLE profiles(
    user_id INTEGER PRIMARY KEY REFERENCES users(id),
    bio TEXT
);
CREATE TABLE employees(
    id INTEGER PRIMARY KEY,
    manager_id INTEGER REFERENCES employees(id)
);
CREATE TABLE files(id INTEGER PRIMARY KEY, data BLOB);
CREATE TABLE tags(label TEXT);
CREATE TABLE android_metadata(locale TEXT);

INSERT INTO android_metadata VALUES ('en_US');
INSERT INTO users VALUES (1, 'Alice', 'alice@example.com');
INSERT INTO users VALUES (2, 'Bob', 'bob@example.com');
INSERT INTO users VALUES (3, 'Carol', NULL);
INSERT INTO orders(user_id, total) VALUES (1, 9.5);
INSERT INTO orders(user_id, total) VALUES (1, 20.0);
INSERT INTO orders(user_id, total) VALUES (2, 3.25);
INSERT INTO profiles VALUES (1, 'hello');
INSERT INTO employees VALUES (1, NULL);
INSERT INTO employees VALUES (2, 1);
INSERT INTO files VALUES (1, X'00010203');
INSERT INTO tags VALUES ('b');
INSERT INTO tags VALUES ('a');
"""

ROOM_SCHEMA = """
CREATE TABLE room_master_table(id INTEGER PRIMARY KEY, identity_hash TEXT);
CREATE TABLE notes(id INTEGER PRIMARY KEY, body TEXT);
INSERT INTO room_master_table VALUES (42, 'abc');
"""


def make_db(db_path: Path, script: str) -> Path:
    """Create an SQLite file from a script."""
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(script)
        conn.commit()
    finally:
        conn.close()
    return db_path


@pytest.fixture
def databases_dir(tmp_path: Path) -> Path:
    d = tmp_path / "databases"
    d.mkdir()
    make_db(d / "shop.db", SHOP_SCHEMA)
    make_db(d / "room.db", ROOM_SCHEMA)
    return d


@pytest.fixture
def prefs_dir(tmp_path: Path) -> Path:
    return tmp_path / "shared_prefs"


@pytest.fixture
def introspector(databases_dir: Path) -> SchemaIntrospector:
    return SchemaIntrospector(databases_dir)


@pytest.fixture
def engine(introspector: SchemaIntrospector) -> QueryEngine:
    return QueryEngine(introspector)


@pytest.fixture
def store(prefs_dir: Path) -> PreferenceStore:
    return PreferenceStore(prefs_dir)


@pytest.fixture
def settings(databases_dir: Path, prefs_dir: Path) -> Settings:
    return Settings(databases_dir=str(databases_dir), prefs_dir=str(prefs_dir))


def fetch_all(db_path: Path, sql: str, args=()) -> list:
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(sql, args).fetchall()
    finally:
        conn.close()
