from __future__ import annotations

import sqlite3
from concurrent.futures import ThreadPoolExecutor

import pytest

from sqlite_mcp.db import Database


def test_fetch_all_returns_dicts(db: Database):
    db.execute("CREATE TABLE kv(k TEXT PRIMARY KEY, v INTEGER)")
    db.execute("INSERT INTO kv VALUES (?, ?)", ("a", 1))
    assert db.fetch_all("SELECT k, v FROM kv") == [{"k": "a", "v": 1}]


def test_execute_row_counts(db: Database):
    assert db.execute("CREATE TABLE t(x INTEGER)") is None
    assert db.execute("INSERT INTO t VALUES (1), (2)") == 2
    assert db.execute("SELECT * FROM t") is None


def test_list_tables_and_table_info(db: Database):
    db.execute("CREATE TABLE a(id INTEGER PRIMARY KEY)")
    db.execute("CREATE TABLE b(name TEXT NOT NULL)")
    assert db.list_tables() == ["a", "b"]
    info = db.table_info("b")
    assert info[0]["name"] == "name"
    assert info[0]["notnull"] == 1
    assert set(info[0]) == {"cid", "name", "type", "notnull", "dflt_value", "pk"}


def test_file_backed_database_persists(file_db: Database):
    file_db.execute("CREATE TABLE t(x INTEGER)")
    file_db.execute("INSERT INTO t VALUES (7)")
    path = file_db.db_path
    file_db.close()

    reopened = Database(path)
    try:
        assert reopened.fetch_all("SELECT x FROM t") == [{"x": 7}]
    finally:
        reopened.close()


def test_close_is_idempotent_and_blocks_use(db: Database):
    assert db.ping() is True
    db.close()
    db.close()
    assert db.closed
    assert db.ping() is False
    with pytest.raises(sqlite3.ProgrammingError):
        db.fetch_all("SELECT 1")


def test_concurrent_writes_are_serialized(db: Database):
    db.execute("CREATE TABLE n(v INTEGER)")
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda i: db.execute("INSERT INTO n VALUES (?)", (i,)), range(100)))
    assert db.fetch_all("SELECT COUNT(*) AS c FROM n") == [{"c": 100}]
