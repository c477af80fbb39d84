"""
Shared fixtures for storemigration tests.

Both stores are real sqlite files under ``tmp_path``: the legacy store lives at
``<dir>/app.mv.db`` behind the locator ``jdbc:h2:file:<dir>/app;...``, the new
store at ``<dir>/new.db``. Both carry the same 14-table schema.
"""

import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List
from unittest.mock import Mock

import pytest

from storemigration.database.connection_helper import sqlite_connection_factory
from storemigration.database.tables import DEFAULT_TABLES


SCHEMA = """
CREATE TABLE LIBRARY (ID TEXT PRIMARY KEY, NAME TEXT NOT NULL, ROOT TEXT NOT NULL);
CREATE TABLE USER (ID TEXT PRIMARY KEY, EMAIL TEXT NOT NULL UNIQUE, PASSWORD TEXT NOT NULL, ROLE_ADMIN INTEGER NOT NULL DEFAULT 0);
CREATE TABLE USER_LIBRARY_SHARING (
    USER_ID TEXT NOT NULL REFERENCES USER(ID),
    LIBRARY_ID TEXT NOT NULL REFERENCES LIBRARY(ID)
);
CREATE TABLE SERIES (ID TEXT PRIMARY KEY, NAME TEXT NOT NULL, LIBRARY_ID TEXT NOT NULL REFERENCES LIBRARY(ID));
CREATE TABLE SERIES_METADATA (SERIES_ID TEXT NOT NULL REFERENCES SERIES(ID), TITLE TEXT, STATUS TEXT);
CREATE TABLE BOOK (
    ID TEXT PRIMARY KEY,
    NAME TEXT NOT NULL,
    FILE_SIZE INTEGER,
    SERIES_ID TEXT NOT NULL REFERENCES SERIES(ID),
    LIBRARY_ID TEXT NOT NULL REFERENCES LIBRARY(ID)
);
CREATE TABLE MEDIA (BOOK_ID TEXT NOT NULL REFERENCES BOOK(ID), STATUS TEXT, MEDIA_TYPE TEXT, THUMBNAIL BLOB);
CREATE TABLE MEDIA_PAGE (BOOK_ID TEXT NOT NULL REFERENCES BOOK(ID), FILE_NAME TEXT, NUMBER INTEGER);
CREATE TABLE MEDIA_FILE (BOOK_ID TEXT NOT NULL REFERENCES BOOK(ID), FILE_NAME TEXT);
CREATE TABLE BOOK_METADATA (BOOK_ID TEXT NOT NULL REFERENCES BOOK(ID), TITLE TEXT, NUMBER TEXT, RELEASE_DATE TEXT);
CREATE TABLE BOOK_METADATA_AUTHOR (BOOK_ID TEXT NOT NULL REFERENCES BOOK(ID), NAME TEXT, ROLE TEXT);
CREATE TABLE READ_PROGRESS (
    BOOK_ID TEXT NOT NULL REFERENCES BOOK(ID),
    USER_ID TEXT NOT NULL REFERENCES USER(ID),
    PAGE INTEGER,
    COMPLETED INTEGER
);
CREATE TABLE COLLECTION (ID TEXT PRIMARY KEY, NAME TEXT NOT NULL);
CREATE TABLE COLLECTION_SERIES (
    COLLECTION_ID TEXT NOT NULL REFERENCES COLLECTION(ID),
    SERIES_ID TEXT NOT NULL REFERENCES SERIES(ID),
    NUMBER INTEGER
);
"""


@dataclass
class Store:
    """A sqlite store used as legacy or destination in tests."""

    path: Path

    def connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.path))

    @property
    def factory(self):
        return sqlite_connection_factory(self.path, wal=False)

    def rows(self, table: str) -> List[tuple]:
        conn = self.connect()
        try:
            return conn.execute(f'SELECT * FROM "{table}" ORDER BY rowid').fetchall()
        finally:
            conn.close()

    def count(self, table: str) -> int:
        return len(self.rows(table))


@dataclass
class LegacyStore(Store):
    locator: str = ""


def create_store(path: Path, schema: str = SCHEMA) -> None:
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(schema)
        conn.commit()
    finally:
        conn.close()


def populate(conn: sqlite3.Connection, books: int = 3) -> Dict[str, bytes]:
    """Insert a small, consistent data set across all 14 tables.

    Returns:
        Thumbnail bytes keyed by book id
    """
    thumbnails = {}
    conn.execute("INSERT INTO LIBRARY VALUES ('lib1', 'Comics', '/books/comics')")
    conn.execute("INSERT INTO USER VALUES ('user1', 'admin@example.org', 'secret', 1)")
    conn.execute("INSERT INTO USER VALUES ('user2', 'reader@example.org', 'secret', 0)")
    conn.execute("INSERT INTO USER_LIBRARY_SHARING VALUES ('user2', 'lib1')")
    conn.execute("INSERT INTO SERIES VALUES ('series1', 'Saga', 'lib1')")
    conn.execute("INSERT INTO SERIES_METADATA VALUES ('series1', 'Saga', NULL)")
    conn.execute("INSERT INTO COLLECTION VALUES ('col1', 'Favourites')")
    conn.execute("INSERT INTO COLLECTION_SERIES VALUES ('col1', 'series1', 0)")
    for index in range(books):
        book_id = f"book{index}"
        thumbnail = os.urandom(4096) + bytes(range(256))
        thumbnails[book_id] = thumbnail
        conn.execute("INSERT INTO BOOK VALUES (?, ?, ?, 'series1', 'lib1')", (book_id, f"Saga {index}", 1024 * index))
        conn.execute("INSERT INTO MEDIA VALUES (?, 'READY', 'application/zip', ?)", (book_id, thumbnail))
        conn.execute("INSERT INTO MEDIA_FILE VALUES (?, 'ComicInfo.xml')", (book_id,))
        for page in range(1, 4):
            conn.execute("INSERT INTO MEDIA_PAGE VALUES (?, ?, ?)", (book_id, f"{page:03}.jpg", page))
        conn.execute("INSERT INTO BOOK_METADATA VALUES (?, ?, ?, '2020-01-01')", (book_id, f"Chapter {index}", str(index)))
        conn.execute("INSERT INTO BOOK_METADATA_AUTHOR VALUES (?, 'Brian K. Vaughan', 'writer')", (book_id,))
        conn.execute("INSERT INTO READ_PROGRESS VALUES (?, 'user2', 2, 0)", (book_id,))
    conn.commit()
    return thumbnails


@pytest.fixture
def legacy_store(tmp_path: Path) -> LegacyStore:
    """An empty legacy store with the full schema."""
    base = tmp_path / "app"
    store = LegacyStore(path=Path(str(base) + ".mv.db"), locator=f"jdbc:h2:file:{base};DB_CLOSE_DELAY=-1")
    create_store(store.path)
    return store


@pytest.fixture
def populated_legacy_store(legacy_store: LegacyStore):
    """Legacy store holding data in every table; yields ``(store, thumbnails)``."""
    conn = legacy_store.connect()
    try:
        thumbnails = populate(conn)
    finally:
        conn.close()
    return legacy_store, thumbnails


@pytest.fixture
def destination_store(tmp_path: Path) -> Store:
    """An empty destination store with the full schema."""
    store = Store(path=tmp_path / "new.db")
    create_store(store.path)
    return store


@pytest.fixture
def consumers():
    """Consumer coordinator double recording pause/resume."""
    coordinator = Mock()
    coordinator.calls = []
    coordinator.pause.side_effect = lambda: coordinator.calls.append("pause")
    coordinator.resume.side_effect = lambda: coordinator.calls.append("resume")
    return coordinator


@pytest.fixture
def all_tables():
    return list(DEFAULT_TABLES)
