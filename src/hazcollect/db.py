"""Database initialization and connection management."""
import json
import sqlite3
from datetime import datetime
from pathlib import Path

DEFAULT_DB_PATH = str(Path.home() / ".hazcollect" / "hazcollect.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS checklist_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_number TEXT NOT NULL,
    checklist_id TEXT NOT NULL,
    answers TEXT NOT NULL,  -- JSON
    completed_at TEXT
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


def save_checklist_result(db_path: str, order_number: str, checklist_id: str, answers: list[dict]) -> int:
    """Store a completed checklist's answers for an order. Returns the row id."""
    conn = get_connection(db_path)
    cursor = conn.execute(
        "INSERT INTO checklist_results (order_number, checklist_id, answers, completed_at) VALUES (?, ?, ?, ?)",
        (order_number, checklist_id, json.dumps(answers), datetime.now().isoformat()),
    )
    conn.commit()
    row_id = cursor.lastrowid
    conn.close()
    return row_id


def get_checklist_results(db_path: str, order_number: str) -> list[dict]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM checklist_results WHERE order_number = ? ORDER BY id", (order_number,)
    ).fetchall()
    conn.close()
    return [
        {
            "id": r["id"],
            "order_number": r["order_number"],
            "checklist_id": r["checklist_id"],
            "answers": json.loads(r["answers"]),
            "completed_at": r["completed_at"],
        }
        for r in rows
    ]
