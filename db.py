import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from db_pool import SQLiteConnectionPool

DB_PATH = os.getenv("DB_PATH", "data.db")

LEARNING_LEVELS = ("structured", "advanced")
DIFFICULTY_LEVELS = ("beginner", "advanced")

# Columns a profile PATCH may touch; everything else is owned by the server.
PROFILE_FIELDS = ("name", "learning_level", "coding_level", "goal_description", "social_feeds")

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur


def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def init():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA foreign_keys = ON;
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS accounts (
              user_id     TEXT PRIMARY KEY,
              email       TEXT UNIQUE,
              pw_hash     TEXT NOT NULL,
              pw_salt     TEXT,
              created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS profiles (
              id                TEXT PRIMARY KEY,
              name              TEXT NOT NULL DEFAULT '',
              learning_level    TEXT CHECK (learning_level IN ('structured', 'advanced')),
              coding_level      INTEGER NOT NULL DEFAULT 1,
              goal_description  TEXT NOT NULL DEFAULT '',
              social_feeds      TEXT NOT NULL DEFAULT '{}',
              created_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
              updated_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS quiz_results (
              id                           INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id                      TEXT NOT NULL,
              coding_level_score           REAL NOT NULL,
              coding_proficiency_score     REAL NOT NULL,
              decision_making_score        REAL NOT NULL,
              cgpa                         REAL NOT NULL,
              real_life_application_score  REAL NOT NULL,
              total_score                  REAL NOT NULL,
              percent                      REAL NOT NULL,
              category                     TEXT NOT NULL CHECK (category IN ('structured', 'advanced')),
              created_at                   TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_quiz_results_user ON quiz_results(user_id);

            CREATE TABLE IF NOT EXISTS learning_progress (
              id                   INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id              TEXT NOT NULL,
              concept_name         TEXT NOT NULL,
              concept_description  TEXT NOT NULL,
              difficulty_level     TEXT NOT NULL CHECK (difficulty_level IN ('beginner', 'advanced')),
              is_completed         INTEGER NOT NULL DEFAULT 0,
              order_index          INTEGER NOT NULL DEFAULT 0,
              created_at           TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
              completed_at         TIMESTAMP
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_learning_progress_user_concept
              ON learning_progress(user_id, concept_name);
            CREATE INDEX IF NOT EXISTS idx_learning_progress_order
              ON learning_progress(user_id, order_index);
            """
        )
        con.commit()


# -------------- accounts --------------
def create_account(user_id: str, email: Optional[str], pw_hash: str, pw_salt: Optional[str] = None) -> None:
    _exec(
        "INSERT INTO accounts(user_id, email, pw_hash, pw_salt) VALUES (?,?,?,?)",
        (user_id, email, pw_hash, pw_salt),
    )


def get_account(user_id: str) -> Optional[sqlite3.Row]:
    rows = _query("SELECT user_id, email, pw_hash, pw_salt FROM accounts WHERE user_id = ?", (user_id,))
    return rows[0] if rows else None


def get_account_by_email(email: str) -> Optional[sqlite3.Row]:
    rows = _query("SELECT user_id FROM accounts WHERE email = ?", (email,))
    return rows[0] if rows else None


# -------------- profiles --------------
def _profile_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    try:
        feeds = json.loads(row["social_feeds"] or "{}")
    except json.JSONDecodeError:
        feeds = {}
    return {
        "id": row["id"],
        "name": row["name"],
        "learning_level": row["learning_level"],
        "coding_level": row["coding_level"],
        "goal_description": row["goal_description"],
        "social_feeds": feeds if isinstance(feeds, dict) else {},
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def create_profile(user_id: str, name: str = "") -> Dict[str, Any]:
    _exec(
        "INSERT OR IGNORE INTO profiles(id, name) VALUES (?, ?)",
        (user_id, name),
    )
    profile = get_profile(user_id)
    if profile is None:
        raise sqlite3.DatabaseError(f"profile for {user_id} was not persisted")
    return profile


def get_profile(user_id: str) -> Optional[Dict[str, Any]]:
    rows = _query("SELECT * FROM profiles WHERE id = ?", (user_id,))
    return _profile_from_row(rows[0]) if rows else None


def update_profile(user_id: str, fields: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Apply a partial update; unknown keys raise ``ValueError``."""
    unknown = sorted(set(fields) - set(PROFILE_FIELDS))
    if unknown:
        raise ValueError(f"Unsupported profile fields: {', '.join(unknown)}")
    if not fields:
        return get_profile(user_id)

    assignments = []
    params: list[Any] = []
    for column in PROFILE_FIELDS:
        if column not in fields:
            continue
        value = fields[column]
        if column == "social_feeds":
            value = json.dumps(dict(value or {}))
        assignments.append(f"{column} = ?")
        params.append(value)
    assignments.append("updated_at = ?")
    params.extend([_now(), user_id])

    cur = _exec(f"UPDATE profiles SET {', '.join(assignments)} WHERE id = ?", params)
    if cur.rowcount == 0:
        return None
    return get_profile(user_id)


def set_learning_level(user_id: str, learning_level: str) -> bool:
    cur = _exec(
        "UPDATE profiles SET learning_level = ?, updated_at = ? WHERE id = ?",
        (learning_level, _now(), user_id),
    )
    return cur.rowcount > 0


# -------------- quiz results --------------
def record_quiz_result(
    user_id: str,
    answers: Mapping[str, float],
    *,
    total_score: float,
    percent: float,
    category: str,
) -> int:
    cur = _exec(
        """
        INSERT INTO quiz_results (
          user_id, coding_level_score, coding_proficiency_score, decision_making_score,
          cgpa, real_life_application_score, total_score, percent, category, created_at
        ) VALUES (?,?,?,?,?,?,?,?,?,?)
        """,
        (
            user_id,
            answers["coding_level_score"],
            answers["coding_proficiency_score"],
            answers["decision_making_score"],
            answers["cgpa"],
            answers["real_life_application_score"],
            total_score,
            percent,
            category,
            _now(),
        ),
    )
    return int(cur.lastrowid)


def list_quiz_results(user_id: str, limit: int = 20) -> list[Dict[str, Any]]:
    rows = _query(
        "SELECT * FROM quiz_results WHERE user_id = ? ORDER BY id DESC LIMIT ?",
        (user_id, int(limit)),
    )
    return [dict(row) for row in rows]


# -------------- learning progress --------------
def _concept_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    concept = dict(row)
    concept["is_completed"] = bool(concept["is_completed"])
    return concept


def list_concepts(user_id: str) -> list[Dict[str, Any]]:
    rows = _query(
        "SELECT * FROM learning_progress WHERE user_id = ? ORDER BY order_index ASC, id ASC",
        (user_id,),
    )
    return [_concept_from_row(row) for row in rows]


def get_concept(user_id: str, concept_id: int) -> Optional[Dict[str, Any]]:
    rows = _query(
        "SELECT * FROM learning_progress WHERE id = ? AND user_id = ?",
        (int(concept_id), user_id),
    )
    return _concept_from_row(rows[0]) if rows else None


def find_concept(user_id: str, concept_name: str) -> Optional[Dict[str, Any]]:
    rows = _query(
        "SELECT * FROM learning_progress WHERE user_id = ? AND concept_name = ?",
        (user_id, concept_name),
    )
    return _concept_from_row(rows[0]) if rows else None


def has_concepts(user_id: str) -> bool:
    rows = _query("SELECT 1 FROM learning_progress WHERE user_id = ? LIMIT 1", (user_id,))
    return bool(rows)


def max_order_index(user_id: str) -> Optional[int]:
    rows = _query(
        "SELECT MAX(order_index) AS max_index FROM learning_progress WHERE user_id = ?",
        (user_id,),
    )
    if not rows or rows[0]["max_index"] is None:
        return None
    return int(rows[0]["max_index"])


def insert_concepts(user_id: str, concepts: Sequence[Mapping[str, Any]]) -> int:
    """Insert a batch of concepts in one transaction; all rows or none."""
    payload = [
        (
            user_id,
            concept["concept_name"],
            concept["concept_description"],
            concept["difficulty_level"],
            int(concept["order_index"]),
        )
        for concept in concepts
    ]
    if not payload:
        return 0
    with _conn() as con:
        con.executemany(
            """
            INSERT INTO learning_progress
              (user_id, concept_name, concept_description, difficulty_level, order_index, is_completed)
            VALUES (?,?,?,?,?,0)
            """,
            payload,
        )
        con.commit()
    return len(payload)


def insert_concept(
    user_id: str,
    concept_name: str,
    concept_description: str,
    difficulty_level: str,
    order_index: int,
) -> Dict[str, Any]:
    cur = _exec(
        """
        INSERT INTO learning_progress
          (user_id, concept_name, concept_description, difficulty_level, order_index, is_completed)
        VALUES (?,?,?,?,?,0)
        """,
        (user_id, concept_name, concept_description, difficulty_level, int(order_index)),
    )
    concept = get_concept(user_id, int(cur.lastrowid))
    if concept is None:
        raise sqlite3.DatabaseError(f"concept {concept_name!r} was not persisted")
    return concept


def update_concept_description(
    user_id: str, concept_id: int, concept_description: str, difficulty_level: str
) -> Optional[Dict[str, Any]]:
    _exec(
        """
        UPDATE learning_progress
           SET concept_description = ?, difficulty_level = ?
         WHERE id = ? AND user_id = ?
        """,
        (concept_description, difficulty_level, int(concept_id), user_id),
    )
    return get_concept(user_id, concept_id)


def complete_concept(user_id: str, concept_id: int) -> Optional[Dict[str, Any]]:
    """Mark a concept as read; an already completed concept keeps its timestamp."""
    _exec(
        """
        UPDATE learning_progress
           SET is_completed = 1, completed_at = ?
         WHERE id = ? AND user_id = ? AND is_completed = 0
        """,
        (_now(), int(concept_id), user_id),
    )
    return get_concept(user_id, concept_id)
