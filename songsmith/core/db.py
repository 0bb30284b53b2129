"""
Song Persistence for Songsmith.

Uses SQLite to store:
- Songs produced by the lyrics workflow (brief, structure, evaluation, trace)
- Melodies produced by the melody workflow, linked to their song
- Per-day request usage for quota enforcement

Structured artifacts are stored as JSON text columns and decoded on read.
Records are returned as camelCase dicts ready for the HTTP layer.

Database file defaults to {data_dir}/songsmith.db (see SettingsManager).
"""

import json
import sqlite3
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


# ============================================================================
# DATABASE SCHEMA
# ============================================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS songs (
    id TEXT PRIMARY KEY,
    title TEXT,
    input_lyrics TEXT NOT NULL,
    input_emotion TEXT NOT NULL,
    input_genre TEXT,
    creative_brief TEXT,
    song_structure TEXT NOT NULL,
    evaluation TEXT,
    trace TEXT,
    iteration_count INTEGER NOT NULL DEFAULT 0,
    quality_score REAL,
    user_id TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS melodies (
    id TEXT PRIMARY KEY,
    song_id TEXT NOT NULL,
    midi_structure TEXT NOT NULL,
    tempo INTEGER NOT NULL,
    key TEXT NOT NULL,
    time_signature TEXT NOT NULL,
    iteration_count INTEGER NOT NULL DEFAULT 0,
    quality_score REAL,
    created_at TIMESTAMP NOT NULL,
    FOREIGN KEY (song_id) REFERENCES songs(id)
);

CREATE TABLE IF NOT EXISTS usage (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT,
    session_id TEXT,
    date TEXT NOT NULL,
    requests_used INTEGER NOT NULL DEFAULT 0,
    requests_limit INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_melodies_song_id
ON melodies(song_id);

CREATE UNIQUE INDEX IF NOT EXISTS idx_usage_user_date
ON usage(user_id, date) WHERE user_id IS NOT NULL;

CREATE UNIQUE INDEX IF NOT EXISTS idx_usage_session_date
ON usage(session_id, date) WHERE session_id IS NOT NULL;
"""

SONG_SORT_COLUMNS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
    "qualityScore": "quality_score",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


# ============================================================================
# DATABASE CONNECTION MANAGER
# ============================================================================

class SongDB:
    """
    SQLite database manager for songs, melodies and usage.

    Example:
        >>> db = SongDB(settings.get_database_path())
        >>> song_id = db.save_song("text", "sad", song_structure)
        >>> db.get_song(song_id)["songStructure"]["title"]
        'Sad Song'
    """

    def __init__(self, db_path: Path):
        """
        Initialize database at the given path.

        Args:
            db_path: SQLite file path (parent directories are created).
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

        logger.info(f"SongDB initialized: {self.db_path}")

    def _init_db(self) -> None:
        """Create database tables if they don't exist."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executescript(SCHEMA_SQL)
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    # ========================================================================
    # SONGS
    # ========================================================================

    def save_song(
        self,
        input_lyrics: str,
        input_emotion: str,
        song_structure: Dict[str, Any],
        input_genre: Optional[str] = None,
        creative_brief: Optional[Dict[str, Any]] = None,
        evaluation: Optional[Dict[str, Any]] = None,
        trace: Optional[List[Dict[str, Any]]] = None,
        iteration_count: int = 0,
        user_id: Optional[str] = None,
    ) -> str:
        """
        Persist a lyrics workflow result.

        Title comes from the song structure; quality score from the evaluation.

        Returns:
            New song id.
        """
        song_id = str(uuid.uuid4())
        now = _now()
        quality = evaluation.get("quality") if evaluation else None

        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO songs (
                        id, title, input_lyrics, input_emotion, input_genre,
                        creative_brief, song_structure, evaluation, trace,
                        iteration_count, quality_score, user_id, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        song_id,
                        song_structure.get("title"),
                        input_lyrics,
                        input_emotion,
                        input_genre,
                        _dumps(creative_brief),
                        json.dumps(song_structure),
                        _dumps(evaluation),
                        _dumps(trace),
                        iteration_count,
                        quality,
                        user_id,
                        now,
                        now,
                    )
                )
                conn.commit()

            logger.info(f"Saved song: {song_id}")
            return song_id

        except sqlite3.Error as e:
            logger.error(f"Failed to save song: {e}")
            raise

    def get_song(self, song_id: str) -> Optional[Dict[str, Any]]:
        """
        Get song by ID.

        Returns:
            Song dict or None if not found.
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute("SELECT * FROM songs WHERE id = ?", (song_id,)).fetchone()
                return _song_from_row(row) if row else None

        except sqlite3.Error as e:
            logger.error(f"Failed to get song: {e}")
            return None

    def list_songs(
        self,
        limit: int = 50,
        offset: int = 0,
        sort_by: str = "createdAt",
        ascending: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        List songs, newest first by default.

        Raises:
            ValueError: If sort_by is not a sortable field.
        """
        column = SONG_SORT_COLUMNS.get(sort_by)
        if column is None:
            raise ValueError(f"Cannot sort songs by: {sort_by}")
        direction = "ASC" if ascending else "DESC"

        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"SELECT * FROM songs ORDER BY {column} {direction}, rowid {direction} LIMIT ? OFFSET ?",
                    (limit, offset)
                )
                return [_song_from_row(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            logger.error(f"Failed to list songs: {e}")
            return []

    def count_songs(self) -> int:
        try:
            with self._get_connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM songs").fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"Failed to count songs: {e}")
            return 0

    def delete_song(self, song_id: str) -> bool:
        """
        Delete a song and its melodies.

        Returns:
            True if a song was deleted.
        """
        try:
            with self._get_connection() as conn:
                conn.execute("DELETE FROM melodies WHERE song_id = ?", (song_id,))
                cursor = conn.execute("DELETE FROM songs WHERE id = ?", (song_id,))
                conn.commit()
                deleted = cursor.rowcount > 0

            if deleted:
                logger.info(f"Deleted song: {song_id}")
            return deleted

        except sqlite3.Error as e:
            logger.error(f"Failed to delete song: {e}")
            return False

    # ========================================================================
    # MELODIES
    # ========================================================================

    def save_melody(
        self,
        song_id: str,
        melody_structure: Dict[str, Any],
        evaluation: Optional[Dict[str, Any]] = None,
        iteration_count: int = 0,
    ) -> str:
        """
        Persist a melody workflow result for an existing song.

        Returns:
            New melody id.
        """
        melody_id = str(uuid.uuid4())
        quality = evaluation.get("quality") if evaluation else None

        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO melodies (
                        id, song_id, midi_structure, tempo, key, time_signature,
                        iteration_count, quality_score, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        melody_id,
                        song_id,
                        json.dumps(melody_structure),
                        melody_structure["tempo"],
                        melody_structure["key"],
                        melody_structure["timeSignature"],
                        iteration_count,
                        quality,
                        _now(),
                    )
                )
                conn.commit()

            logger.info(f"Saved melody {melody_id} for song {song_id}")
            return melody_id

        except sqlite3.Error as e:
            logger.error(f"Failed to save melody: {e}")
            raise

    def get_melody(self, melody_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self._get_connection() as conn:
                row = conn.execute("SELECT * FROM melodies WHERE id = ?", (melody_id,)).fetchone()
                return _melody_from_row(row) if row else None

        except sqlite3.Error as e:
            logger.error(f"Failed to get melody: {e}")
            return None

    def list_melodies(self, song_id: Optional[str] = None, limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        """List melodies (optionally for one song), newest first."""
        query = "SELECT * FROM melodies"
        params: List[Any] = []
        if song_id is not None:
            query += " WHERE song_id = ?"
            params.append(song_id)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        try:
            with self._get_connection() as conn:
                cursor = conn.execute(query, params)
                return [_melody_from_row(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            logger.error(f"Failed to list melodies: {e}")
            return []

    def count_melodies(self, song_id: Optional[str] = None) -> int:
        try:
            with self._get_connection() as conn:
                if song_id is None:
                    return conn.execute("SELECT COUNT(*) FROM melodies").fetchone()[0]
                return conn.execute(
                    "SELECT COUNT(*) FROM melodies WHERE song_id = ?", (song_id,)
                ).fetchone()[0]
        except sqlite3.Error as e:
            logger.error(f"Failed to count melodies: {e}")
            return 0

    # ========================================================================
    # USAGE
    # ========================================================================

    def get_usage(self, day: str, user_id: Optional[str] = None, session_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Usage record for one subject on one UTC day.

        Args:
            day: ISO date (YYYY-MM-DD).
            user_id / session_id: Exactly one identifies the subject.
        """
        column, subject = _usage_subject(user_id, session_id)
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    f"SELECT * FROM usage WHERE {column} = ? AND date = ?",
                    (subject, day)
                ).fetchone()
                if row is None:
                    return None
                return {"used": row["requests_used"], "limit": row["requests_limit"], "date": row["date"]}

        except sqlite3.Error as e:
            logger.error(f"Failed to get usage: {e}")
            raise

    def increment_usage(
        self,
        day: str,
        default_limit: int,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> int:
        """
        Add one request to a subject's usage for the day (creating the record).

        Returns:
            Requests used after the increment.
        """
        column, subject = _usage_subject(user_id, session_id)
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"UPDATE usage SET requests_used = requests_used + 1 WHERE {column} = ? AND date = ?",
                    (subject, day)
                )
                if cursor.rowcount == 0:
                    conn.execute(
                        "INSERT INTO usage (user_id, session_id, date, requests_used, requests_limit) "
                        "VALUES (?, ?, ?, 1, ?)",
                        (user_id, session_id, day, default_limit)
                    )
                conn.commit()
                row = conn.execute(
                    f"SELECT requests_used FROM usage WHERE {column} = ? AND date = ?",
                    (subject, day)
                ).fetchone()
                return row["requests_used"]

        except sqlite3.Error as e:
            logger.error(f"Failed to increment usage: {e}")
            raise


# ============================================================================
# ROW MAPPING
# ============================================================================

def _usage_subject(user_id: Optional[str], session_id: Optional[str]):
    if user_id and session_id:
        raise ValueError("Cannot specify both user_id and session_id")
    if not user_id and not session_id:
        raise ValueError("Must specify either user_id or session_id")
    return ("user_id", user_id) if user_id else ("session_id", session_id)


def _song_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "title": row["title"],
        "inputLyrics": row["input_lyrics"],
        "inputEmotion": row["input_emotion"],
        "inputGenre": row["input_genre"],
        "creativeBrief": _loads(row["creative_brief"]),
        "songStructure": _loads(row["song_structure"]),
        "evaluation": _loads(row["evaluation"]),
        "trace": _loads(row["trace"]),
        "iterationCount": row["iteration_count"],
        "qualityScore": row["quality_score"],
        "userId": row["user_id"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def _melody_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "songId": row["song_id"],
        "melodyStructure": _loads(row["midi_structure"]),
        "tempo": row["tempo"],
        "key": row["key"],
        "timeSignature": row["time_signature"],
        "iterationCount": row["iteration_count"],
        "qualityScore": row["quality_score"],
        "createdAt": row["created_at"],
    }


__all__ = [
    "SongDB",
    "SCHEMA_SQL",
    "SONG_SORT_COLUMNS",
]
