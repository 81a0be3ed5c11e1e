"""SQLiteStore: reference storage backend using stdlib sqlite3."""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from ..core.store import ContextStore
from ..types import (
    Artifact,
    CompactionOutput,
    CompactionRecord,
    ConversationMeta,
    DecisionSample,
    Message,
    Topic,
)
from .helpers import dt_to_str, load_json, optional_dt, placeholders, str_to_dt

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    title TEXT,
    project_id TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS topics (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    label TEXT NOT NULL DEFAULT '',
    summary TEXT,
    description TEXT,
    parent_topic_id TEXT,
    token_estimate INTEGER,
    summary_layers_json TEXT NOT NULL DEFAULT '[]',
    last_compaction_at TEXT,
    covered_tokens INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    topic_id TEXT,
    role TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    metadata_json TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS artifacts (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    topic_id TEXT,
    type TEXT NOT NULL DEFAULT '',
    title TEXT NOT NULL DEFAULT '',
    summary TEXT,
    keywords_json TEXT NOT NULL DEFAULT '[]',
    content TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS decision_samples (
    id TEXT PRIMARY KEY,
    prompt_version TEXT NOT NULL,
    fallback_used INTEGER NOT NULL DEFAULT 0,
    llm_ms INTEGER,
    input_json TEXT NOT NULL,
    output_json TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_topics_conversation ON topics(conversation_id);
CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, created_at);
CREATE INDEX IF NOT EXISTS idx_messages_topic ON messages(conversation_id, topic_id, created_at);
CREATE INDEX IF NOT EXISTS idx_artifacts_conversation ON artifacts(conversation_id);
"""


def _row_to_topic(row: sqlite3.Row) -> Topic:
    compaction = None
    if row["last_compaction_at"]:
        compaction = CompactionRecord(
            last_compaction_at=optional_dt(row["last_compaction_at"]),
            summary_layers=load_json(row["summary_layers_json"], []),
            covered_tokens=row["covered_tokens"],
        )
    return Topic(
        id=row["id"],
        conversation_id=row["conversation_id"],
        label=row["label"],
        summary=row["summary"],
        description=row["description"],
        parent_topic_id=row["parent_topic_id"],
        token_estimate=row["token_estimate"],
        compaction=compaction,
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        created_at=str_to_dt(row["created_at"]),
        topic_id=row["topic_id"],
        metadata=load_json(row["metadata_json"], None),
    )


def _row_to_artifact(row: sqlite3.Row) -> Artifact:
    return Artifact(
        id=row["id"],
        conversation_id=row["conversation_id"],
        type=row["type"],
        title=row["title"],
        summary=row["summary"],
        keywords=load_json(row["keywords_json"], []),
        content=row["content"],
        topic_id=row["topic_id"],
    )


class SQLiteStore(ContextStore):
    """SQLite-backed topics, messages, artifacts and decision samples.

    One connection is shared across threads; every statement runs under a
    lock so the assembler's concurrent reads are serialised.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._ensure_schema()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
        return self._conn

    def _ensure_schema(self) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def _fetchall(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._get_conn().execute(sql, params).fetchall()

    def _write(self, sql: str, params: tuple | list = ()) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute(sql, params)
            conn.commit()

    # ------------------------------------------------------------------
    # Read contracts
    # ------------------------------------------------------------------

    def get_topics(self, topic_ids: list[str]) -> list[Topic]:
        if not topic_ids:
            return []
        rows = self._fetchall(
            f"SELECT * FROM topics WHERE id IN ({placeholders(topic_ids)})",
            list(topic_ids),
        )
        return [_row_to_topic(r) for r in rows]

    def get_topic(self, topic_id: str) -> Topic | None:
        rows = self._fetchall("SELECT * FROM topics WHERE id = ?", (topic_id,))
        return _row_to_topic(rows[0]) if rows else None

    def get_topic_messages(self, conversation_id: str, topic_id: str) -> list[Message]:
        rows = self._fetchall(
            "SELECT * FROM messages WHERE conversation_id = ? AND topic_id = ? "
            "ORDER BY created_at, rowid",
            (conversation_id, topic_id),
        )
        return [_row_to_message(r) for r in rows]

    def get_recent_messages(self, conversation_id: str, limit: int) -> list[Message]:
        if limit <= 0:
            return []
        rows = self._fetchall(
            "SELECT * FROM ("
            "  SELECT rowid AS seq, * FROM messages WHERE conversation_id = ? "
            "  ORDER BY created_at DESC, rowid DESC LIMIT ?"
            ") ORDER BY created_at, seq",
            (conversation_id, limit),
        )
        return [_row_to_message(r) for r in rows]

    def get_artifacts(self, artifact_ids: list[str]) -> list[Artifact]:
        if not artifact_ids:
            return []
        rows = self._fetchall(
            f"SELECT * FROM artifacts WHERE id IN ({placeholders(artifact_ids)})",
            list(artifact_ids),
        )
        return [_row_to_artifact(r) for r in rows]

    def get_conversation_meta(self, conversation_ids: list[str]) -> dict[str, ConversationMeta]:
        if not conversation_ids:
            return {}
        rows = self._fetchall(
            "SELECT c.id, c.title, c.project_id, p.name AS project_name "
            "FROM conversations c LEFT JOIN projects p ON p.id = c.project_id "
            f"WHERE c.id IN ({placeholders(conversation_ids)})",
            list(conversation_ids),
        )
        return {
            r["id"]: ConversationMeta(
                id=r["id"],
                title=r["title"],
                project_id=r["project_id"],
                project_name=r["project_name"],
            )
            for r in rows
        }

    def list_conversation_topics(self, conversation_id: str) -> list[Topic]:
        rows = self._fetchall(
            "SELECT * FROM topics WHERE conversation_id = ? ORDER BY created_at, rowid",
            (conversation_id,),
        )
        return [_row_to_topic(r) for r in rows]

    def list_project_topics(self, conversation_id: str) -> list[Topic]:
        rows = self._fetchall(
            "SELECT t.* FROM topics t JOIN conversations c ON c.id = t.conversation_id "
            "WHERE c.project_id = (SELECT project_id FROM conversations WHERE id = ?) "
            "AND t.conversation_id != ? "
            "ORDER BY t.created_at, t.rowid",
            (conversation_id, conversation_id),
        )
        return [_row_to_topic(r) for r in rows]

    def list_conversation_artifacts(self, conversation_id: str) -> list[Artifact]:
        rows = self._fetchall(
            "SELECT * FROM artifacts WHERE conversation_id = ? ORDER BY created_at, rowid",
            (conversation_id,),
        )
        return [_row_to_artifact(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_project(self, project_id: str, name: str) -> str:
        self._write(
            "INSERT OR REPLACE INTO projects (id, name) VALUES (?, ?)",
            (project_id, name),
        )
        return project_id

    def add_conversation(
        self,
        conversation_id: str,
        title: str | None = None,
        project_id: str | None = None,
    ) -> str:
        self._write(
            "INSERT OR REPLACE INTO conversations (id, title, project_id, created_at) "
            "VALUES (?, ?, ?, ?)",
            (conversation_id, title, project_id, dt_to_str(datetime.now(timezone.utc))),
        )
        return conversation_id

    def add_topic(self, topic: Topic) -> str:
        compaction = topic.compaction
        self._write(
            "INSERT OR REPLACE INTO topics "
            "(id, conversation_id, label, summary, description, parent_topic_id, token_estimate, "
            " summary_layers_json, last_compaction_at, covered_tokens, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                topic.id,
                topic.conversation_id,
                topic.label,
                topic.summary,
                topic.description,
                topic.parent_topic_id,
                topic.token_estimate,
                json.dumps(compaction.summary_layers if compaction else []),
                dt_to_str(compaction.last_compaction_at)
                if compaction and compaction.last_compaction_at else None,
                compaction.covered_tokens if compaction else 0,
                dt_to_str(datetime.now(timezone.utc)),
            ),
        )
        return topic.id

    def add_message(self, message: Message) -> str:
        self._write(
            "INSERT OR REPLACE INTO messages "
            "(id, conversation_id, topic_id, role, content, metadata_json, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                message.id,
                message.conversation_id,
                message.topic_id,
                message.role,
                message.content,
                json.dumps(message.metadata) if message.metadata is not None else None,
                dt_to_str(message.created_at),
            ),
        )
        return message.id

    def add_artifact(self, artifact: Artifact) -> str:
        self._write(
            "INSERT OR REPLACE INTO artifacts "
            "(id, conversation_id, topic_id, type, title, summary, keywords_json, content, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                artifact.id,
                artifact.conversation_id,
                artifact.topic_id,
                artifact.type,
                artifact.title,
                artifact.summary,
                json.dumps(artifact.keywords),
                artifact.content,
                dt_to_str(datetime.now(timezone.utc)),
            ),
        )
        return artifact.id

    def apply_compaction(
        self,
        topic_id: str,
        output: CompactionOutput,
        compacted_at: datetime | None = None,
    ) -> Topic:
        """Append a summary layer to a topic and record how far it covers."""
        compacted_at = compacted_at or datetime.now(timezone.utc)
        with self._lock:
            conn = self._get_conn()
            row = conn.execute(
                "SELECT summary_layers_json FROM topics WHERE id = ?", (topic_id,),
            ).fetchone()
            if row is None:
                raise ValueError(f"Unknown topic: {topic_id}")
            layers = load_json(row["summary_layers_json"], [])
            if output.new_summary_layer:
                layers.append(output.new_summary_layer)
            conn.execute(
                "UPDATE topics SET summary_layers_json = ?, summary = ?, "
                "last_compaction_at = ?, covered_tokens = ? WHERE id = ?",
                (
                    json.dumps(layers),
                    "\n\n".join(layers),
                    dt_to_str(compacted_at),
                    output.token_range.end,
                    topic_id,
                ),
            )
            conn.commit()
        return self.get_topic(topic_id)

    # ------------------------------------------------------------------
    # Decision samples
    # ------------------------------------------------------------------

    def record_decision_sample(self, sample: DecisionSample) -> None:
        self._write(
            "INSERT OR REPLACE INTO decision_samples "
            "(id, prompt_version, fallback_used, llm_ms, input_json, output_json, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                sample.id,
                sample.prompt_version,
                1 if sample.fallback_used else 0,
                sample.llm_ms,
                json.dumps(sample.input, default=str),
                json.dumps(sample.output.to_dict()),
                dt_to_str(sample.created_at),
            ),
        )

    def get_decision_samples(self, limit: int = 50) -> list[dict]:
        """Most recent decision samples first, decoded for inspection."""
        rows = self._fetchall(
            "SELECT * FROM decision_samples ORDER BY created_at DESC LIMIT ?", (limit,),
        )
        return [
            {
                "id": r["id"],
                "prompt_version": r["prompt_version"],
                "fallback_used": bool(r["fallback_used"]),
                "llm_ms": r["llm_ms"],
                "input": json.loads(r["input_json"]),
                "output": json.loads(r["output_json"]),
                "created_at": str_to_dt(r["created_at"]),
            }
            for r in rows
        ]

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
