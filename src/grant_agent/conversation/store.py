"""SQLite-backed append-only conversation log."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from grant_agent.types import ConversationMessage

logger = logging.getLogger(__name__)


class ConversationStore:
    """Stores each message as one JSON row, ordered by insertion.

    ``db_path`` must point at a file: every operation opens its own connection.
    """

    def __init__(self, db_path: str | Path = "grant_agent.db") -> None:
        self.db_path = Path(db_path)
        _ensure_messages_table(self.db_path)

    def append(self, conversation_id: str, message: ConversationMessage) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO messages(conversation_id, payload) VALUES(?, ?)",
                (conversation_id, json.dumps(message.to_dict(), ensure_ascii=False)),
            )
            conn.commit()

    def read(self, conversation_id: str, limit: int | None = None) -> list[ConversationMessage]:
        """Return the trailing ``limit`` messages (all when ``None``), oldest first."""
        query = "SELECT payload FROM messages WHERE conversation_id = ? ORDER BY seq DESC"
        args: tuple[object, ...] = (conversation_id,)
        if limit is not None:
            query += " LIMIT ?"
            args = (conversation_id, max(0, limit))
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(query, args).fetchall()
        return [ConversationMessage.from_dict(json.loads(row[0])) for row in reversed(rows)]

    def clear(self, conversation_id: str) -> int:
        with sqlite3.connect(self.db_path) as conn:
            cur = conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            conn.commit()
        logger.info("Cleared %s messages from conversation %s", cur.rowcount, conversation_id)
        return cur.rowcount

    def list_conversations(self) -> list[str]:
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT conversation_id FROM messages GROUP BY conversation_id ORDER BY MIN(seq)"
            ).fetchall()
        return [row[0] for row in rows]


def _ensure_messages_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS messages ("
            "seq INTEGER PRIMARY KEY AUTOINCREMENT, "
            "conversation_id TEXT NOT NULL, "
            "payload TEXT NOT NULL)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, seq)"
        )
        conn.commit()
