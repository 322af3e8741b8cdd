"""
Board storage backend (SQLite).

Row-based repository for ideas, cards and comments. This is the board's
own persistence; the assistant only reaches it through add_card,
move_card and edit_card_text.
"""
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import List, Optional

from .schema import Card, Column, Comment, Idea, DEFAULT_COLUMNS, FALLBACK_COLUMN, utc_now

logger = logging.getLogger(__name__)

VALID_COLUMNS = {cid for cid, _ in DEFAULT_COLUMNS}


class CardNotFound(KeyError):
    """Raised when a card id does not exist."""
    pass


class IdeaNotFound(KeyError):
    """Raised when an idea id does not exist."""
    pass


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class BoardStore:
    """SQLite-backed store for ideas, cards and card comments."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "ideakeeper" / "board.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ideas (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    summary TEXT DEFAULT '',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cards (
                    id TEXT PRIMARY KEY,
                    idea_id TEXT NOT NULL,
                    column_id TEXT NOT NULL DEFAULT 'todo',
                    text TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (idea_id) REFERENCES ideas(id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS card_comments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    card_id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    author TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (card_id) REFERENCES cards(id) ON DELETE CASCADE
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cards_idea ON cards(idea_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_comments_card ON card_comments(card_id)")
            conn.commit()

    # ── Ideas ────────────────────────────────────────────────────────────────

    def create_idea(self, title: str, summary: str = "") -> Idea:
        idea = Idea.with_default_columns(uuid.uuid4().hex, title, summary)
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO ideas (id, title, summary, created_at) VALUES (?, ?, ?, ?)",
                (idea.idea_id, idea.title, idea.summary, idea.created_at),
            )
            conn.commit()
        return idea

    def get_idea(self, idea_id: str) -> Optional[Idea]:
        """Retrieve an idea hydrated with its columns and cards (newest first)."""
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM ideas WHERE id = ?", (idea_id,)).fetchone()
            if not row:
                return None
            card_rows = conn.execute(
                "SELECT * FROM cards WHERE idea_id = ? ORDER BY created_at DESC, rowid DESC",
                (idea_id,),
            ).fetchall()
        return self._build_idea(row, card_rows)

    def list_ideas(self) -> List[Idea]:
        """All ideas, most recently created first."""
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT * FROM ideas ORDER BY created_at DESC").fetchall()
            card_rows = conn.execute("SELECT * FROM cards ORDER BY created_at DESC, rowid DESC").fetchall()
        return [
            self._build_idea(row, [c for c in card_rows if c["idea_id"] == row["id"]])
            for row in rows
        ]

    def _build_idea(self, row: sqlite3.Row, card_rows: List[sqlite3.Row]) -> Idea:
        idea = Idea(
            idea_id=row["id"],
            title=row["title"],
            summary=row["summary"] or "",
            created_at=row["created_at"],
        )
        cards = [self._row_to_card(r) for r in card_rows]
        idea.columns = [
            Column(
                column_id=cid,
                title=title,
                cards=[c for c in cards if c.column_id == cid],
            )
            for cid, title in DEFAULT_COLUMNS
        ]
        return idea

    # ── Cards ────────────────────────────────────────────────────────────────

    def add_card(self, idea_id: str, column_id: str, text: str) -> Card:
        if column_id not in VALID_COLUMNS:
            raise ValueError(f"Invalid column: {column_id}")
        with _connect(self.db_path) as conn:
            if not conn.execute("SELECT 1 FROM ideas WHERE id = ?", (idea_id,)).fetchone():
                raise IdeaNotFound(idea_id)
            card = Card(card_id=uuid.uuid4().hex, text=text, column_id=column_id, idea_id=idea_id)
            conn.execute(
                "INSERT INTO cards (id, idea_id, column_id, text, created_at) VALUES (?, ?, ?, ?, ?)",
                (card.card_id, idea_id, column_id, text, card.created_at),
            )
            conn.commit()
        logger.info(f"Card {card.card_id} added to {idea_id}/{column_id}")
        return card

    def move_card(
        self,
        card_id: str,
        source_column_id: str,
        dest_column_id: str,
        idea_id: Optional[str] = None,
    ) -> Card:
        """Move a card to dest_column_id.

        source_column_id is informational; the stored column wins.
        """
        if dest_column_id not in VALID_COLUMNS:
            raise ValueError(f"Invalid column: {dest_column_id}")
        card = self.get_card(card_id)
        if card is None or (idea_id and card.idea_id != idea_id):
            raise CardNotFound(card_id)
        if source_column_id and source_column_id != card.column_id:
            logger.debug(
                f"Card {card_id} is in {card.column_id}, not {source_column_id}"
            )
        with _connect(self.db_path) as conn:
            conn.execute("UPDATE cards SET column_id = ? WHERE id = ?", (dest_column_id, card_id))
            conn.commit()
        card.column_id = dest_column_id
        logger.info(f"Card {card_id} moved to {dest_column_id}")
        return card

    def edit_card_text(self, card_id: str, text: str, idea_id: Optional[str] = None) -> Card:
        card = self.get_card(card_id)
        if card is None or (idea_id and card.idea_id != idea_id):
            raise CardNotFound(card_id)
        with _connect(self.db_path) as conn:
            conn.execute("UPDATE cards SET text = ? WHERE id = ?", (text, card_id))
            conn.commit()
        card.text = text
        return card

    def get_card(self, card_id: str) -> Optional[Card]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM cards WHERE id = ?", (card_id,)).fetchone()
        return self._row_to_card(row) if row else None

    def _row_to_card(self, row: sqlite3.Row) -> Card:
        return Card(
            card_id=row["id"],
            text=row["text"],
            column_id=row["column_id"] or FALLBACK_COLUMN,
            idea_id=row["idea_id"],
            created_at=row["created_at"],
        )

    # ── Comments ─────────────────────────────────────────────────────────────

    def add_comment(self, card_id: str, body: str, author: str = "") -> Comment:
        if self.get_card(card_id) is None:
            raise CardNotFound(card_id)
        now = utc_now()
        with _connect(self.db_path) as conn:
            cur = conn.execute(
                "INSERT INTO card_comments (card_id, body, author, created_at) VALUES (?, ?, ?, ?)",
                (card_id, body, author, now),
            )
            conn.commit()
        return Comment(comment_id=cur.lastrowid, card_id=card_id, body=body, author=author, created_at=now)

    def list_comments(self, card_id: str) -> List[Comment]:
        """Comments for a card, oldest first."""
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM card_comments WHERE card_id = ? ORDER BY id ASC",
                (card_id,),
            ).fetchall()
        return [
            Comment(
                comment_id=r["id"],
                card_id=r["card_id"],
                body=r["body"],
                author=r["author"] or "",
                created_at=r["created_at"],
            )
            for r in rows
        ]
