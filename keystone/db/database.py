"""SQLite database connection and operations for Keystone.

Provides:
    - Connection management with WAL mode
    - Schema creation
    - Re-entrant transactions (BEGIN IMMEDIATE at the outermost level)
    - CRUD operations for all tables

Usage:
    from keystone.db.database import Database

    db = Database()
    db.initialize()

    property_id = db.create_property(Property(name="Maple Court 2B", address="..."))

    with db.transaction():
        db.create_response(response)
        db.upsert_summary(summary)
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterator, Optional

from keystone.core.config import get_config
from keystone.core.exceptions import DatabaseError
from keystone.core.logging import get_logger
from keystone.db.models import (
    CategorySummary,
    EntryStatus,
    FeedbackCategory,
    InteractionType,
    InterviewSession,
    Lead,
    LeadInteraction,
    Property,
    Response,
    ResponseMethod,
    ScheduleEntry,
    ScheduleSource,
    SessionStatus,
    SessionType,
)

logger = get_logger(__name__)


SCHEMA_VERSION = 1


def _iso(value: Optional[datetime | date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class Database:
    """SQLite database manager.

    One connection per Database, shared across threads behind a lock.

    Attributes:
        db_path: Path to database file
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database.

        Args:
            db_path: Path to database file. Use ":memory:" for in-memory.
                    Defaults to config path.
        """
        if db_path is None:
            config = get_config()
            self.db_path = str(config.db_path)
        else:
            self.db_path = db_path

        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._tx_depth = 0

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

                # Transactions are managed explicitly in transaction()
                self._conn = sqlite3.connect(
                    self.db_path,
                    isolation_level=None,
                    check_same_thread=False,
                )
                self._conn.row_factory = sqlite3.Row

                self._conn.execute("PRAGMA foreign_keys = ON")

                if self.db_path != ":memory:":
                    self._conn.execute("PRAGMA journal_mode = WAL")

            except sqlite3.Error as e:
                raise DatabaseError(f"Cannot connect to database: {e}") from e

        return self._conn

    @staticmethod
    def _lastrowid(cursor: sqlite3.Cursor) -> int:
        """Extract lastrowid from cursor (always set after INSERT in SQLite)."""
        row_id = cursor.lastrowid
        if row_id is None:
            raise DatabaseError("INSERT did not report a row id")
        return row_id

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block atomically.

        Re-entrant: nested blocks join the outermost transaction, which
        commits on success and rolls back on any error.

        Raises:
            DatabaseError: If SQLite fails
        """
        with self._lock:
            conn = self._get_connection()
            outermost = self._tx_depth == 0
            if outermost:
                try:
                    conn.execute("BEGIN IMMEDIATE")
                except sqlite3.Error as e:
                    raise DatabaseError(f"Cannot begin transaction: {e}") from e
            self._tx_depth += 1
            try:
                yield conn
            except sqlite3.Error as e:
                self._tx_depth -= 1
                if outermost:
                    conn.rollback()
                raise DatabaseError(f"Transaction failed: {e}") from e
            except BaseException:
                self._tx_depth -= 1
                if outermost:
                    conn.rollback()
                raise
            else:
                self._tx_depth -= 1
                if outermost:
                    try:
                        conn.commit()
                    except sqlite3.Error as e:
                        conn.rollback()
                        raise DatabaseError(f"Cannot commit transaction: {e}") from e

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            conn = self._get_connection()
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise DatabaseError(f"Query failed: {e}") from e

    def _query_one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        rows = self._query(sql, params)
        return rows[0] if rows else None

    def initialize(self) -> None:
        """Create schema if not exists."""
        with self._lock:
            conn = self._get_connection()
            try:
                conn.executescript(self._get_schema_ddl())
                logger.info("Database initialized", extra={"context": {"path": self.db_path}})
            except sqlite3.Error as e:
                raise DatabaseError(f"Cannot initialize database: {e}") from e

    def _get_schema_ddl(self) -> str:
        """Return complete schema DDL."""
        return """
        -- Properties
        CREATE TABLE IF NOT EXISTS properties (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            address TEXT NOT NULL DEFAULT '',
            bedrooms TEXT,
            rent TEXT,
            available BOOLEAN DEFAULT 1,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        -- Leads
        CREATE TABLE IF NOT EXISTS leads (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL DEFAULT '',
            phone TEXT,
            status TEXT NOT NULL DEFAULT 'new',
            source TEXT,
            property_id INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (property_id) REFERENCES properties(id)
        );

        CREATE INDEX IF NOT EXISTS idx_leads_property ON leads(property_id);

        -- Interview Sessions (never deleted)
        CREATE TABLE IF NOT EXISTS interview_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            lead_id INTEGER NOT NULL,
            property_id INTEGER NOT NULL,
            session_type TEXT NOT NULL,
            asked_question_ids TEXT NOT NULL DEFAULT '[]',
            current_question_id TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            discovered_budget INTEGER,
            proposed_move_in_date DATE,
            interest_level INTEGER,
            preferred_response_method TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            completed_at TIMESTAMP,
            FOREIGN KEY (lead_id) REFERENCES leads(id),
            FOREIGN KEY (property_id) REFERENCES properties(id)
        );

        CREATE INDEX IF NOT EXISTS idx_sessions_lead ON interview_sessions(lead_id);
        CREATE INDEX IF NOT EXISTS idx_sessions_property ON interview_sessions(property_id);

        -- Responses (immutable)
        CREATE TABLE IF NOT EXISTS responses (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id INTEGER NOT NULL,
            question_id TEXT NOT NULL,
            question_text TEXT NOT NULL DEFAULT '',
            response_method TEXT NOT NULL,
            response_value TEXT NOT NULL,
            response_text TEXT,
            category TEXT NOT NULL DEFAULT 'general',
            confidence REAL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (session_id) REFERENCES interview_sessions(id)
        );

        CREATE INDEX IF NOT EXISTS idx_responses_session ON responses(session_id);
        CREATE INDEX IF NOT EXISTS idx_responses_category ON responses(category);

        -- Category Summaries
        CREATE TABLE IF NOT EXISTS category_summaries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            property_id INTEGER NOT NULL,
            category TEXT NOT NULL,
            summary_text TEXT NOT NULL DEFAULT '',
            is_edited BOOLEAN DEFAULT 0,
            edited_by TEXT,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (property_id) REFERENCES properties(id),
            UNIQUE(property_id, category)
        );

        -- Schedule Entries
        CREATE TABLE IF NOT EXISTS schedule_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            agent_id INTEGER NOT NULL,
            property_id INTEGER NOT NULL,
            start_at TEXT NOT NULL,
            end_at TEXT NOT NULL,
            source TEXT NOT NULL DEFAULT 'manual',
            status TEXT NOT NULL DEFAULT 'scheduled',
            note TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (property_id) REFERENCES properties(id)
        );

        CREATE INDEX IF NOT EXISTS idx_schedule_agent ON schedule_entries(agent_id, status);
        CREATE INDEX IF NOT EXISTS idx_schedule_property ON schedule_entries(property_id);

        -- Lead Interactions
        CREATE TABLE IF NOT EXISTS lead_interactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            lead_id INTEGER NOT NULL,
            interaction_type TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            metadata TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (lead_id) REFERENCES leads(id)
        );

        CREATE INDEX IF NOT EXISTS idx_interactions_lead ON lead_interactions(lead_id);

        -- Schema Version
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        INSERT OR IGNORE INTO schema_version (version) VALUES (1);
        """

    # =========================================================================
    # ROW-TO-MODEL HELPERS
    # =========================================================================

    def _row_to_property(self, row: sqlite3.Row) -> Property:
        return Property(
            id=row["id"],
            name=row["name"],
            address=row["address"],
            bedrooms=row["bedrooms"],
            rent=_to_decimal(row["rent"]),
            available=bool(row["available"]),
            created_at=_to_datetime(row["created_at"]),
        )

    def _row_to_lead(self, row: sqlite3.Row) -> Lead:
        return Lead(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            status=row["status"],
            source=row["source"],
            property_id=row["property_id"],
            created_at=_to_datetime(row["created_at"]),
        )

    def _row_to_session(self, row: sqlite3.Row) -> InterviewSession:
        """Convert a database row to an InterviewSession dataclass."""
        method_val = row["preferred_response_method"]
        return InterviewSession(
            id=row["id"],
            lead_id=row["lead_id"],
            property_id=row["property_id"],
            session_type=SessionType(row["session_type"]),
            asked_question_ids=json.loads(row["asked_question_ids"] or "[]"),
            current_question_id=row["current_question_id"],
            status=SessionStatus(row["status"]),
            discovered_budget=row["discovered_budget"],
            proposed_move_in_date=_to_date(row["proposed_move_in_date"]),
            interest_level=row["interest_level"],
            preferred_response_method=ResponseMethod(method_val) if method_val else None,
            created_at=_to_datetime(row["created_at"]),
            completed_at=_to_datetime(row["completed_at"]),
        )

    def _row_to_response(self, row: sqlite3.Row) -> Response:
        """Convert a database row to a Response dataclass."""
        return Response(
            id=row["id"],
            session_id=row["session_id"],
            question_id=row["question_id"],
            question_text=row["question_text"],
            response_method=ResponseMethod(row["response_method"]),
            response_value=row["response_value"],
            response_text=row["response_text"],
            category=FeedbackCategory(row["category"]),
            confidence=row["confidence"] or 0.0,
            created_at=_to_datetime(row["created_at"]),
        )

    def _row_to_summary(self, row: sqlite3.Row) -> CategorySummary:
        return CategorySummary(
            id=row["id"],
            property_id=row["property_id"],
            category=FeedbackCategory(row["category"]),
            summary_text=row["summary_text"],
            is_edited=bool(row["is_edited"]),
            edited_by=row["edited_by"],
            updated_at=_to_datetime(row["updated_at"]),
        )

    def _row_to_schedule_entry(self, row: sqlite3.Row) -> ScheduleEntry:
        """Convert a database row to a ScheduleEntry dataclass."""
        return ScheduleEntry(
            id=row["id"],
            agent_id=row["agent_id"],
            property_id=row["property_id"],
            start=_to_datetime(row["start_at"]),
            end=_to_datetime(row["end_at"]),
            source=ScheduleSource(row["source"]),
            status=EntryStatus(row["status"]),
            note=row["note"],
            created_at=_to_datetime(row["created_at"]),
        )

    def _row_to_interaction(self, row: sqlite3.Row) -> LeadInteraction:
        return LeadInteraction(
            id=row["id"],
            lead_id=row["lead_id"],
            interaction_type=InteractionType(row["interaction_type"]),
            description=row["description"],
            metadata=row["metadata"],
            created_at=_to_datetime(row["created_at"]),
        )

    # =========================================================================
    # PROPERTY & LEAD OPERATIONS
    # =========================================================================

    def create_property(self, prop: Property) -> int:
        """Create a property record.

        Returns:
            New property ID
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO properties (name, address, bedrooms, rent, available)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    prop.name,
                    prop.address,
                    prop.bedrooms,
                    str(prop.rent) if prop.rent is not None else None,
                    prop.available,
                ),
            )
            property_id = self._lastrowid(cursor)
        logger.info(
            "Property created",
            extra={"context": {"property_id": property_id, "name": prop.name}},
        )
        return property_id

    def get_property(self, property_id: int) -> Optional[Property]:
        """Get property by ID."""
        row = self._query_one("SELECT * FROM properties WHERE id = ?", (property_id,))
        if row is None:
            return None
        return self._row_to_property(row)

    def create_lead(self, lead: Lead) -> int:
        """Create a lead record.

        Returns:
            New lead ID
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO leads (name, email, phone, status, source, property_id)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (lead.name, lead.email, lead.phone, lead.status, lead.source, lead.property_id),
            )
            lead_id = self._lastrowid(cursor)
        logger.info("Lead created", extra={"context": {"lead_id": lead_id, "name": lead.name}})
        return lead_id

    def get_lead(self, lead_id: int) -> Optional[Lead]:
        """Get lead by ID."""
        row = self._query_one("SELECT * FROM leads WHERE id = ?", (lead_id,))
        if row is None:
            return None
        return self._row_to_lead(row)

    # =========================================================================
    # INTERVIEW SESSION OPERATIONS
    # =========================================================================

    def create_session(self, session: InterviewSession) -> int:
        """Create an interview session.

        Returns:
            New session ID
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO interview_sessions
                   (lead_id, property_id, session_type, asked_question_ids,
                    current_question_id, status, created_at, completed_at)
                   VALUES (?, ?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP), ?)""",
                (
                    session.lead_id,
                    session.property_id,
                    session.session_type.value,
                    json.dumps(session.asked_question_ids),
                    session.current_question_id,
                    session.status.value,
                    _iso(session.created_at),
                    _iso(session.completed_at),
                ),
            )
            return self._lastrowid(cursor)

    def get_session(self, session_id: int) -> Optional[InterviewSession]:
        """Get interview session by ID."""
        row = self._query_one("SELECT * FROM interview_sessions WHERE id = ?", (session_id,))
        if row is None:
            return None
        return self._row_to_session(row)

    def get_sessions(self, lead_id: Optional[int] = None) -> list[InterviewSession]:
        """List interview sessions, optionally for one lead, oldest first."""
        if lead_id is None:
            rows = self._query("SELECT * FROM interview_sessions ORDER BY id")
        else:
            rows = self._query(
                "SELECT * FROM interview_sessions WHERE lead_id = ? ORDER BY id", (lead_id,)
            )
        return [self._row_to_session(row) for row in rows]

    def update_session(self, session: InterviewSession) -> bool:
        """Update session progress and discoveries. Returns True if updated."""
        if session.id is None:
            return False
        with self.transaction() as conn:
            cursor = conn.execute(
                """UPDATE interview_sessions SET
                   asked_question_ids = ?, current_question_id = ?, status = ?,
                   discovered_budget = ?, proposed_move_in_date = ?,
                   interest_level = ?, preferred_response_method = ?,
                   completed_at = ?
                   WHERE id = ?""",
                (
                    json.dumps(session.asked_question_ids),
                    session.current_question_id,
                    session.status.value,
                    session.discovered_budget,
                    _iso(session.proposed_move_in_date),
                    session.interest_level,
                    (
                        session.preferred_response_method.value
                        if session.preferred_response_method
                        else None
                    ),
                    _iso(session.completed_at),
                    session.id,
                ),
            )
            return cursor.rowcount > 0

    # =========================================================================
    # RESPONSE OPERATIONS
    # =========================================================================

    def create_response(self, response: Response) -> int:
        """Record a response. Responses are never updated.

        Returns:
            New response ID
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO responses
                   (session_id, question_id, question_text, response_method,
                    response_value, response_text, category, confidence, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))""",
                (
                    response.session_id,
                    response.question_id,
                    response.question_text,
                    response.response_method.value,
                    response.response_value,
                    response.response_text,
                    response.category.value,
                    response.confidence,
                    _iso(response.created_at),
                ),
            )
            return self._lastrowid(cursor)

    def get_responses(self, session_id: int) -> list[Response]:
        """Get a session's responses, oldest first."""
        rows = self._query(
            "SELECT * FROM responses WHERE session_id = ? ORDER BY id", (session_id,)
        )
        return [self._row_to_response(row) for row in rows]

    def get_category_responses(
        self, property_id: int, category: FeedbackCategory
    ) -> list[Response]:
        """Get every response about a property in one category, oldest first."""
        rows = self._query(
            """SELECT r.* FROM responses r
               JOIN interview_sessions s ON r.session_id = s.id
               WHERE s.property_id = ? AND r.category = ?
               ORDER BY r.id""",
            (property_id, category.value),
        )
        return [self._row_to_response(row) for row in rows]

    # =========================================================================
    # CATEGORY SUMMARY OPERATIONS
    # =========================================================================

    def get_summary(
        self, property_id: int, category: FeedbackCategory, with_responses: bool = False
    ) -> Optional[CategorySummary]:
        """Get the summary for a (property, category) pair."""
        row = self._query_one(
            "SELECT * FROM category_summaries WHERE property_id = ? AND category = ?",
            (property_id, category.value),
        )
        if row is None:
            return None
        summary = self._row_to_summary(row)
        if with_responses:
            summary.responses = self.get_category_responses(property_id, category)
        return summary

    def get_summaries(self, property_id: int, with_responses: bool = True) -> list[CategorySummary]:
        """List a property's summaries in category order."""
        rows = self._query(
            "SELECT * FROM category_summaries WHERE property_id = ? ORDER BY id",
            (property_id,),
        )
        summaries = [self._row_to_summary(row) for row in rows]
        order = list(FeedbackCategory)
        summaries.sort(key=lambda s: order.index(s.category))
        if with_responses:
            for summary in summaries:
                summary.responses = self.get_category_responses(property_id, summary.category)
        return summaries

    def upsert_summary(self, summary: CategorySummary) -> int:
        """Insert or overwrite the summary for its (property, category) pair.

        Ownership rules live in the interview engine; this writes whatever
        it is given.

        Returns:
            Summary ID
        """
        with self.transaction() as conn:
            conn.execute(
                """INSERT INTO category_summaries
                   (property_id, category, summary_text, is_edited, edited_by, updated_at)
                   VALUES (?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))
                   ON CONFLICT(property_id, category) DO UPDATE SET
                       summary_text = excluded.summary_text,
                       is_edited = excluded.is_edited,
                       edited_by = excluded.edited_by,
                       updated_at = excluded.updated_at""",
                (
                    summary.property_id,
                    summary.category.value,
                    summary.summary_text,
                    summary.is_edited,
                    summary.edited_by,
                    _iso(summary.updated_at),
                ),
            )
            row = conn.execute(
                "SELECT id FROM category_summaries WHERE property_id = ? AND category = ?",
                (summary.property_id, summary.category.value),
            ).fetchone()
            return row["id"]

    # =========================================================================
    # SCHEDULE OPERATIONS
    # =========================================================================

    def create_schedule_entry(self, entry: ScheduleEntry) -> int:
        """Insert a schedule entry without checking for conflicts.

        New bookings go through keystone.engine.bookings.book_if_free(),
        which runs the overlap check and this insert as one unit.

        Returns:
            New entry ID
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO schedule_entries
                   (agent_id, property_id, start_at, end_at, source, status, note)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry.agent_id,
                    entry.property_id,
                    _iso(entry.start),
                    _iso(entry.end),
                    entry.source.value,
                    entry.status.value,
                    entry.note,
                ),
            )
            return self._lastrowid(cursor)

    def get_schedule_entry(self, entry_id: int) -> Optional[ScheduleEntry]:
        row = self._query_one("SELECT * FROM schedule_entries WHERE id = ?", (entry_id,))
        if row is None:
            return None
        return self._row_to_schedule_entry(row)

    def get_schedule_entries(
        self,
        agent_id: Optional[int] = None,
        property_id: Optional[int] = None,
        active_only: bool = True,
    ) -> list[ScheduleEntry]:
        """List schedule entries with filtering, ordered by start."""
        conditions: list[str] = []
        params: list[Any] = []

        if agent_id is not None:
            conditions.append("agent_id = ?")
            params.append(agent_id)

        if property_id is not None:
            conditions.append("property_id = ?")
            params.append(property_id)

        if active_only:
            conditions.append("status = ?")
            params.append(EntryStatus.SCHEDULED.value)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self._query(
            f"SELECT * FROM schedule_entries {where} ORDER BY start_at, id", tuple(params)
        )
        entries = [self._row_to_schedule_entry(row) for row in rows]
        # ISO text sorts wrongly across UTC offsets
        entries.sort(key=lambda e: (e.start, e.id or 0))
        return entries

    # =========================================================================
    # LEAD INTERACTION OPERATIONS
    # =========================================================================

    def create_interaction(self, interaction: LeadInteraction) -> int:
        """Log a lead interaction.

        Returns:
            New interaction ID
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO lead_interactions (lead_id, interaction_type, description, metadata)
                   VALUES (?, ?, ?, ?)""",
                (
                    interaction.lead_id,
                    interaction.interaction_type.value,
                    interaction.description,
                    interaction.metadata,
                ),
            )
            return self._lastrowid(cursor)

    def get_interactions(self, lead_id: int) -> list[LeadInteraction]:
        """Get a lead's interactions, oldest first."""
        rows = self._query(
            "SELECT * FROM lead_interactions WHERE lead_id = ? ORDER BY id", (lead_id,)
        )
        return [self._row_to_interaction(row) for row in rows]
