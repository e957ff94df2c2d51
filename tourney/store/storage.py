"""
Storage backend for tournament data.

Uses SQLite for teams, rounds, judges, rubric criteria and score
submissions, plus a small document table for the singleton documents
(debate state, draw state, settings, bracket, live tie-break). Every write
notifies the subscribers of the collection it touched.
"""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from tourney.exceptions import (
    CriterionNotFoundError,
    DuplicateSubmissionError,
    RoundHasScoresError,
    RoundNotFoundError,
    TournamentStateError,
)
from tourney.tournament.models import Judge, Round, RubricCriterion, ScoreSubmission, Team
from tourney.utils.constants import (
    BYE_MARKER,
    JUDGE_ACTIVE,
    JUDGES,
    ROUNDS,
    RUBRIC,
    SCHOOLS,
    SCORES,
    SETTINGS,
    STATUS_PENDING,
    STATUS_VERIFIED,
    SYSTEM_JUDGE_ID,
)

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, Any], None]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TournamentStorage:
    """
    Handles persistent storage of tournament data.

    Uses SQLite tables in the tourney.db database. Subscribers registered
    with subscribe() are called after each committed write with the
    collection name and the new payload.
    """

    def __init__(self, data_dir: str = "data"):
        """
        Initialize storage backend.

        Args:
            data_dir: Base directory for data storage
        """
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / "tourney.db"
        self._subscribers: Dict[str, List[Subscriber]] = {}

        # Ensure directory exists
        self.data_dir.mkdir(parents=True, exist_ok=True)

        # Initialize database tables
        self._init_db()

    def _init_db(self):
        """Initialize SQLite database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS teams (
                    team_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    school_name TEXT,
                    status TEXT DEFAULT 'Pendiente',
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS rounds (
                    round_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    phase TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS judges (
                    judge_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    status TEXT DEFAULT 'active'
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS scores (
                    score_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    match_id TEXT NOT NULL,
                    judge_id TEXT NOT NULL,
                    judge_name TEXT,
                    teams TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS rubric (
                    criterion_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            # Documents keyed by (collection, doc_id), JSON payload
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, doc_id)
                )
            """)

            # At most one system entry (bye or tie-break) per match id
            conn.execute(f"""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_scores_system_match
                ON scores(match_id) WHERE judge_id = '{SYSTEM_JUDGE_ID}'
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_scores_match ON scores(match_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_rounds_phase ON rounds(phase)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_teams_status ON teams(status)")

            conn.commit()

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, collection: str, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for writes to a collection.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.setdefault(collection, []).append(callback)

        def unsubscribe():
            callbacks = self._subscribers.get(collection, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _notify(self, collection: str, payload: Any):
        for callback in list(self._subscribers.get(collection, [])):
            callback(collection, payload)

    # =========================================================================
    # Teams
    # =========================================================================

    def add_team(
        self,
        name: str,
        school_name: str = "",
        status: str = STATUS_PENDING,
        team_id: Optional[str] = None
    ) -> Team:
        """Register a team."""
        team = Team(
            team_id=team_id or uuid.uuid4().hex,
            name=name,
            school_name=school_name,
            status=status,
        )
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO teams (team_id, name, school_name, status, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (team.team_id, team.name, team.school_name, team.status, utc_now()))
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise TournamentStateError(f"Team name already registered: {name}") from e

        self._notify(SCHOOLS, self.list_teams())
        return team

    def update_team(self, team_id: str, name: Optional[str] = None, status: Optional[str] = None):
        """Rename a team or change its verification status."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                if name is not None:
                    conn.execute("UPDATE teams SET name = ? WHERE team_id = ?", (name, team_id))
                if status is not None:
                    conn.execute("UPDATE teams SET status = ? WHERE team_id = ?", (status, team_id))
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise TournamentStateError(f"Team name already registered: {name}") from e
        self._notify(SCHOOLS, self.list_teams())

    def list_teams(self, verified_only: bool = False) -> List[Team]:
        """List teams in registration order."""
        query = "SELECT * FROM teams"
        params: tuple = ()
        if verified_only:
            query += " WHERE status = ?"
            params = (STATUS_VERIFIED,)
        query += " ORDER BY created_at, rowid"

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(query, params)
            return [
                Team(
                    team_id=r['team_id'],
                    name=r['name'],
                    school_name=r['school_name'] or '',
                    status=r['status'] or STATUS_PENDING,
                )
                for r in cursor.fetchall()
            ]

    def load_roster(self) -> List[str]:
        """
        Names of the teams taking part.

        Once registrations are closed the locked-in list is authoritative,
        otherwise every verified team.
        """
        settings = self.get_document(*SETTINGS) or {}
        if settings.get('registrationsClosed') and settings.get('lockedInTeams'):
            return [t['name'] for t in settings['lockedInTeams']]
        return [t.name for t in self.list_teams(verified_only=True)]

    # =========================================================================
    # Rounds
    # =========================================================================

    def create_round(self, name: str, phase: str) -> Round:
        """Create a round in a phase."""
        round_ = Round(round_id=uuid.uuid4().hex, name=name, phase=phase, created_at=utc_now())
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO rounds (round_id, name, phase, created_at)
                    VALUES (?, ?, ?, ?)
                """, (round_.round_id, round_.name, round_.phase, round_.created_at))
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise TournamentStateError(f"Round already exists: {name}") from e

        self._notify(ROUNDS, self.list_rounds())
        return round_

    def delete_round(self, name: str):
        """
        Delete a round that has no score submissions yet.

        Raises:
            RoundNotFoundError: If no round has that name
            RoundHasScoresError: If any submission references the round
        """
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("SELECT round_id FROM rounds WHERE name = ?", (name,)).fetchone()
            if not row:
                raise RoundNotFoundError(f"Round not found: {name}")

            count = conn.execute(
                "SELECT COUNT(*) FROM scores WHERE match_id = ? OR substr(match_id, 1, ?) = ?",
                (name, len(name + BYE_MARKER), name + BYE_MARKER)
            ).fetchone()[0]
            if count:
                raise RoundHasScoresError(f"Round {name} already has {count} score submission(s)")

            conn.execute("DELETE FROM rounds WHERE name = ?", (name,))
            conn.commit()

        self._notify(ROUNDS, self.list_rounds())

    def get_round(self, name: str) -> Optional[Round]:
        for r in self.list_rounds():
            if r.name == name:
                return r
        return None

    def list_rounds(self, phase: Optional[str] = None) -> List[Round]:
        """List rounds in creation order."""
        query = "SELECT * FROM rounds"
        params: tuple = ()
        if phase is not None:
            query += " WHERE phase = ?"
            params = (phase,)
        query += " ORDER BY created_at, rowid"

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(query, params)
            return [
                Round(
                    round_id=r['round_id'],
                    name=r['name'],
                    phase=r['phase'],
                    created_at=r['created_at'],
                )
                for r in cursor.fetchall()
            ]

    # =========================================================================
    # Judges
    # =========================================================================

    def add_judge(self, name: str, judge_id: Optional[str] = None, status: str = JUDGE_ACTIVE) -> Judge:
        judge = Judge(judge_id=judge_id or uuid.uuid4().hex, name=name, status=status)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT OR REPLACE INTO judges (judge_id, name, status)
                VALUES (?, ?, ?)
            """, (judge.judge_id, judge.name, judge.status))
            conn.commit()
        self._notify(JUDGES, self.list_judges())
        return judge

    def list_judges(self) -> List[Judge]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute("SELECT * FROM judges ORDER BY rowid")
            return [
                Judge(judge_id=r['judge_id'], name=r['name'], status=r['status'] or JUDGE_ACTIVE)
                for r in cursor.fetchall()
            ]

    # =========================================================================
    # Rubric
    # =========================================================================

    def add_criterion(
        self,
        name: str,
        description: str = "",
        criterion_id: Optional[str] = None
    ) -> RubricCriterion:
        """Add a rubric criterion at the end of the rubric."""
        criterion = RubricCriterion(
            criterion_id=criterion_id or uuid.uuid4().hex,
            name=name,
            description=description,
            created_at=utc_now(),
        )
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO rubric (criterion_id, name, description, created_at)
                    VALUES (?, ?, ?, ?)
                """, (criterion.criterion_id, criterion.name, criterion.description, criterion.created_at))
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise TournamentStateError(f"Criterion already exists: {criterion.criterion_id}") from e

        self._notify(RUBRIC, self.list_rubric())
        return criterion

    def update_criterion(
        self,
        criterion_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> RubricCriterion:
        """
        Rename a criterion or change its description.

        Raises:
            CriterionNotFoundError: If no criterion has that id
        """
        with sqlite3.connect(self.db_path) as conn:
            if name is not None:
                conn.execute(
                    "UPDATE rubric SET name = ? WHERE criterion_id = ?", (name, criterion_id)
                )
            if description is not None:
                conn.execute(
                    "UPDATE rubric SET description = ? WHERE criterion_id = ?", (description, criterion_id)
                )
            conn.commit()

        criterion = next((c for c in self.list_rubric() if c.criterion_id == criterion_id), None)
        if criterion is None:
            raise CriterionNotFoundError(f"Criterion not found: {criterion_id}")
        self._notify(RUBRIC, self.list_rubric())
        return criterion

    def delete_criterion(self, criterion_id: str):
        """
        Remove a criterion. Stored submissions keep the scores they had.

        Raises:
            CriterionNotFoundError: If no criterion has that id
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM rubric WHERE criterion_id = ?", (criterion_id,))
            conn.commit()
            if cursor.rowcount == 0:
                raise CriterionNotFoundError(f"Criterion not found: {criterion_id}")
        self._notify(RUBRIC, self.list_rubric())

    def list_rubric(self) -> List[RubricCriterion]:
        """Rubric criteria in creation order."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute("SELECT * FROM rubric ORDER BY created_at, rowid")
            return [
                RubricCriterion(
                    criterion_id=r['criterion_id'],
                    name=r['name'],
                    description=r['description'] or '',
                    created_at=r['created_at'],
                )
                for r in cursor.fetchall()
            ]

    # =========================================================================
    # Score submissions
    # =========================================================================

    def add_submission(self, submission: ScoreSubmission) -> ScoreSubmission:
        """
        Append a score submission.

        System submissions go through a unique index on the match id, so a
        second bye or tie-break entry for the same match is rejected even
        when two writers race.

        Raises:
            DuplicateSubmissionError: If a system entry already exists for the match
        """
        created_at = submission.created_at or utc_now()
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute("""
                    INSERT INTO scores (match_id, judge_id, judge_name, teams, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    submission.match_id,
                    submission.judge_id,
                    submission.judge_name,
                    json.dumps([t.to_dict() for t in submission.teams]),
                    created_at
                ))
                conn.commit()
                score_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DuplicateSubmissionError(submission.match_id) from e

        stored = ScoreSubmission(
            match_id=submission.match_id,
            judge_id=submission.judge_id,
            teams=submission.teams,
            judge_name=submission.judge_name,
            created_at=created_at,
            submission_id=score_id,
        )
        logger.debug("Stored %s submission %s for %s", stored.kind.value, score_id, stored.match_id)
        self._notify(SCORES, stored)
        return stored

    def has_system_submission(self, match_id: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM scores WHERE match_id = ? AND judge_id = ?",
                (match_id, SYSTEM_JUDGE_ID)
            ).fetchone()
            return row is not None

    def list_submissions(
        self,
        round_name: Optional[str] = None,
        judge_id: Optional[str] = None
    ) -> List[ScoreSubmission]:
        """
        List score submissions in arrival order.

        Args:
            round_name: Only submissions of this round (including its byes)
            judge_id: Only submissions by this judge
        """
        query = "SELECT * FROM scores WHERE 1=1"
        params: list = []
        if round_name is not None:
            prefix = round_name + BYE_MARKER
            query += " AND (match_id = ? OR substr(match_id, 1, ?) = ?)"
            params.extend([round_name, len(prefix), prefix])
        if judge_id is not None:
            query += " AND judge_id = ?"
            params.append(judge_id)
        query += " ORDER BY created_at, score_id"

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(query, params)
            return [
                ScoreSubmission.from_record({
                    'id': r['score_id'],
                    'matchId': r['match_id'],
                    'judgeId': r['judge_id'],
                    'judgeName': r['judge_name'],
                    'teams': json.loads(r['teams']),
                    'createdAt': r['created_at'],
                })
                for r in cursor.fetchall()
            ]

    # =========================================================================
    # Documents
    # =========================================================================

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Load a document, or None if it does not exist."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id)
            ).fetchone()
            if not row:
                return None
            return json.loads(row[0])

    def set_document(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False
    ) -> Dict[str, Any]:
        """
        Write a document.

        Args:
            collection: Collection name
            doc_id: Document id
            data: Fields to write
            merge: Keep existing fields not present in data

        Returns:
            The document as stored
        """
        if merge:
            stored = self.get_document(collection, doc_id) or {}
            stored.update(data)
        else:
            stored = dict(data)

        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT OR REPLACE INTO documents (collection, doc_id, data, updated_at)
                VALUES (?, ?, ?, ?)
            """, (collection, doc_id, json.dumps(stored, ensure_ascii=False), utc_now()))
            conn.commit()

        self._notify(collection, stored)
        return stored

    def delete_document(self, collection: str, doc_id: str):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id)
            )
            conn.commit()
        self._notify(collection, None)

