"""SQLite-backed persistence for student scores, prompt history and settings."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import aiosqlite
from pydantic import BaseModel

from ...config import MAX_PROMPTS_PER_STUDENT
from .models import utc_now

PROMPT_TEMPLATE_KEY = "prompt_template"


class StudentRecord(BaseModel):
    id: int
    email: str
    highest_score: int = 0
    prompt_count: int = 0
    last_active: Optional[str] = None
    created_at: Optional[str] = None


class PromptVersionRecord(BaseModel):
    id: int
    student_id: int
    version_number: int
    text: str
    score: Optional[int] = None
    created_at: Optional[str] = None


class ScoreStore:
    """Async SQLite store for everything that outlives the in-memory queue."""

    def __init__(self, db_path: str = "moderation_lab.db") -> None:
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS students (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                highest_score INTEGER DEFAULT 0,
                prompt_count INTEGER DEFAULT 0,
                last_active TEXT,
                created_at TEXT
            );
            CREATE TABLE IF NOT EXISTS prompt_versions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                student_id INTEGER NOT NULL,
                version_number INTEGER NOT NULL,
                text TEXT NOT NULL,
                score INTEGER,
                created_at TEXT
            );
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT
            );
        """)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.initialize()
        return self._db

    # ── Students ─────────────────────────────────────────────────────

    async def get_student(self, email: str) -> Optional[StudentRecord]:
        db = await self._conn()
        async with db.execute("SELECT * FROM students WHERE email = ?", (email,)) as cur:
            row = await cur.fetchone()
            desc = cur.description
        if row is None:
            return None
        return StudentRecord(**self._row_to_dict(row, desc))

    async def get_or_create_student(self, email: str) -> StudentRecord:
        """Return the student for *email*, creating it on first sight."""
        db = await self._conn()
        now = utc_now()
        await db.execute(
            "INSERT INTO students (email, last_active, created_at) VALUES (?,?,?) "
            "ON CONFLICT(email) DO UPDATE SET last_active = excluded.last_active",
            (email, now, now),
        )
        await db.commit()
        return await self.get_student(email)

    async def list_students(self, limit: int = 100) -> List[StudentRecord]:
        """Students ordered by best score (leaderboard order)."""
        db = await self._conn()
        async with db.execute(
            "SELECT * FROM students ORDER BY highest_score DESC, last_active DESC LIMIT ?",
            (limit,),
        ) as cur:
            rows = await cur.fetchall()
            desc = cur.description
        return [StudentRecord(**self._row_to_dict(r, desc)) for r in rows]

    async def update_student_score(self, email: str, score: int) -> bool:
        """Raise the student's best score; returns True if it changed."""
        student = await self.get_student(email)
        if student is None or score <= student.highest_score:
            return False
        db = await self._conn()
        await db.execute(
            "UPDATE students SET highest_score = ?, last_active = ? WHERE email = ?",
            (score, utc_now(), email),
        )
        await db.commit()
        return True

    async def increment_prompt_count(self, email: str) -> None:
        db = await self._conn()
        await db.execute(
            "UPDATE students SET prompt_count = prompt_count + 1, last_active = ? WHERE email = ?",
            (utc_now(), email),
        )
        await db.commit()

    # ── Prompt versions ──────────────────────────────────────────────

    async def get_prompt_versions(self, student_id: int) -> List[PromptVersionRecord]:
        db = await self._conn()
        async with db.execute(
            "SELECT * FROM prompt_versions WHERE student_id = ? ORDER BY version_number",
            (student_id,),
        ) as cur:
            rows = await cur.fetchall()
            desc = cur.description
        return [PromptVersionRecord(**self._row_to_dict(r, desc)) for r in rows]

    async def save_prompt_version(
        self,
        student_id: int,
        text: str,
        score: Optional[int],
    ) -> Optional[PromptVersionRecord]:
        """Append the next prompt version; returns None once the cap is hit."""
        versions = await self.get_prompt_versions(student_id)
        if len(versions) >= MAX_PROMPTS_PER_STUDENT:
            return None
        version_number = versions[-1].version_number + 1 if versions else 1
        db = await self._conn()
        cur = await db.execute(
            "INSERT INTO prompt_versions (student_id, version_number, text, score, created_at) "
            "VALUES (?,?,?,?,?)",
            (student_id, version_number, text, score, utc_now()),
        )
        await db.commit()
        return PromptVersionRecord(
            id=cur.lastrowid,
            student_id=student_id,
            version_number=version_number,
            text=text,
            score=score,
        )

    # ── Settings ─────────────────────────────────────────────────────

    async def get_setting(self, key: str) -> Optional[str]:
        db = await self._conn()
        async with db.execute("SELECT value FROM settings WHERE key = ?", (key,)) as cur:
            row = await cur.fetchone()
        return row[0] if row else None

    async def set_setting(self, key: str, value: str) -> None:
        db = await self._conn()
        await db.execute(
            "INSERT INTO settings (key, value, updated_at) VALUES (?,?,?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
            (key, value, utc_now()),
        )
        await db.commit()

    async def get_prompt_template(self) -> Optional[str]:
        return await self.get_setting(PROMPT_TEMPLATE_KEY)

    async def set_prompt_template(self, template: str) -> None:
        await self.set_setting(PROMPT_TEMPLATE_KEY, template)

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _row_to_dict(row, description) -> Dict[str, Any]:
        cols = [d[0] for d in description]
        return dict(zip(cols, row))
