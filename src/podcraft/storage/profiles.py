"""
User Profiles and Plan Quotas.

Profiles live in the same SQLite database as the speaker library. A user
is identified by an opaque id supplied by the caller (the X-User-Id header
in the API); profiles are created on first sight with the free plan.

Plans:
    free  free_daily_limit generations per UTC day, free_clone_limit
          voice clones in total
    pro   unlimited, and the only plan that may ask for the target
          durations in quota.pro_durations ("2 hours")

Reservations:
    A generation or clone is counted before the work starts and given back
    if it fails. The check and the increment are one UPDATE, so concurrent
    requests cannot overrun a limit.

Daily Reset:
    daily_generation_count belongs to last_generation_date. Whenever a
    profile is read on a later day the count is reset to 0 and the date
    moved to today; generations_used_this_month resets when the month
    changes.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Tuple

from podcraft.core.config import QuotaConfig
from podcraft.core.logging import get_logger, info, verbose
from podcraft.storage.db import connect

_LOG = get_logger("podcraft.profiles")

PLAN_FREE = "free"
PLAN_PRO = "pro"

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY NOT NULL,
    email TEXT,
    plan TEXT DEFAULT 'free',
    clones_used INTEGER DEFAULT 0,
    generations_used_this_month INTEGER DEFAULT 0,
    daily_generation_count INTEGER DEFAULT 0,
    last_generation_date TEXT,
    created_at TEXT NOT NULL
)
"""


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class Profile:
    id: str
    email: Optional[str]
    plan: str
    clones_used: int
    generations_used_this_month: int
    daily_generation_count: int
    last_generation_date: str
    created_at: str

    @property
    def is_pro(self) -> bool:
        return self.plan == PLAN_PRO

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "plan": self.plan,
            "clones_used": self.clones_used,
            "generations_used_this_month": self.generations_used_this_month,
            "daily_generation_count": self.daily_generation_count,
            "last_generation_date": self.last_generation_date,
            "created_at": self.created_at,
        }


def _from_row(row: sqlite3.Row) -> Profile:
    return Profile(
        id=row["id"],
        email=row["email"],
        plan=row["plan"] or PLAN_FREE,
        clones_used=int(row["clones_used"] or 0),
        generations_used_this_month=int(row["generations_used_this_month"] or 0),
        daily_generation_count=int(row["daily_generation_count"] or 0),
        last_generation_date=row["last_generation_date"] or "",
        created_at=row["created_at"],
    )


class ProfileRepository:
    """
    Profile storage with the daily reset applied on every read.

    Counters only move inside BEGIN IMMEDIATE transactions, and a
    reservation is a single conditional UPDATE, so two requests racing for
    a user's last free generation cannot both get it.

    Args:
        db_path: SQLite database file.
        today: Returns the current UTC date; injectable for tests.
    """

    def __init__(self, db_path: str | Path, today: Callable[[], date] = utc_today):
        self._db_path = Path(db_path)
        self._today = today

    def init_schema(self) -> None:
        with connect(self._db_path) as conn:
            conn.execute(_CREATE_TABLE)

    def get(self, user_id: str) -> Optional[Profile]:
        with connect(self._db_path, immediate=True) as conn:
            return self._get(conn, user_id)

    def get_or_create(self, user_id: str, email: Optional[str] = None) -> Profile:
        """Fetch a profile, creating a free one on first sight."""
        with connect(self._db_path, immediate=True) as conn:
            return self._ensure(conn, user_id, email)

    def reserve_generation(self, user_id: str, limit: Optional[int]) -> Tuple[bool, Profile]:
        """
        Count one generation if the user is under `limit` for today.

        Pro users and limit=None always succeed. Returns (granted, profile
        after the attempt); the profile's last_generation_date is the day
        to pass to release_generation.
        """
        with connect(self._db_path, immediate=True) as conn:
            self._ensure(conn, user_id)
            cursor = conn.execute(
                "UPDATE profiles SET daily_generation_count = daily_generation_count + 1, "
                "generations_used_this_month = generations_used_this_month + 1 "
                "WHERE id = ? AND (plan = ? OR ? IS NULL OR daily_generation_count < ?)",
                (user_id, PLAN_PRO, limit, limit),
            )
            granted = cursor.rowcount == 1
            profile = self._ensure(conn, user_id)
        verbose(
            _LOG, "generation_reserved" if granted else "generation_refused",
            user_id=user_id, daily=profile.daily_generation_count, limit=limit,
        )
        return granted, profile

    def release_generation(self, user_id: str, day: str) -> Optional[Profile]:
        """
        Give back a generation reserved on `day` (ISO date).

        The daily count is only touched while it still belongs to that day,
        and the monthly one while the month is unchanged.
        """
        with connect(self._db_path, immediate=True) as conn:
            if self._get(conn, user_id) is None:
                return None
            conn.execute(
                "UPDATE profiles SET daily_generation_count = MAX(daily_generation_count - 1, 0) "
                "WHERE id = ? AND last_generation_date = ?",
                (user_id, day),
            )
            conn.execute(
                "UPDATE profiles SET generations_used_this_month = MAX(generations_used_this_month - 1, 0) "
                "WHERE id = ? AND substr(last_generation_date, 1, 7) = substr(?, 1, 7)",
                (user_id, day),
            )
            profile = self._get(conn, user_id)
        verbose(_LOG, "generation_released", user_id=user_id, day=day)
        return profile

    def record_generation(self, user_id: str) -> Profile:
        """Count a generation regardless of limits."""
        return self.reserve_generation(user_id, None)[1]

    def reserve_clone(self, user_id: str, limit: Optional[int]) -> Tuple[bool, Profile]:
        """Count one voice clone if the user has fewer than `limit`; see reserve_generation."""
        with connect(self._db_path, immediate=True) as conn:
            self._ensure(conn, user_id)
            cursor = conn.execute(
                "UPDATE profiles SET clones_used = clones_used + 1 "
                "WHERE id = ? AND (plan = ? OR ? IS NULL OR clones_used < ?)",
                (user_id, PLAN_PRO, limit, limit),
            )
            granted = cursor.rowcount == 1
            profile = self._ensure(conn, user_id)
        return granted, profile

    def release_clone(self, user_id: str) -> None:
        with connect(self._db_path, immediate=True) as conn:
            conn.execute(
                "UPDATE profiles SET clones_used = MAX(clones_used - 1, 0) WHERE id = ?",
                (user_id,),
            )

    def record_clone(self, user_id: str) -> Profile:
        return self.reserve_clone(user_id, None)[1]

    def set_plan(self, user_id: str, plan: str) -> Profile:
        """Change a user's plan, creating the profile if needed."""
        with connect(self._db_path, immediate=True) as conn:
            self._ensure(conn, user_id)
            conn.execute("UPDATE profiles SET plan = ? WHERE id = ?", (plan, user_id))
            profile = self._ensure(conn, user_id)
        info(_LOG, "plan_changed", user_id=user_id, plan=plan)
        return profile

    def _ensure(self, conn: sqlite3.Connection, user_id: str, email: Optional[str] = None) -> Profile:
        cursor = conn.execute(
            "INSERT OR IGNORE INTO profiles (id, email, plan, last_generation_date, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (user_id, email, PLAN_FREE, self._today().isoformat(), datetime.now(timezone.utc).isoformat()),
        )
        if cursor.rowcount == 1:
            info(_LOG, "profile_created", user_id=user_id)
        elif email:
            conn.execute(
                "UPDATE profiles SET email = ? WHERE id = ? AND (email IS NULL OR email = '')",
                (email, user_id),
            )
        row = conn.execute("SELECT * FROM profiles WHERE id = ?", (user_id,)).fetchone()
        return self._roll_over(conn, _from_row(row))

    def _get(self, conn: sqlite3.Connection, user_id: str) -> Optional[Profile]:
        row = conn.execute("SELECT * FROM profiles WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._roll_over(conn, _from_row(row))

    def _roll_over(self, conn: sqlite3.Connection, profile: Profile) -> Profile:
        # daily count belongs to last_generation_date; monthly total to its month
        today = self._today().isoformat()
        if profile.last_generation_date != today:
            same_month = profile.last_generation_date[:7] == today[:7]
            monthly = profile.generations_used_this_month if same_month else 0
            conn.execute(
                "UPDATE profiles SET daily_generation_count = 0, generations_used_this_month = ?, "
                "last_generation_date = ? WHERE id = ?",
                (monthly, today, profile.id),
            )
            profile.daily_generation_count = 0
            profile.generations_used_this_month = monthly
            profile.last_generation_date = today
        return profile


def _normalize_duration(duration: str) -> str:
    return " ".join(duration.lower().split())


class QuotaPolicy:
    """
    Plan limits on top of ProfileRepository.

    When quotas are disabled every check passes and nothing is recorded.
    """

    def __init__(self, profiles: ProfileRepository, config: QuotaConfig):
        self._profiles = profiles
        self._config = config
        self._pro_durations = {_normalize_duration(d) for d in config.pro_durations}

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def daily_limit(self, profile: Profile) -> Optional[int]:
        """Generations allowed per day; None means unlimited."""
        return None if profile.is_pro else self._config.free_daily_limit

    def clone_limit(self, profile: Profile) -> Optional[int]:
        return None if profile.is_pro else self._config.free_clone_limit

    def can_generate(self, profile: Profile) -> bool:
        if not self._config.enabled or profile.is_pro:
            return True
        return profile.daily_generation_count < self._config.free_daily_limit

    def can_clone(self, profile: Profile) -> bool:
        if not self._config.enabled or profile.is_pro:
            return True
        return profile.clones_used < self._config.free_clone_limit

    def allows_duration(self, profile: Profile, duration: str) -> bool:
        """Whether the plan may ask for this target duration ("2 hours" is Pro-only by default)."""
        if not self._config.enabled or profile.is_pro:
            return True
        return _normalize_duration(duration) not in self._pro_durations

    def reserve_generation(self, user_id: str) -> Tuple[bool, Optional[Profile]]:
        """
        Take one generation from today's allowance.

        Returns (granted, profile); (True, None) when quotas are disabled.
        A granted reservation is given back with release_generation if the
        generation fails.
        """
        if not self._config.enabled:
            return True, None
        return self._profiles.reserve_generation(user_id, self._config.free_daily_limit)

    def release_generation(self, reserved: Optional[Profile]) -> None:
        if reserved is None or not self._config.enabled:
            return
        self._profiles.release_generation(reserved.id, reserved.last_generation_date)

    def reserve_clone(self, user_id: str) -> Tuple[bool, Optional[Profile]]:
        if not self._config.enabled:
            return True, None
        return self._profiles.reserve_clone(user_id, self._config.free_clone_limit)

    def release_clone(self, reserved: Optional[Profile]) -> None:
        if reserved is None or not self._config.enabled:
            return
        self._profiles.release_clone(reserved.id)

    def record_generation(self, user_id: str) -> Optional[Profile]:
        if not self._config.enabled:
            return None
        return self._profiles.record_generation(user_id)

    def record_clone(self, user_id: str) -> Optional[Profile]:
        if not self._config.enabled:
            return None
        return self._profiles.record_clone(user_id)

    def upgrade(self, user_id: str) -> Profile:
        """Move a user to the pro plan (creating the profile if needed)."""
        return self._profiles.set_plan(user_id, PLAN_PRO)
