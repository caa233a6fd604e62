"""Tests for user profiles and plan quotas."""
from __future__ import annotations

import threading
from datetime import date

import pytest

from podcraft.core.config import QuotaConfig
from podcraft.storage.profiles import PLAN_FREE, PLAN_PRO, ProfileRepository, QuotaPolicy


class _Clock:
    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


@pytest.fixture
def clock() -> _Clock:
    return _Clock(date(2026, 3, 10))


@pytest.fixture
def profiles(tmp_path, clock) -> ProfileRepository:
    repo = ProfileRepository(tmp_path / "profiles.db", today=clock)
    repo.init_schema()
    return repo


class TestProfileRepository:

    def test_created_on_first_sight(self, profiles):
        profile = profiles.get_or_create("u1", "u1@example.com")

        assert profile.plan == PLAN_FREE
        assert profile.email == "u1@example.com"
        assert profile.daily_generation_count == 0
        assert profile.last_generation_date == "2026-03-10"

    def test_unknown_profile(self, profiles):
        assert profiles.get("nobody") is None

    def test_email_filled_in_later(self, profiles):
        profiles.get_or_create("u1")
        assert profiles.get_or_create("u1", "late@example.com").email == "late@example.com"

    def test_record_generation(self, profiles):
        profiles.get_or_create("u1")
        profile = profiles.record_generation("u1")

        assert profile.daily_generation_count == 1
        assert profile.generations_used_this_month == 1

    def test_daily_reset(self, profiles, clock):
        """A new day resets the daily count but keeps the month's total."""
        profiles.get_or_create("u1")
        profiles.record_generation("u1")

        clock.day = date(2026, 3, 11)
        profile = profiles.get("u1")

        assert profile.daily_generation_count == 0
        assert profile.generations_used_this_month == 1
        assert profile.last_generation_date == "2026-03-11"

    def test_monthly_reset(self, profiles, clock):
        profiles.get_or_create("u1")
        profiles.record_generation("u1")

        clock.day = date(2026, 4, 1)
        profile = profiles.get("u1")

        assert profile.daily_generation_count == 0
        assert profile.generations_used_this_month == 0

    def test_record_clone_and_set_plan(self, profiles):
        profiles.get_or_create("u1")
        assert profiles.record_clone("u1").clones_used == 1
        assert profiles.set_plan("u1", PLAN_PRO).is_pro

    def test_set_plan_creates_profile(self, profiles):
        assert profiles.set_plan("new-user", PLAN_PRO).plan == PLAN_PRO

    def test_reserve_until_limit(self, profiles):
        granted, profile = profiles.reserve_generation("u1", 2)
        assert granted and profile.daily_generation_count == 1
        assert profiles.reserve_generation("u1", 2)[0] is True

        granted, profile = profiles.reserve_generation("u1", 2)
        assert granted is False
        assert profile.daily_generation_count == 2
        assert profile.generations_used_this_month == 2

    def test_pro_reservations_ignore_limit(self, profiles):
        profiles.set_plan("u1", PLAN_PRO)
        for _ in range(3):
            assert profiles.reserve_generation("u1", 1)[0] is True
            assert profiles.reserve_clone("u1", 1)[0] is True

    def test_release_generation(self, profiles):
        _, reserved = profiles.reserve_generation("u1", 1)
        profile = profiles.release_generation("u1", reserved.last_generation_date)

        assert profile.daily_generation_count == 0
        assert profile.generations_used_this_month == 0
        assert profiles.reserve_generation("u1", 1)[0] is True

    def test_release_after_midnight_keeps_new_day(self, profiles, clock):
        """A refund for yesterday only gives back the month's count."""
        _, reserved = profiles.reserve_generation("u1", 1)
        clock.day = date(2026, 3, 11)
        profiles.reserve_generation("u1", 1)

        profile = profiles.release_generation("u1", reserved.last_generation_date)
        assert profile.daily_generation_count == 1
        assert profile.generations_used_this_month == 1

    def test_release_never_goes_negative(self, profiles):
        profiles.get_or_create("u1")
        profile = profiles.release_generation("u1", "2026-03-10")
        assert profile.daily_generation_count == 0
        profiles.release_clone("u1")
        assert profiles.get("u1").clones_used == 0

    def test_release_unknown_profile(self, profiles):
        assert profiles.release_generation("nobody", "2026-03-10") is None

    def test_reserve_and_release_clone(self, profiles):
        assert profiles.reserve_clone("u1", 1)[0] is True
        granted, profile = profiles.reserve_clone("u1", 1)
        assert granted is False
        assert profile.clones_used == 1

        profiles.release_clone("u1")
        assert profiles.get("u1").clones_used == 0


def _run_together(count: int, target) -> list:
    """Start `count` threads at once; return each call's result or exception."""
    barrier = threading.Barrier(count)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            outcome = target()
        except Exception as e:
            outcome = e
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


class TestConcurrentAccess:

    def test_first_sight_from_many_threads(self, profiles):
        results = _run_together(8, lambda: profiles.get_or_create("newuser", "new@example.com"))

        assert len(results) == 8
        assert all(not isinstance(r, Exception) for r in results)
        assert {r.id for r in results} == {"newuser"}
        assert profiles.get("newuser").email == "new@example.com"

    def test_reservations_never_exceed_limit(self, profiles):
        results = _run_together(8, lambda: profiles.reserve_generation("u1", 3)[0])

        assert sorted(results) == [False] * 5 + [True] * 3
        assert profiles.get("u1").daily_generation_count == 3

    def test_clone_reservations_never_exceed_limit(self, profiles):
        results = _run_together(6, lambda: profiles.reserve_clone("u1", 1)[0])

        assert results.count(True) == 1
        assert profiles.get("u1").clones_used == 1


class TestQuotaPolicy:

    def _policy(self, profiles, **kwargs) -> QuotaPolicy:
        config = QuotaConfig(**{"enabled": True, "free_daily_limit": 1, "free_clone_limit": 1, **kwargs})
        return QuotaPolicy(profiles, config)

    def test_free_daily_limit(self, profiles):
        policy = self._policy(profiles)
        profile = profiles.get_or_create("u1")
        assert policy.can_generate(profile)

        policy.record_generation("u1")
        assert not policy.can_generate(profiles.get("u1"))
        assert policy.daily_limit(profile) == 1

    def test_limit_resets_next_day(self, profiles, clock):
        policy = self._policy(profiles)
        profiles.get_or_create("u1")
        policy.record_generation("u1")

        clock.day = date(2026, 3, 11)
        assert policy.can_generate(profiles.get("u1"))

    def test_clone_limit(self, profiles):
        policy = self._policy(profiles)
        profiles.get_or_create("u1")
        assert policy.can_clone(profiles.get("u1"))

        policy.record_clone("u1")
        assert not policy.can_clone(profiles.get("u1"))

    def test_pro_is_unlimited(self, profiles):
        policy = self._policy(profiles)
        profiles.get_or_create("u1")
        for _ in range(3):
            policy.record_generation("u1")
            policy.record_clone("u1")

        profile = policy.upgrade("u1")
        assert profile.is_pro
        assert policy.can_generate(profile)
        assert policy.can_clone(profile)
        assert policy.daily_limit(profile) is None

    def test_upgrade_creates_profile(self, profiles):
        policy = self._policy(profiles)
        assert policy.upgrade("new-user").plan == PLAN_PRO

    def test_disabled_allows_everything(self, profiles):
        policy = self._policy(profiles, enabled=False)
        profile = profiles.get_or_create("u1")

        assert policy.enabled is False
        assert policy.record_generation("u1") is None
        assert policy.record_clone("u1") is None
        assert policy.can_generate(profile)
        assert policy.can_clone(profile)

    def test_reserve_and_release_through_policy(self, profiles):
        policy = self._policy(profiles)
        granted, reserved = policy.reserve_generation("u1")
        assert granted is True

        assert policy.reserve_generation("u1")[0] is False
        policy.release_generation(reserved)
        assert policy.can_generate(profiles.get("u1"))

    def test_disabled_reserves_nothing(self, profiles):
        policy = self._policy(profiles, enabled=False)

        assert policy.reserve_generation("u1") == (True, None)
        assert policy.reserve_clone("u1") == (True, None)
        policy.release_generation(None)
        policy.release_clone(None)
        assert profiles.get("u1") is None

    @pytest.mark.parametrize("duration,allowed", [
        ("3 minutes", True),
        ("1 hour", True),
        ("2 hours", False),
        ("  2   HOURS ", False),
    ])
    def test_pro_only_durations(self, profiles, duration, allowed):
        policy = self._policy(profiles)
        profile = profiles.get_or_create("u1")

        assert policy.allows_duration(profile, duration) is allowed
        assert policy.allows_duration(policy.upgrade("u1"), duration) is True

    def test_custom_pro_durations(self, profiles):
        policy = self._policy(profiles, pro_durations=("1 hour", "2 hours"))
        assert not policy.allows_duration(profiles.get_or_create("u1"), "1 hour")
