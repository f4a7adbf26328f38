"""
Tests for the Redis job queue.

The queue runs against fakeredis with Lua support, so enqueue, claim,
lock renewal, completion and failure go through the real scripts. Time is
driven by the ``clock`` fixture.
"""

import pytest

from shared.config.constants import JobNames, JobStatus, QueueNames
from shared.config.settings import settings
from shared.utils.exceptions import ConflictError, JobNotFoundError, ValidationError
from costing.jobs import JobOptions, backoff_delay_ms
from costing.jobs.types import dedupe_key, menu_cascade_payload, recipe_payload

COST = QueueNames.COST_UPDATES


def _failed_job(redis_queue, recipe_id=3, reason="db down"):
    """Enqueue a single-attempt job and fail it."""
    redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(recipe_id), JobOptions(attempts=1))
    job = redis_queue.fetch_next(COST)
    assert redis_queue.fail(job, RuntimeError(reason)) == JobStatus.FAILED
    return job


class TestBackoff:
    """Delay doubles after each failed attempt."""

    def test_doubling(self):
        assert [backoff_delay_ms(2000, n) for n in (1, 2, 3)] == [2000, 4000, 8000]

    def test_no_failures_no_delay(self):
        assert backoff_delay_ms(2000, 0) == 0

    def test_default_options(self):
        options = JobOptions()
        assert options.attempts == 3
        assert options.backoff_delay_ms == 2000

    def test_invalid_options(self):
        with pytest.raises(ValueError):
            JobOptions(attempts=0)
        with pytest.raises(ValueError):
            JobOptions(priority=-1)


class TestEnqueue:

    def test_creates_waiting_job(self, redis_queue, clock):
        job_id = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))

        job = redis_queue.get_job(COST, job_id)
        assert job.status == JobStatus.WAITING
        assert job.data == {"recipeId": 3}
        assert job.max_attempts == 3
        assert job.backoff_delay_ms == 2000
        assert job.created_at == clock.now_ms
        assert redis_queue.get_stats(COST)["waiting"] == 1

    def test_identical_waiting_job_is_coalesced(self, redis_queue):
        first = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        second = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))

        assert first == second
        assert redis_queue.get_stats(COST)["waiting"] == 1

    def test_fan_out_coalesces_duplicates(self, redis_queue):
        job_ids = redis_queue.enqueue_many(
            JobNames.RECIPE_COST_UPDATE, [recipe_payload(i) for i in (10, 11, 10)]
        )

        assert job_ids[0] == job_ids[2]
        assert job_ids[0] != job_ids[1]
        assert redis_queue.get_stats(COST)["waiting"] == 2

    def test_dedupe_disabled(self, redis_queue):
        options = JobOptions(dedupe=False)
        first = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3), options)
        second = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3), options)

        assert first != second
        assert redis_queue.get_stats(COST)["waiting"] == 2

    def test_claimed_job_no_longer_coalesces(self, redis_queue):
        first = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        redis_queue.fetch_next(COST)

        second = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))

        assert second != first
        assert redis_queue.get_stats(COST) == {
            "waiting": 1, "active": 1, "delayed": 0, "completed": 0, "failed": 0
        }

    def test_routes_by_job_name(self, redis_queue):
        redis_queue.enqueue(JobNames.MENU_CASCADE, menu_cascade_payload(5, 1))

        assert redis_queue.get_stats(QueueNames.MENU_CASCADE)["waiting"] == 1
        assert redis_queue.get_stats(COST)["waiting"] == 0

    def test_initial_delay(self, redis_queue, clock):
        job_id = redis_queue.enqueue(
            JobNames.RECIPE_COST_UPDATE, recipe_payload(3), JobOptions(delay_ms=5000)
        )

        assert redis_queue.get_job(COST, job_id).status == JobStatus.DELAYED
        assert redis_queue.fetch_next(COST) is None

        clock.advance(5000)
        assert redis_queue.fetch_next(COST).id == job_id

    def test_empty_fan_out_does_not_touch_redis(self, redis_queue):
        assert redis_queue.enqueue_many(JobNames.RECIPE_COST_UPDATE, []) == []
        assert redis_queue.redis.keys("*") == []

    def test_payload_must_match_job_type(self, redis_queue):
        with pytest.raises(ValidationError):
            redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, {"menuItemId": 3})
        assert redis_queue.redis.keys("*") == []

    def test_unknown_job_type(self, redis_queue):
        with pytest.raises(ValueError):
            redis_queue.enqueue("UNKNOWN", {"id": 1})

    def test_dedupe_key_is_order_independent(self):
        assert dedupe_key(JobNames.MENU_CASCADE, {"menuItemId": 1, "organizationId": 2}) == dedupe_key(
            JobNames.MENU_CASCADE, {"organizationId": 2, "menuItemId": 1}
        )

    def test_reloads_flushed_scripts(self, redis_queue):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        redis_queue.redis.script_flush()

        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(4))

        assert redis_queue.get_stats(COST)["waiting"] == 2


class TestFetch:

    def test_idle_queue(self, redis_queue):
        assert redis_queue.fetch_next(COST) is None

    def test_claim_marks_job_active(self, redis_queue, clock):
        job_id = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))

        job = redis_queue.fetch_next(COST)

        assert job.id == job_id
        assert job.status == JobStatus.ACTIVE
        assert job.processed_at == clock.now_ms
        assert job.lock_token
        assert redis_queue.get_job(COST, job_id).lock_token == job.lock_token
        assert redis_queue.redis.zscore("test:cost-updates:active", job_id) == clock.now_ms + 30000

    def test_priority_then_fifo(self, redis_queue):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(1), JobOptions(priority=10))
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(2), JobOptions(priority=10))
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3), JobOptions(priority=1))
        redis_queue.enqueue(JobNames.MENU_COST_UPDATE, {"menuItemId": 4}, JobOptions(priority=10))

        order = [redis_queue.fetch_next(COST).data for _ in range(4)]

        assert order == [{"recipeId": 3}, {"recipeId": 1}, {"recipeId": 2}, {"menuItemId": 4}]
        assert redis_queue.fetch_next(COST) is None

    def test_claims_are_exclusive(self, redis_queue):
        redis_queue.enqueue_many(JobNames.RECIPE_COST_UPDATE, [recipe_payload(i) for i in (1, 2)])

        first = redis_queue.fetch_next(COST)
        second = redis_queue.fetch_next(COST)

        assert first.id != second.id
        assert first.lock_token != second.lock_token
        assert redis_queue.fetch_next(COST) is None
        assert redis_queue.get_stats(COST)["active"] == 2

    def test_stalled_job_is_handed_out_again(self, redis_queue, clock):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        first = redis_queue.fetch_next(COST)

        clock.advance(30001)
        second = redis_queue.fetch_next(COST)

        assert second.id == first.id
        assert second.stalled_count == 1
        assert second.lock_token != first.lock_token

    def test_locked_job_is_not_handed_out(self, redis_queue, clock):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        redis_queue.fetch_next(COST)

        clock.advance(29999)

        assert redis_queue.fetch_next(COST) is None

    def test_extended_lock_prevents_stall(self, redis_queue, clock):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        job = redis_queue.fetch_next(COST)

        clock.advance(20000)
        assert redis_queue.extend_lock(job) is True
        clock.advance(20000)

        assert redis_queue.fetch_next(COST) is None
        assert redis_queue.complete(job, None) is True


class TestLockOwnership:
    """Only the worker holding the current claim token can settle a job."""

    @pytest.fixture
    def handed_over(self, redis_queue, clock):
        """A job claimed by one worker, stalled, then claimed by another."""
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        stale = redis_queue.fetch_next(COST)
        clock.advance(31000)
        current = redis_queue.fetch_next(COST)
        return stale, current

    def test_stale_holder_cannot_fail(self, redis_queue, handed_over):
        stale, current = handed_over

        assert redis_queue.fail(stale, RuntimeError("late")) is None

        job = redis_queue.get_job(COST, current.id)
        assert job.status == JobStatus.ACTIVE
        assert job.attempts_made == 0
        assert job.lock_token == current.lock_token

    def test_stale_holder_cannot_complete_or_extend(self, redis_queue, handed_over):
        stale, current = handed_over

        assert redis_queue.complete(stale, {"late": True}) is False
        assert redis_queue.extend_lock(stale) is False
        assert redis_queue.get_job(COST, current.id).status == JobStatus.ACTIVE

    def test_job_ends_in_exactly_one_state(self, redis_queue, handed_over):
        stale, current = handed_over

        redis_queue.fail(stale, RuntimeError("late"))
        assert redis_queue.complete(current, {"recipeId": 3}) is True

        assert redis_queue.get_stats(COST) == {
            "waiting": 0, "active": 0, "delayed": 0, "completed": 1, "failed": 0
        }
        assert redis_queue.get_job(COST, current.id).status == JobStatus.COMPLETED

    def test_settled_job_cannot_be_settled_again(self, redis_queue):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        job = redis_queue.fetch_next(COST)
        token = job.lock_token

        assert redis_queue.complete(job, None) is True
        job.lock_token = token
        assert redis_queue.fail(job, RuntimeError("twice")) is None
        assert redis_queue.get_stats(COST)["delayed"] == 0


class TestFail:
    """Three attempts with 2s doubling backoff, then the failed set."""

    def test_first_failure_schedules_retry(self, redis_queue, clock):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        job = redis_queue.fetch_next(COST)

        status = redis_queue.fail(job, RuntimeError("db down"))

        assert status == JobStatus.DELAYED
        assert job.attempts_made == 1
        assert redis_queue.redis.zscore("test:cost-updates:delayed", job.id) == clock.now_ms + 2000
        assert redis_queue.get_stats(COST)["active"] == 0

    def test_retry_runs_after_backoff(self, redis_queue, clock):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        redis_queue.fail(redis_queue.fetch_next(COST), RuntimeError("db down"))

        clock.advance(1999)
        assert redis_queue.fetch_next(COST) is None

        clock.advance(1)
        retried = redis_queue.fetch_next(COST)
        assert retried.attempts_made == 1
        assert retried.failed_reason == "db down"

    def test_second_failure_doubles_delay(self, redis_queue, clock):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        redis_queue.fail(redis_queue.fetch_next(COST), RuntimeError("db down"))
        clock.advance(2000)
        job = redis_queue.fetch_next(COST)

        redis_queue.fail(job, RuntimeError("db down"))

        assert redis_queue.redis.zscore("test:cost-updates:delayed", job.id) == clock.now_ms + 4000

    def test_last_attempt_moves_to_failed(self, redis_queue, clock):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        statuses = []
        for delay in (0, 2000, 4000):
            clock.advance(delay)
            statuses.append(redis_queue.fail(redis_queue.fetch_next(COST), RuntimeError("db down")))

        assert statuses == [JobStatus.DELAYED, JobStatus.DELAYED, JobStatus.FAILED]
        [failed] = redis_queue.get_failed_jobs(COST)
        assert failed.attempts_made == 3
        assert failed.failed_reason == "db down"
        assert failed.finished_at == clock.now_ms
        assert redis_queue.get_stats(COST)["delayed"] == 0

    def test_complete(self, redis_queue, clock):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        job = redis_queue.fetch_next(COST)

        assert redis_queue.complete(job, {"recipeId": 3}) is True

        stored = redis_queue.get_job(COST, job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.return_value == {"recipeId": 3}
        assert stored.lock_token is None
        assert redis_queue.redis.ttl(f"test:cost-updates:job:{job.id}") > 0
        assert redis_queue.get_stats(COST)["completed"] == 1

    def test_completed_retention_count(self, redis_queue, monkeypatch):
        monkeypatch.setattr(settings, "queue_completed_retention_count", 2)
        redis_queue.enqueue_many(JobNames.RECIPE_COST_UPDATE, [recipe_payload(i) for i in (1, 2, 3)])

        for _ in range(3):
            redis_queue.complete(redis_queue.fetch_next(COST), None)

        assert redis_queue.get_stats(COST)["completed"] == 2


class TestAdministration:

    def test_stats_per_queue(self, redis_queue):
        redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))

        stats = redis_queue.get_all_stats()

        assert list(stats) == QueueNames.ALL
        assert stats[COST]["waiting"] == 1
        assert stats[QueueNames.INVENTORY]["waiting"] == 0

    def test_retry_missing_job(self, redis_queue):
        with pytest.raises(JobNotFoundError):
            redis_queue.retry_job(COST, "99")

    def test_retry_only_failed_jobs(self, redis_queue):
        job_id = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))
        with pytest.raises(ConflictError):
            redis_queue.retry_job(COST, job_id)

    def test_retry_resets_attempts(self, redis_queue):
        failed = _failed_job(redis_queue)

        job = redis_queue.retry_job(COST, failed.id)

        assert job.status == JobStatus.WAITING
        assert job.attempts_made == 0
        assert redis_queue.get_failed_jobs(COST) == []
        again = redis_queue.fetch_next(COST)
        assert again.id == failed.id
        assert again.attempts_made == 0

    def test_clean_rejects_active(self, redis_queue):
        with pytest.raises(ValidationError):
            redis_queue.clean(COST, JobStatus.ACTIVE)

    def test_clean_removes_old_jobs(self, redis_queue, clock):
        failed = _failed_job(redis_queue)

        assert redis_queue.clean(COST, JobStatus.FAILED, grace_seconds=60) == 0

        clock.advance(60000)
        assert redis_queue.clean(COST, JobStatus.FAILED, grace_seconds=60) == 1
        assert redis_queue.get_job(COST, failed.id) is None

    def test_remove_job_releases_dedupe_key(self, redis_queue):
        job_id = redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3))

        assert redis_queue.remove_job(COST, job_id) is True
        assert redis_queue.fetch_next(COST) is None
        assert redis_queue.enqueue(JobNames.RECIPE_COST_UPDATE, recipe_payload(3)) != job_id

    def test_remove_missing_job(self, redis_queue):
        assert redis_queue.remove_job(COST, "99") is False
