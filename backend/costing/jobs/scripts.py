"""
Redis Lua scripts for atomic queue operations.

Each script runs atomically on Redis, so no other client can observe a
half-applied state:
- ENQUEUE_SCRIPT creates a whole fan-out (or coalesces it) in one call.
- FETCH_SCRIPT promotes due retries, recovers stalled jobs and claims the
  next waiting job in one call, so two workers never claim the same job.
- COMPLETE_SCRIPT, FAIL_SCRIPT and EXTEND_SCRIPT only act for the worker
  whose claim token is stored on the job. A worker whose lock expired and
  whose job was handed to someone else changes nothing.

Job hash keys are derived from a prefix passed in ARGV; the queue is meant
for a single Redis node, not Redis Cluster.
"""

from __future__ import annotations

import threading
from typing import Any

import redis as redis_sync
from redis.exceptions import NoScriptError

from shared.config.logging import get_logger

logger = get_logger(__name__)

# Wait-set score = priority * PRIORITY_SHIFT + sequence (lower pops first)
PRIORITY_SHIFT = 4294967296

# ARGV values per job entry in ENQUEUE_SCRIPT
ENQUEUE_ENTRY_FIELDS = ("name", "data", "priority", "attempts", "backoff", "delay", "dedupe_key")


# =============================================================================
# Enqueue
# =============================================================================

ENQUEUE_SCRIPT = """
-- KEYS[1] = id counter, KEYS[2] = wait zset, KEYS[3] = delayed zset
-- ARGV[1] = job hash prefix, ARGV[2] = dedupe key prefix
-- ARGV[3] = now (ms), ARGV[4] = dedupe key ttl (seconds)
-- ARGV[5..] = 7 values per job: name, data, priority, attempts,
--             backoff (ms), delay (ms), dedupe key ('' = no coalescing)
-- Returns: list of job ids, one per entry (existing id when coalesced)

local now = tonumber(ARGV[3])
local shift = 4294967296
local ids = {}

for i = 5, #ARGV, 7 do
    local name = ARGV[i]
    local data = ARGV[i + 1]
    local priority = tonumber(ARGV[i + 2])
    local attempts = tonumber(ARGV[i + 3])
    local backoff = tonumber(ARGV[i + 4])
    local delay = tonumber(ARGV[i + 5])
    local dedupe = ARGV[i + 6]

    local id = false
    if dedupe ~= '' then
        local current = redis.call('GET', ARGV[2] .. dedupe)
        if current and redis.call('EXISTS', ARGV[1] .. current) == 1 then
            id = current
        end
    end

    if not id then
        local seq = redis.call('INCR', KEYS[1])
        id = tostring(seq)
        local status = 'waiting'
        if delay > 0 then
            status = 'delayed'
        end
        redis.call('HSET', ARGV[1] .. id,
            'id', id,
            'name', name,
            'data', data,
            'priority', priority,
            'seq', seq,
            'attempts_made', 0,
            'max_attempts', attempts,
            'backoff_delay_ms', backoff,
            'status', status,
            'created_at', now,
            'dedupe_key', dedupe,
            'stalled_count', 0)
        if delay > 0 then
            redis.call('ZADD', KEYS[3], now + delay, id)
        else
            redis.call('ZADD', KEYS[2], priority * shift + seq, id)
        end
        if dedupe ~= '' then
            redis.call('SET', ARGV[2] .. dedupe, id, 'EX', tonumber(ARGV[4]))
        end
    end
    ids[#ids + 1] = id
end

return ids
"""


# =============================================================================
# Fetch next
# =============================================================================

FETCH_SCRIPT = """
-- KEYS[1] = wait zset, KEYS[2] = delayed zset, KEYS[3] = active zset
-- ARGV[1] = now (ms), ARGV[2] = lock duration (ms)
-- ARGV[3] = job hash prefix, ARGV[4] = dedupe key prefix
-- ARGV[5] = claim token
-- Returns: claimed job id, or nil when nothing is runnable

local now = tonumber(ARGV[1])
local shift = 4294967296

local function requeue(id, stalled)
    local key = ARGV[3] .. id
    if redis.call('EXISTS', key) == 0 then
        return
    end
    local fields = redis.call('HMGET', key, 'priority', 'seq')
    redis.call('ZADD', KEYS[1], tonumber(fields[1]) * shift + tonumber(fields[2]), id)
    redis.call('HSET', key, 'status', 'waiting')
    if stalled then
        redis.call('HDEL', key, 'lock_token')
        redis.call('HINCRBY', key, 'stalled_count', 1)
    end
end

-- Retries whose backoff elapsed
local due = redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', now, 'LIMIT', 0, 100)
for _, id in ipairs(due) do
    redis.call('ZREM', KEYS[2], id)
    requeue(id, false)
end

-- Active jobs whose worker stopped renewing the lock
local stalled = redis.call('ZRANGEBYSCORE', KEYS[3], '-inf', now, 'LIMIT', 0, 100)
for _, id in ipairs(stalled) do
    redis.call('ZREM', KEYS[3], id)
    requeue(id, true)
end

while true do
    local popped = redis.call('ZPOPMIN', KEYS[1])
    if #popped == 0 then
        return false
    end
    local id = popped[1]
    local key = ARGV[3] .. id
    if redis.call('EXISTS', key) == 1 then
        redis.call('ZADD', KEYS[3], now + tonumber(ARGV[2]), id)
        redis.call('HSET', key, 'status', 'active', 'processed_at', now, 'lock_token', ARGV[5])
        local dedupe = redis.call('HGET', key, 'dedupe_key')
        if dedupe and dedupe ~= '' then
            if redis.call('GET', ARGV[4] .. dedupe) == id then
                redis.call('DEL', ARGV[4] .. dedupe)
            end
        end
        return id
    end
end
"""


# =============================================================================
# Lock holder operations
# =============================================================================

HOLDS_LOCK = """
local function holds_lock(active_key, job_key, id, token)
    if token == '' or redis.call('HGET', job_key, 'lock_token') ~= token then
        return false
    end
    return redis.call('ZSCORE', active_key, id) ~= false
end
"""

EXTEND_SCRIPT = HOLDS_LOCK + """
-- KEYS[1] = active zset, KEYS[2] = job hash
-- ARGV[1] = job id, ARGV[2] = claim token, ARGV[3] = new lock expiry (ms)
-- Returns: 1 when the lock was extended, 0 when the caller lost it

if not holds_lock(KEYS[1], KEYS[2], ARGV[1], ARGV[2]) then
    return 0
end
redis.call('ZADD', KEYS[1], 'XX', tonumber(ARGV[3]), ARGV[1])
return 1
"""

COMPLETE_SCRIPT = HOLDS_LOCK + """
-- KEYS[1] = active zset, KEYS[2] = completed zset, KEYS[3] = job hash
-- ARGV[1] = job id, ARGV[2] = claim token, ARGV[3] = now (ms)
-- ARGV[4] = JSON return value, ARGV[5] = retention (seconds)
-- ARGV[6] = max completed jobs kept
-- Returns: 1 when completed, 0 when the caller lost the lock

if not holds_lock(KEYS[1], KEYS[3], ARGV[1], ARGV[2]) then
    return 0
end
local now = tonumber(ARGV[3])
local retention = tonumber(ARGV[5])
redis.call('ZREM', KEYS[1], ARGV[1])
redis.call('HSET', KEYS[3], 'status', 'completed', 'finished_at', now, 'return_value', ARGV[4])
redis.call('HDEL', KEYS[3], 'lock_token')
redis.call('EXPIRE', KEYS[3], retention)
redis.call('ZADD', KEYS[2], now, ARGV[1])
redis.call('ZREMRANGEBYSCORE', KEYS[2], '-inf', now - retention * 1000)
redis.call('ZREMRANGEBYRANK', KEYS[2], 0, -(tonumber(ARGV[6]) + 1))
return 1
"""

FAIL_SCRIPT = HOLDS_LOCK + """
-- KEYS[1] = active zset, KEYS[2] = delayed zset, KEYS[3] = failed zset
-- KEYS[4] = job hash
-- ARGV[1] = job id, ARGV[2] = claim token, ARGV[3] = now (ms)
-- ARGV[4] = attempts made, ARGV[5] = failure reason
-- ARGV[6] = next attempt time (ms), '' when no attempts remain
-- Returns: new status ('delayed' or 'failed'), nil when the caller lost the lock

if not holds_lock(KEYS[1], KEYS[4], ARGV[1], ARGV[2]) then
    return false
end
redis.call('ZREM', KEYS[1], ARGV[1])
redis.call('HDEL', KEYS[4], 'lock_token')
if ARGV[6] ~= '' then
    redis.call('HSET', KEYS[4], 'status', 'delayed', 'attempts_made', ARGV[4], 'failed_reason', ARGV[5])
    redis.call('ZADD', KEYS[2], tonumber(ARGV[6]), ARGV[1])
    return 'delayed'
end
redis.call('HSET', KEYS[4],
    'status', 'failed',
    'attempts_made', ARGV[4],
    'failed_reason', ARGV[5],
    'finished_at', ARGV[3])
redis.call('ZADD', KEYS[3], tonumber(ARGV[3]), ARGV[1])
return 'failed'
"""


# =============================================================================
# Script runner
# =============================================================================


class LuaScript:
    """
    A Lua script executed with EVALSHA.

    The SHA is cached after the first SCRIPT LOAD; if Redis was restarted or
    flushed (NOSCRIPT) the script is loaded again and the call retried once.
    """

    def __init__(self, name: str, source: str):
        self.name = name
        self.source = source
        self._sha: str | None = None
        self._lock = threading.Lock()

    def _load(self, client: redis_sync.Redis) -> str:
        with self._lock:
            self._sha = client.script_load(self.source)
            logger.debug("Lua script loaded", script=self.name, sha=self._sha[:8])
            return self._sha

    def __call__(self, client: redis_sync.Redis, keys: list[str], args: list[Any]) -> Any:
        sha = self._sha or self._load(client)
        try:
            return client.evalsha(sha, len(keys), *keys, *args)
        except NoScriptError:
            sha = self._load(client)
            return client.evalsha(sha, len(keys), *keys, *args)


enqueue_script = LuaScript("enqueue", ENQUEUE_SCRIPT)
fetch_script = LuaScript("fetch_next", FETCH_SCRIPT)
extend_script = LuaScript("extend_lock", EXTEND_SCRIPT)
complete_script = LuaScript("complete", COMPLETE_SCRIPT)
fail_script = LuaScript("fail", FAIL_SCRIPT)
