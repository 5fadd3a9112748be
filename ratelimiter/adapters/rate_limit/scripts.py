"""Lua source executed server-side by Redis for the token bucket.

Redis runs a script to completion without interleaving other commands, so
the whole read-refill-consume-write sequence for one bucket is atomic.

Script contract::

    KEYS[1]  bucket hash key
    ARGV[1]  capacity (integer >= 1)
    ARGV[2]  refill rate in tokens per second (> 0)
    ARGV[3]  caller's current time in milliseconds
    ARGV[4]  bucket TTL in whole seconds (1 ..= MAX_TTL_SECONDS)

    returns {allowed, tokens_left * 100, tokens_before * 100, refill_amount * 100}

Token quantities are scaled by ``TOKEN_SCALE`` and floored because Redis
converts Lua numbers in replies to integers. Clients divide back down, which
keeps two decimal digits (truncated, never rounded).

The TTL is checked before the first write; an invalid TTL leaves the bucket
untouched.
"""

from __future__ import annotations

TOKEN_SCALE = 100

# Prefix of the error reply returned when a stored record cannot be parsed.
CORRUPT_STATE_MARKER = "CORRUPT_BUCKET"

# Upper bound on bucket TTLs; mirrored as a literal in the Lua source.
MAX_TTL_SECONDS = 2**31 - 1

TOKEN_BUCKET_LUA = """
local capacity = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now_ms = tonumber(ARGV[3])
local ttl = tonumber(ARGV[4])

if ttl == nil or ttl < 1 or ttl > 2147483647 or ttl ~= math.floor(ttl) then
    return {err = "INVALID_TTL bucket ttl must be an integer in [1, 2147483647]"}
end

local data = redis.call("HMGET", KEYS[1], "tokens", "last_refill")
local tokens = tonumber(data[1])
local last_refill = tonumber(data[2])

local refill_amount = 0
if not data[1] and not data[2] then
    tokens = capacity
    last_refill = now_ms
elseif tokens == nil or last_refill == nil then
    return {err = "CORRUPT_BUCKET non-numeric or partial bucket record"}
else
    -- Clock skew between callers must not drain the bucket.
    local elapsed_ms = math.max(0, now_ms - last_refill)
    refill_amount = (elapsed_ms / 1000) * refill_rate
    tokens = math.min(capacity, tokens + refill_amount)
    last_refill = math.max(last_refill, now_ms)
end

local tokens_before = tokens

local allowed = 0
if tokens >= 1 then
    tokens = tokens - 1
    allowed = 1
end

redis.call("HSET", KEYS[1], "tokens", tokens, "last_refill", last_refill)
redis.call("EXPIRE", KEYS[1], ttl)

return {
    allowed,
    math.floor(tokens * 100),
    math.floor(tokens_before * 100),
    math.floor(refill_amount * 100),
}
"""
