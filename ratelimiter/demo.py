"""Walk one identifier through a bucket against a live Redis.

Usage:
  python -m ratelimiter.demo --capacity 5 --refill-rate 1 --requests 10 --interval-ms 300

The connection comes from ``REDIS_URL`` (see ``ratelimiter.core.config``).
"""

from __future__ import annotations

import argparse
import time
from typing import Sequence

from ratelimiter.adapters.rate_limit.redis_token_bucket import RedisTokenBucketRateLimiter
from ratelimiter.adapters.redis_client import build_redis_client
from ratelimiter.core.config import settings
from ratelimiter.core.errors import AppError
from ratelimiter.core.logging import configure_logging

_RULE = "-" * 72


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Token bucket rate limiter demo")
    ap.add_argument("--identifier", default="user-123")
    ap.add_argument("--capacity", type=int, default=5)
    ap.add_argument("--refill-rate", type=float, default=1.0)
    ap.add_argument("--requests", type=int, default=10)
    ap.add_argument("--interval-ms", type=int, default=300)
    return ap


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log)

    try:
        limiter = RedisTokenBucketRateLimiter(
            build_redis_client(settings.redis),
            capacity=args.capacity,
            refill_rate=args.refill_rate,
        )
    except AppError as exc:
        print(f"error: {exc.message}")
        return 2

    print(_RULE)
    print(f"Rate limiter demo: capacity={args.capacity}, refill={args.refill_rate:g} token/sec")
    print(_RULE)

    for i in range(1, args.requests + 1):
        try:
            result = limiter.allow(args.identifier)
        except AppError as exc:
            print(f"! Request {i:2d}: ERROR ({exc.code})")
            return 1

        if result.allowed:
            print(f"+ Request {i:2d}: ALLOWED")
            print(f"  had {result.tokens_before:.2f} tokens -> used 1 -> {result.tokens_left:.2f} left")
        else:
            print(f"x Request {i:2d}: REJECTED")
            print(
                f"  had {result.tokens_before:.2f} tokens, need 1; "
                f"retry in {result.retry_after_seconds}s"
            )

        if i < args.requests:
            time.sleep(args.interval_ms / 1000)

    print(_RULE)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
