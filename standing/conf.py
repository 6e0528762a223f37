"""Runtime configuration for the standing computation, read from Django settings."""
from __future__ import annotations

from dataclasses import dataclass, field

from django.conf import settings

from .classification import StandingPolicy

DEFAULTS = {
    "BATCH_SIZE": 100,
    "WORKER_CONCURRENCY": 3,
    "MAX_ATTEMPTS": 3,
    "RETRY_BASE_DELAY": 5.0,
    "STALLED_AFTER": 600,
    "POLL_INTERVAL": 3.0,
    "LIST_LIMIT": 100,
}

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 1000


@dataclass(frozen=True)
class ComputationConfig:
    batch_size: int = 100
    worker_concurrency: int = 3
    max_attempts: int = 3
    retry_base_delay: float = 5.0
    stalled_after: float = 600.0
    poll_interval: float = 3.0
    list_limit: int = 100
    policy: StandingPolicy = field(default_factory=StandingPolicy)


def get_config() -> ComputationConfig:
    """Build the computation config, falling back to defaults for missing keys."""

    raw = dict(DEFAULTS)
    raw.update(getattr(settings, "STANDING_COMPUTATION", {}) or {})
    batch_size = min(max(int(raw["BATCH_SIZE"]), MIN_BATCH_SIZE), MAX_BATCH_SIZE)
    return ComputationConfig(
        batch_size=batch_size,
        worker_concurrency=max(int(raw["WORKER_CONCURRENCY"]), 1),
        max_attempts=max(int(raw["MAX_ATTEMPTS"]), 1),
        retry_base_delay=float(raw["RETRY_BASE_DELAY"]),
        stalled_after=float(raw["STALLED_AFTER"]),
        poll_interval=float(raw["POLL_INTERVAL"]),
        list_limit=int(raw["LIST_LIMIT"]),
        policy=StandingPolicy.from_mapping(raw.get("POLICY") or {}),
    )
