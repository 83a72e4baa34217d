from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class DecisionSample:
    ts: float
    allowed: bool
    reason: str
    latency_ms: float


_decision_samples: Deque[DecisionSample] = deque(maxlen=20000)
_counters: dict[str, int] = defaultdict(int)


def record_decision(*, allowed: bool, reason: str, latency_ms: float) -> None:
    # Track authorization latency and outcomes for dashboards and alerts.
    _decision_samples.append(
        DecisionSample(ts=time.time(), allowed=allowed, reason=reason, latency_ms=latency_ms)
    )
    increment_counter(f"authz.decision.{reason.lower()}")


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def _window_samples(window_s: int) -> list[DecisionSample]:
    cutoff = time.time() - window_s
    return [sample for sample in _decision_samples if sample.ts >= cutoff]


def p95_decision_latency(window_s: int) -> float | None:
    samples = _window_samples(window_s)
    if not samples:
        return None
    latencies = sorted(sample.latency_ms for sample in samples)
    idx = max(0, math.ceil(0.95 * len(latencies)) - 1)
    return latencies[idx]


def deny_ratio(window_s: int) -> float | None:
    # Share of denied decisions; spikes usually mean a misconfigured rollout.
    samples = _window_samples(window_s)
    if not samples:
        return None
    denied = sum(1 for sample in samples if not sample.allowed)
    return denied / len(samples)


def counters_snapshot() -> dict[str, int]:
    return dict(_counters)


def reset_telemetry() -> None:
    # Clear samples and counters for deterministic tests.
    _decision_samples.clear()
    _counters.clear()
