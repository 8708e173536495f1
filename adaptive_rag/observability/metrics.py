import threading
from collections import Counter, deque
from typing import Dict, List


LATENCY_HISTORY_LIMIT = 1000


class MetricsTracker:
    """
    In-process workflow counters. Latency history is bounded so
    percentiles reflect recent traffic.
    """

    def __init__(self, history_limit: int = LATENCY_HISTORY_LIMIT):

        self._lock = threading.Lock()

        self._metrics = {
            "total_workflows": 0,
            "successful_workflows": 0,
            "fallback_workflows": 0,
            "failed_workflows": 0,
            "cache_hits": 0,
            "total_latency_ms": 0.0,
            "avg_latency_ms": 0.0,
        }

        self._latencies = deque(maxlen=history_limit)
        self._strategy_usage = Counter()
        self._failures_by_stage = Counter()

    def record_workflow(
        self,
        latency_ms: float,
        strategy_name: str,
        fallback: bool = False,
        cached: bool = False,
    ):

        with self._lock:

            self._metrics["total_workflows"] += 1

            if fallback:
                self._metrics["fallback_workflows"] += 1
            else:
                self._metrics["successful_workflows"] += 1

            if cached:
                self._metrics["cache_hits"] += 1

            self._metrics["total_latency_ms"] += latency_ms
            self._metrics["avg_latency_ms"] = (
                self._metrics["total_latency_ms"] / self._metrics["total_workflows"]
            )

            self._latencies.append(latency_ms)
            self._strategy_usage[strategy_name] += 1

    def record_failure(self, stage: str):

        with self._lock:
            self._metrics["total_workflows"] += 1
            self._metrics["failed_workflows"] += 1
            self._failures_by_stage[stage] += 1

    def get_latency_percentile(self, percentile: float) -> float:

        with self._lock:
            latencies: List[float] = sorted(self._latencies)

        if not latencies:
            return 0.0

        index = min(int(len(latencies) * percentile / 100), len(latencies) - 1)

        return latencies[index]

    def get_metrics(self) -> Dict:

        with self._lock:
            snapshot = dict(self._metrics)
            snapshot["strategy_usage"] = dict(self._strategy_usage)
            snapshot["failures_by_stage"] = dict(self._failures_by_stage)

        snapshot["p50_latency_ms"] = self.get_latency_percentile(50)
        snapshot["p95_latency_ms"] = self.get_latency_percentile(95)

        return snapshot
