"""Request performance metrics kept in bounded ring buffers.

A ``PerformanceMonitor`` is an ordinary object: whoever creates it owns it.
``core.middleware.RequestMetricsMiddleware`` builds one per application and
hands it to each request as ``request.metrics``.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, field


@dataclass
class RouteStats:
    count: int = 0
    errors: int = 0
    total_ms: float = 0.0
    min_ms: float = float('inf')
    max_ms: float = 0.0

    def add(self, duration_ms, failed):
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)
        if failed:
            self.errors += 1

    def as_dict(self):
        return {
            'count': self.count,
            'errors': self.errors,
            'avgMs': round(self.total_ms / self.count, 2) if self.count else 0,
            'minMs': round(self.min_ms, 2) if self.count else 0,
            'maxMs': round(self.max_ms, 2),
        }


@dataclass
class PerformanceMonitor:
    max_samples: int = 1000
    max_slow_requests: int = 100
    slow_request_ms: float = 1000.0
    response_times: deque = field(init=False)
    slow_requests: deque = field(init=False)
    routes: dict = field(init=False, default_factory=dict)
    status_codes: dict = field(init=False, default_factory=dict)

    def __post_init__(self):
        self.response_times = deque(maxlen=self.max_samples)
        self.slow_requests = deque(maxlen=self.max_slow_requests)
        self._lock = threading.Lock()

    def start(self):
        return time.perf_counter()

    def record(self, method, path, status_code, started_at, user_id=None):
        duration_ms = (time.perf_counter() - started_at) * 1000
        key = f'{method} {path}'
        with self._lock:
            self.response_times.append(duration_ms)
            self.routes.setdefault(key, RouteStats()).add(duration_ms, status_code >= 500)
            self.status_codes[status_code] = self.status_codes.get(status_code, 0) + 1
            if duration_ms > self.slow_request_ms:
                self.slow_requests.append({
                    'method': method,
                    'path': path,
                    'statusCode': status_code,
                    'durationMs': round(duration_ms, 2),
                    'userId': user_id,
                    'at': time.time(),
                })
        return duration_ms

    def snapshot(self):
        with self._lock:
            samples = sorted(self.response_times)
            return {
                'requests': sum(self.status_codes.values()),
                'responseTimes': {
                    'samples': len(samples),
                    'avgMs': round(sum(samples) / len(samples), 2) if samples else 0,
                    'p95Ms': round(samples[int(len(samples) * 0.95) - 1], 2) if samples else 0,
                    'maxMs': round(samples[-1], 2) if samples else 0,
                },
                'statusCodes': {str(code): count for code, count in sorted(self.status_codes.items())},
                'routes': {key: stats.as_dict() for key, stats in self.routes.items()},
                'slowRequests': list(self.slow_requests),
            }

    def reset(self):
        with self._lock:
            self.response_times.clear()
            self.slow_requests.clear()
            self.routes.clear()
            self.status_codes.clear()
