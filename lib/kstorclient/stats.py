# stats.py
#
# Runtime Statistics


from dataclasses import dataclass, field
from typing import Dict

import numpy as np


@dataclass
class ConnStats:
    sent: int = 0
    recv: int = 0
    sent_bytes: int = 0
    recv_bytes: int = 0
    exchanges: int = 0
    failures: int = 0
    latencies_us: list[float] = field(default_factory=list)  # one per completed exchange

    def on_sent(self, nbytes: int):
        self.sent += 1
        self.sent_bytes += nbytes

    def on_recv(self, nbytes: int):
        self.recv += 1
        self.recv_bytes += nbytes

    def on_exchange(self, elapsed_us: float):
        self.exchanges += 1
        self.latencies_us.append(elapsed_us)

    def summary(self) -> Dict[str, float]:
        """Mean and tail latency of completed exchanges in microseconds"""
        if not self.latencies_us:
            return {"count": 0, "mean_us": 0.0, "p50_us": 0.0, "p99_us": 0.0}
        lat = np.asarray(self.latencies_us, dtype="float64")
        return {
            "count": int(lat.size),
            "mean_us": float(lat.mean()),
            "p50_us": float(np.percentile(lat, 50)),
            "p99_us": float(np.percentile(lat, 99)),
        }
