import statistics
import threading
import time
from collections import deque


def format_bytes(num):
    for unit in ['bytes', 'KB', 'MB', 'GB', 'TB']:
        if num < 1024.0:
            return f"{num:.2f} {unit}"
        num /= 1024.0
    return f"{num:.2f} PB"


class ConnectionStats:
    """Counters shared by all connections. Every update takes the lock."""

    def __init__(self, history: int = 1000):
        self.lock = threading.Lock()
        self.start_time = time.time()
        self.total_connections = 0
        self.active_connections = 0
        self.traffic_sent = 0
        self.traffic_received = 0
        self.connect_times = deque(maxlen=history)  # upstream connect latency in ms

    def connection_opened(self):
        with self.lock:
            self.total_connections += 1
            self.active_connections += 1

    def connection_closed(self):
        with self.lock:
            self.active_connections -= 1

    def add_sent(self, count: int):
        with self.lock:
            self.traffic_sent += count

    def add_received(self, count: int):
        with self.lock:
            self.traffic_received += count

    def add_connect_time(self, millis: float):
        with self.lock:
            self.connect_times.append(millis)

    @property
    def uptime(self) -> int:
        return int(time.time() - self.start_time)

    def snapshot(self) -> dict:
        with self.lock:
            times = list(self.connect_times)
            snap = {
                "uptime": self.uptime,
                "total_connections": self.total_connections,
                "active_connections": self.active_connections,
                "traffic_sent": self.traffic_sent,
                "traffic_received": self.traffic_received,
            }
        if times:
            snap["connect_avg"] = statistics.mean(times)
            snap["connect_min"] = min(times)
            snap["connect_max"] = max(times)
        else:
            snap["connect_avg"] = snap["connect_min"] = snap["connect_max"] = None
        return snap
