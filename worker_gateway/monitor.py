"""Host metrics and address discovery."""

import os
import socket
from dataclasses import dataclass
from typing import Optional

import psutil

LOOPBACK_LABEL = "localhost"


@dataclass
class SystemMetrics:
    cpu_percent: float
    memory_rss: int


class SystemMonitor:
    """Samples system-wide CPU usage and this process's resident memory."""

    def __init__(self, pid: Optional[int] = None):
        self._process = psutil.Process(pid or os.getpid())
        # First call primes the CPU counters; it always reports 0.0.
        psutil.cpu_percent(interval=None)

    def sample(self) -> SystemMetrics:
        try:
            rss = self._process.memory_info().rss
        except psutil.Error:
            rss = 0
        return SystemMetrics(cpu_percent=psutil.cpu_percent(interval=None), memory_rss=rss)


def local_ip_address() -> Optional[str]:
    """First IPv4 address on an up, non-loopback interface, if any."""
    try:
        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()
    except (OSError, psutil.Error):
        return None

    for name in sorted(addrs):
        if name in stats and not stats[name].isup:
            continue
        for addr in addrs[name]:
            if addr.family == socket.AF_INET and not addr.address.startswith("127."):
                return addr.address
    return None


def reachable_address(port: int) -> str:
    """URL clients on the network can use; falls back to the loopback label."""
    return f"http://{local_ip_address() or LOOPBACK_LABEL}:{port}"
