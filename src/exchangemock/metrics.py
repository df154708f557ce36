"""
ExchangeMock Metrics

Counters exposed by the admin API.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class ServerMetrics:
    """Track mock server metrics."""

    total_requests: int = 0
    serialization_failures: int = 0
    missing_files: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def record(self, failure: Optional[str] = None):
        """Count one served request, and its failure kind if the payload was replaced."""
        self.total_requests += 1
        if failure == 'serialization':
            self.serialization_failures += 1
        elif failure == 'file':
            self.missing_files += 1

    def mark_started(self):
        """Restart the uptime clock once the server accepts connections."""
        self.start_time = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        return {
            'total_requests': self.total_requests,
            'serialization_failures': self.serialization_failures,
            'missing_files': self.missing_files,
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }
