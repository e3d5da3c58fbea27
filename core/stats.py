"""
Service statistics.

Process-local counters shared by the issuer and the verifier. Instances are
created by the caller and passed in explicitly; counters are guarded by a
lock because rendering runs on executor threads.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional


class ServiceStats:
    """Thread-safe counters for generation and verification outcomes."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self.start_time = self._clock()
        self.certificates_generated = 0
        self.verifications_performed = 0
        self.successful_verifications = 0
        self.tamper_detected = 0

    def record_generated(self) -> None:
        with self._lock:
            self.certificates_generated += 1

    def record_verification(self, success: bool, tampered: bool = False) -> None:
        with self._lock:
            self.verifications_performed += 1
            if success:
                self.successful_verifications += 1
            if tampered:
                self.tamper_detected += 1

    def snapshot(self) -> Dict[str, Any]:
        """Consistent copy of the counters with derived rates."""
        with self._lock:
            performed = self.verifications_performed
            successful = self.successful_verifications
            data = {
                'certificates_generated': self.certificates_generated,
                'verifications_performed': performed,
                'successful_verifications': successful,
                'tamper_detected': self.tamper_detected,
                'start_time': self.start_time,
            }
        data['success_rate'] = round(successful / performed * 100, 2) if performed else 0.0
        data['uptime_seconds'] = max(0.0, self._clock() - self.start_time)
        return data
