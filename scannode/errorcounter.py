"""Counting of consecutive critical errors."""

from __future__ import annotations

import threading
from typing import Callable, Optional


class ErrorCounter:
    """Tells when too many critical errors have come in a row."""

    def __init__(self, max_errors: int, is_critical_error: Callable[[BaseException], bool]):
        self._max = max_errors
        self._is_critical_error = is_critical_error
        self._count = 0
        self._lock = threading.Lock()

    def too_many_errs(self, err: Optional[BaseException]) -> bool:
        """Record ``err`` and tell if the limit of consecutive critical errors is hit."""
        with self._lock:
            if err is None or not self._is_critical_error(err):
                self._count = 0
                return False
            self._count += 1
            return self._count >= self._max