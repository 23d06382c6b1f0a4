"""Throttle for forced JWKS refreshes.

A token with an unknown ``kid`` makes the key provider re-download the key
set. Without a limit, anyone able to send tokens could turn every request into
an outbound JWKS fetch. ``RefreshGate`` allows one forced refresh per interval
and counts the attempts it turned away.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Final

_LOGGER = logging.getLogger(__name__)

_DEFAULT_INTERVAL: Final[float] = 60.0
_DEFAULT_ALERT_THRESHOLD: Final[int] = 40


class RefreshGate:
    """Thread-safe "at most once per ``min_interval``" gate.

    Attributes:
        denied: Attempts rejected since the last allowed refresh.
    """

    def __init__(
        self,
        min_interval: float = _DEFAULT_INTERVAL,
        alert_threshold: int = _DEFAULT_ALERT_THRESHOLD,
    ) -> None:
        """
        Args:
            min_interval: Seconds that must pass between allowed refreshes.
            alert_threshold: Denials after which a warning is logged.

        Raises:
            ValueError: If either argument is out of range.
        """
        if min_interval <= 0:
            raise ValueError(f"min_interval must be positive, got {min_interval}")
        if alert_threshold < 1:
            raise ValueError(f"alert_threshold must be at least 1, got {alert_threshold}")

        self._min_interval = min_interval
        self._alert_threshold = alert_threshold

        self._lock = threading.Lock()
        self._next_allowed_at: float = 0.0
        self.denied: int = 0

    def allow(self) -> bool:
        """Return True and start a new interval, or False and count a denial."""
        now = time.time()

        with self._lock:
            if now < self._next_allowed_at:
                self.denied += 1
                if self.denied == self._alert_threshold:
                    _LOGGER.warning(
                        "JWKS refresh throttled %d times within %.0fs; "
                        "possible unknown-kid flood",
                        self.denied,
                        self._min_interval,
                    )
                return False

            self._next_allowed_at = now + self._min_interval
            self.denied = 0
            return True
