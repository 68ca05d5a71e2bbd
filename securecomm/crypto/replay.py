"""
SecureComm Replay Protection

Tracks which receive-direction nonce counters have been consumed on a
channel so that a captured message cannot be delivered twice.

Features:
- Sliding window over counters (bounded memory)
- Tolerates reordering inside the window
- Thread-safe operations

Design:
- Highest counter seen plus a bitmap of the `size` counters below it
- Counters above the highest are always new
- Counters older than the window are treated as replays, since their
  state has been forgotten
"""

import threading


# Default window size in counters
DEFAULT_WINDOW_SIZE = 1024


class ReplayWindow:
    """
    Sliding-window replay detector for one receive direction.

    Usage:
        window = ReplayWindow(size=1024)

        if window.check_and_record(counter):
            # New counter - deliver
            ...
        else:
            # Replay (or too old to tell)
            ...
    """

    def __init__(self, size: int = DEFAULT_WINDOW_SIZE):
        """
        Initialize replay window.

        Args:
            size: Number of counters below the highest one to remember
        """
        if size < 1:
            raise ValueError("Window size must be at least 1")

        self._size = size

        # Highest accepted counter (-1 = nothing accepted yet)
        self._top = -1

        # Bit i set = counter (top - i) has been accepted
        self._bitmap = 0

        # Lock for thread safety
        self._lock = threading.RLock()

        # Statistics
        self._accepted = 0
        self._replays = 0

    def check(self, counter: int) -> bool:
        """
        Check whether a counter would be accepted (without recording).

        Returns:
            True if the counter is new
        """
        with self._lock:
            return self._is_new(counter)

    def _is_new(self, counter: int) -> bool:
        if counter < 0:
            return False
        if counter > self._top:
            return True
        offset = self._top - counter
        if offset >= self._size:
            return False
        return not (self._bitmap >> offset) & 1

    def check_and_record(self, counter: int) -> bool:
        """
        Check a counter and mark it consumed if it is new.

        This is the primary interface; call it only after the message
        carrying the counter has been authenticated.

        Returns:
            True if the counter is new (now recorded)
            False if it is a replay
        """
        with self._lock:
            if not self._is_new(counter):
                self._replays += 1
                return False

            if counter > self._top:
                shift = counter - self._top
                if shift >= self._size:
                    self._bitmap = 1
                else:
                    self._bitmap = ((self._bitmap << shift) | 1) & ((1 << self._size) - 1)
                self._top = counter
            else:
                self._bitmap |= 1 << (self._top - counter)

            self._accepted += 1
            return True

    @property
    def highest(self) -> int:
        """Highest accepted counter, or -1."""
        with self._lock:
            return self._top

    def clear(self) -> None:
        """Forget all recorded counters."""
        with self._lock:
            self._top = -1
            self._bitmap = 0

    def get_stats(self) -> dict:
        """
        Get window statistics.

        Returns:
            dict: Statistics including size, highest counter, accepted, replays
        """
        with self._lock:
            return {
                "size": self._size,
                "highest": self._top,
                "accepted": self._accepted,
                "replays": self._replays,
            }

    def __contains__(self, counter: int) -> bool:
        """Check if a counter has already been consumed."""
        return not self.check(counter)
