"""Exhaustion detection from round outcomes."""

from __future__ import annotations


class ConvergenceDetector:
    """Decides when further rounds are unlikely to yield new records.

    A round stalls when it accepted nothing and the provider reported no
    progress. `threshold` consecutive stalls after at least one successful
    round mean the source is exhausted. Any progress resets the counter.
    """

    def __init__(self, threshold: int):
        if threshold < 1:
            raise ValueError(f"Stall threshold must be positive, got {threshold}")
        self.threshold = threshold
        self.stalled_rounds = 0
        self.had_success = False

    def record_round(self, accepted: int, progressed: bool) -> bool:
        """Feed one round outcome; returns True once the source is exhausted."""
        if accepted > 0 or progressed:
            self.had_success = True
            self.stalled_rounds = 0
            return False

        if not self.had_success:
            return False

        self.stalled_rounds += 1
        return self.exhausted

    @property
    def exhausted(self) -> bool:
        return self.had_success and self.stalled_rounds >= self.threshold

    def reset(self) -> None:
        self.stalled_rounds = 0
        self.had_success = False
