import threading


class RoundTimer:
    """Per-round countdown. ``tick`` reports expiry exactly once."""

    def __init__(self, seconds: int):
        self.total = int(seconds)
        self.remaining = int(seconds)
        self.expired = False
        self._lock = threading.Lock()

    def tick(self, step: int = 1) -> bool:
        with self._lock:
            if self.expired:
                return False
            self.remaining = max(0, self.remaining - step)
            if self.remaining == 0:
                self.expired = True
                return True
            return False

    def to_dict(self) -> dict:
        return {'total': self.total, 'remaining': self.remaining, 'expired': self.expired}
