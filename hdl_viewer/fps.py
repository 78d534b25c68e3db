import time


class RateCounter:
    """Prints the average event rate about once per second."""

    def __init__(self, what, enabled=True, clock=time.time):
        self.what = what
        self.enabled = enabled
        self._clock = clock
        self._count = 0
        self._last = clock()

    def tick(self):
        if not self.enabled:
            return None
        now = self._clock()
        self._count += 1
        if now - self._last < 1.0:
            return None
        hz = self._count / (now - self._last)
        print(f"Average framerate({self.what}): {hz} Hz")
        self._count = 0
        self._last = now
        return hz
