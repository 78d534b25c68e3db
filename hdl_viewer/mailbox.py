from threading import Lock


class LatestCloud:
    """Single-slot hand-off of the newest cloud from a grabber to the draw loop.

    The producer always wins: `put` waits for the lock and overwrites whatever
    is in the slot. The consumer never waits: `try_take` gives up if the
    producer currently holds the lock and returns None.
    """

    def __init__(self):
        self._lock = Lock()
        self._cloud = None
        self.dropped = 0

    def put(self, cloud):
        with self._lock:
            if self._cloud is not None:
                self.dropped += 1
            self._cloud = cloud

    def try_take(self):
        if not self._lock.acquire(blocking=False):
            return None
        try:
            cloud, self._cloud = self._cloud, None
        finally:
            self._lock.release()
        return cloud
