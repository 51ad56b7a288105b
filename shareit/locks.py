import threading
from contextlib import contextmanager


class KeyedLock:
    """
    A registry of mutexes keyed by an arbitrary hashable value.
    Entries are dropped again once no thread holds or waits for them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self):
        with self._guard:
            return len(self._entries)


# Serializes booking creation per item and transitions per booking
# inside this process. Keys are ("item", id) and ("booking", id).
booking_locks = KeyedLock()
