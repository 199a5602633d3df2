"""Head-is-latest views over per-line history entries.

Price and paid-status histories are stored as child entities carrying a
monotonically increasing ``seq``. ``OrderedLog`` presents them newest first:
index 0 is the current state.
"""


class OrderedLog:
    def __init__(self, entries) -> None:
        self._entries = sorted(entries, key=lambda e: e.seq, reverse=True)

    def current(self):
        """Latest entry, or None for an empty history."""
        return self._entries[0] if self._entries else None

    def __getitem__(self, index):
        return self._entries[index]

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)
