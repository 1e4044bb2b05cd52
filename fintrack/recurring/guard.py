"""
In-flight guard for materialization passes.

A pass for an owner that is already being materialized is a no-op, not an
error and not queued. The guard is an explicit object handed to the
materializer so each process, session or test decides its own scope.
"""

from contextlib import contextmanager
from typing import Iterator


class InFlightGuard:
    """Tracks owners with a materialization pass in progress."""

    def __init__(self):
        self._owners: set[str] = set()

    def is_in_flight(self, owner_id: str) -> bool:
        return owner_id in self._owners

    @contextmanager
    def claim(self, owner_id: str) -> Iterator[bool]:
        """
        Claim the owner for the duration of the block.

        Yields True if the claim succeeded, False if another pass
        already holds it. Only a successful claim is released on exit.
        """
        if owner_id in self._owners:
            yield False
            return

        self._owners.add(owner_id)
        try:
            yield True
        finally:
            self._owners.discard(owner_id)
