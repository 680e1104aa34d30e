"""
All-or-nothing execution of launchpad operations.

Resources taking part in an operation expose ``snapshot()``, ``restore(snapshot)`` and
``commit(snapshot)``. ``atomic`` takes a snapshot of every participant before the
operation body runs, restores all of them if the body raises and commits them otherwise,
so a failed operation leaves no observable trace.

Shared ledgers (assets, the liquidity venue, the registry) do not copy their contents:
``WriteJournal`` records the previous value of every entry written while an operation is
open and undoes exactly those writes on restore. The cost of an operation therefore
depends on what it touches, not on the size of the ledger.

Callers must serialize operations over shared ledgers; the factory hands one lock to
every sale it spawns for that purpose.
"""
from contextlib import contextmanager
from typing import Any, Dict, Hashable, Iterator, List, Protocol, Tuple, runtime_checkable

from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()


@runtime_checkable
class Journaled(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...

    def commit(self, snapshot: Any) -> None: ...


class WriteJournal:
    """Undo log over dictionary entries, active while at least one operation is open."""

    def __init__(self):
        self._journal: List[Tuple[Dict, Hashable, Any]] = []
        self._depth = 0

    def _write(self, mapping: Dict, key: Hashable, value: Any) -> None:
        if self._depth:
            self._journal.append((mapping, key, mapping.get(key, _MISSING)))
        mapping[key] = value

    def snapshot(self) -> int:
        self._depth += 1
        return len(self._journal)

    def restore(self, snapshot: int) -> None:
        while len(self._journal) > snapshot:
            mapping, key, previous = self._journal.pop()
            if previous is _MISSING:
                del mapping[key]
            else:
                mapping[key] = previous
        self._close()

    def commit(self, snapshot: int) -> None:
        # Nested operations keep their entries until the outermost one commits
        self._close()

    def _close(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._journal.clear()


@contextmanager
def atomic(*resources: Any, operation: str = "operation") -> Iterator[None]:
    """
    Runs the enclosed block as one atomic unit over ``resources``.

    Resources that are not journaled (or are None) are skipped; they are external
    collaborators whose effects cannot be undone from here.
    """
    participants = []
    seen = set()
    for resource in resources:
        if resource is None or id(resource) in seen or not isinstance(resource, Journaled):
            continue
        seen.add(id(resource))
        participants.append(resource)

    snapshots = [(resource, resource.snapshot()) for resource in participants]
    try:
        yield
    except BaseException as e:
        for resource, snap in reversed(snapshots):
            resource.restore(snap)
        logger.warning(f"Rolled back {operation}: {type(e).__name__}: {e}")
        raise
    for resource, snap in reversed(snapshots):
        resource.commit(snap)
