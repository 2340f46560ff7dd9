"""
Persistence - Q-Table Snapshots on Disk.

This module provides:
- QTableStore: JSON save/load of the Q-table and visit counts
- ShutdownGuard: best-effort save on interpreter exit and SIGINT/SIGTERM

File Format:
============
A QTableSnapshot serialized as JSON:

    {
      "action_count": 29,
      "episode_count": 1200,
      "saved_at": "2026-10-18T12:00:00+00:00",
      "q_states": ["0_0_0_0_1_1_1_4_1_4_0", ...],
      "q_values": [[0.0, 1.25, ...], ...],
      "visit_states": [...],
      "visit_counts": [...]
    }

Loading never aborts startup: a missing or corrupt file yields empty tables,
and a vector whose length differs from the current action count, or that
holds NaN/inf, is dropped (never truncated or padded) with a warning.
Non-finite vectors are also left out at save time.

Usage:
    store = QTableStore("BossQTable.json")
    report = store.load(table)
    ...
    store.save(table, episode_count=manager.episode_count)
"""

import atexit
import logging
import math
import os
import signal
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from ai.q_table import QTable
from ai.state_encoder import SENTINEL_STATE
from models import QTableSnapshot


logger = logging.getLogger(__name__)


# =============================================================================
# LOAD REPORT
# =============================================================================

@dataclass
class LoadReport:
    """What a load() call found on disk."""
    path: str
    found: bool = False
    states_loaded: int = 0
    visits_loaded: int = 0
    dropped_states: List[str] = field(default_factory=list)
    episode_count: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.found and self.error is None


# =============================================================================
# Q-TABLE STORE
# =============================================================================

class QTableStore:
    """
    Durable storage for a QTable.

    Saves are serialized by a lock so at most one is in flight; the file is
    written to a temporary sibling and atomically renamed over the target.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._owner: Optional[int] = None

    def saving_on_this_thread(self) -> bool:
        """True while the calling thread is inside save()."""
        return self._owner == threading.get_ident()

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def snapshot(self, table: QTable, episode_count: Optional[int] = None) -> QTableSnapshot:
        q_states, q_values = [], []
        for state, values in table.items():
            vector = [float(v) for v in values]
            if not all(math.isfinite(v) for v in vector):
                # JSON cannot carry NaN/inf
                logger.warning(f"[Persistence] Not saving state {state!r}: non-finite Q-values")
                continue
            q_states.append(state)
            q_values.append(vector)

        visit_states, visit_counts = [], []
        for state, count in table.visit_items():
            visit_states.append(state)
            visit_counts.append(int(count))

        return QTableSnapshot(
            action_count=table.action_count,
            episode_count=episode_count,
            q_states=q_states,
            q_values=q_values,
            visit_states=visit_states,
            visit_counts=visit_counts,
        )

    def save(self, table: QTable, episode_count: Optional[int] = None,
             timeout: Optional[float] = None) -> bool:
        """
        Write a full snapshot.

        Args:
            table: Table to persist
            episode_count: Lifetime episode counter stored as metadata
            timeout: Max seconds to wait for an in-flight save (None waits forever)

        Returns:
            True on success; False if the lock timed out or I/O failed
        """
        if self.saving_on_this_thread():
            logger.warning("[Persistence] Save skipped: this thread is already saving")
            return False

        acquired = self._lock.acquire(timeout=-1 if timeout is None else max(0.0, timeout))
        if not acquired:
            logger.warning(f"[Persistence] Save skipped: another save still in flight after {timeout}s")
            return False

        self._owner = threading.get_ident()
        tmp_path = None
        try:
            payload = self.snapshot(table, episode_count).model_dump_json(indent=2)

            directory = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(directory, exist_ok=True)
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=directory,
                                             prefix='.qtable-', suffix='.tmp', delete=False) as f:
                tmp_path = f.name
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None

            logger.info(f"[Persistence] Q-table saved to '{self.path}'. {len(table)} states saved.")
            return True
        except (OSError, ValueError) as e:
            logger.error(f"[Persistence] Failed to save Q-table to '{self.path}': {e}")
            return False
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
            self._owner = None
            self._lock.release()

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def read_snapshot(self) -> Tuple[Optional[QTableSnapshot], LoadReport]:
        """Parse the file without touching any table."""
        report = LoadReport(path=self.path)
        if not os.path.exists(self.path):
            logger.info(f"[Persistence] No saved Q-table at '{self.path}'. Starting with empty tables.")
            return None, report

        report.found = True
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                snapshot = QTableSnapshot.model_validate_json(f.read())
        except (OSError, ValidationError, ValueError) as e:
            report.error = str(e)
            logger.error(f"[Persistence] Failed to load Q-table from '{self.path}': {e}")
            return None, report
        return snapshot, report

    def load(self, table: QTable) -> LoadReport:
        """
        Replace table's contents with the saved snapshot.

        On any parse failure the table is left empty. Entries whose vector
        length differs from table.action_count are dropped with a warning.
        """
        snapshot, report = self.read_snapshot()
        table.clear()
        if snapshot is None:
            return report

        if snapshot.action_count != table.action_count:
            logger.warning(f"[Persistence] Snapshot action_count {snapshot.action_count} != "
                           f"current {table.action_count}; validating every vector")

        for state, values in zip(snapshot.q_states, snapshot.q_values):
            if not state or state == SENTINEL_STATE:
                continue
            if len(values) != table.action_count:
                report.dropped_states.append(state)
                continue
            if not all(math.isfinite(v) for v in values):
                report.dropped_states.append(state)
                continue
            table.set_values(state, values)
        report.states_loaded = len(table)

        for state, count in zip(snapshot.visit_states, snapshot.visit_counts):
            if state:
                table.set_visits(state, count)
        report.visits_loaded = table.visited_states
        report.episode_count = snapshot.episode_count

        if report.dropped_states:
            logger.warning(f"[Persistence] Dropped {len(report.dropped_states)} entries with a "
                           f"non-finite vector or one not matching {table.action_count} actions")
        logger.info(f"[Persistence] Q-table loaded. {report.states_loaded} states, "
                    f"{report.visits_loaded} visit counts.")
        return report


# =============================================================================
# SHUTDOWN GUARD
# =============================================================================

class ShutdownGuard:
    """
    Runs a save callback once on interpreter exit or SIGINT/SIGTERM.

    Previously installed signal handlers are chained after the save. The
    callback is expected to bound its own waiting (see QTableStore.save's
    timeout) so shutdown is never blocked indefinitely.

    A signal that lands while busy_fn() reports a save running on the
    signalled thread is deferred: the interrupted save completes, then
    resume() treats it as the shutdown save and chains the signal.
    """

    def __init__(self, save_fn: Callable[[], bool],
                 signals: Tuple[int, ...] = (signal.SIGINT, signal.SIGTERM),
                 busy_fn: Optional[Callable[[], bool]] = None):
        self._save_fn = save_fn
        self._signals = signals
        self._busy_fn = busy_fn
        self._previous = {}
        self._installed = False
        self._deferred: Optional[int] = None
        self.fired = False

    def install(self) -> None:
        if self._installed:
            return
        atexit.register(self.run)
        for sig in self._signals:
            try:
                self._previous[sig] = signal.getsignal(sig)
                signal.signal(sig, self._handle_signal)
            except ValueError:
                # signal handlers can only be set from the main thread
                logger.warning(f"[Persistence] Cannot hook signal {sig} outside the main thread")
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        atexit.unregister(self.run)
        for sig, previous in self._previous.items():
            try:
                signal.signal(sig, previous)
            except ValueError:
                logger.warning(f"[Persistence] Cannot restore signal {sig} outside the main thread")
        self._previous.clear()
        self._installed = False

    @property
    def deferred(self) -> bool:
        return self._deferred is not None

    def run(self) -> None:
        """Invoke the save callback at most once."""
        if self.fired:
            return
        self.fired = True
        try:
            self._save_fn()
        except Exception:
            logger.exception("[Persistence] Shutdown save failed")

    def resume(self, saved: bool) -> None:
        """
        Act on a deferred signal once the save it interrupted has returned.

        Args:
            saved: Whether that save succeeded (if not, the shutdown save runs now)
        """
        if self._deferred is None:
            return
        signum, self._deferred = self._deferred, None
        if saved:
            self.fired = True
        else:
            self.run()
        self._chain(signum, None)

    def _handle_signal(self, signum, frame) -> None:
        if self._busy_fn is not None and self._busy_fn():
            logger.warning(f"[Persistence] Signal {signum} arrived mid-save; "
                           f"handling it once the save completes")
            self._deferred = signum
            return
        self.run()
        self._chain(signum, frame)

    def _chain(self, signum, frame) -> None:
        previous = self._previous.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif signum == signal.SIGINT:
            raise KeyboardInterrupt
        elif previous != signal.SIG_IGN:
            raise SystemExit(128 + signum)
