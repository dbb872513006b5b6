"""
Reconciliation layer: live collections over entity-store subscriptions.

A ``LiveCollection`` owns at most one subscription at a time and exposes
render-ready state for it:

    LOADING ──first snapshot──▶ READY ──key change──▶ LOADING ...
       │                          │
       └──────── close() ─────────┴──▶ UNSUBSCRIBED (terminal)
    store error on the current subscription ──▶ FAILED (terminal)

* Every snapshot replaces ``items`` wholesale, in the order the store sent it.
* Only the first snapshot of a subscription flips LOADING → READY. The
  subscription handle carries the AWAITING_FIRST / STREAMING tag and moves
  between them exactly once.
* ``set_key`` tears the old subscription down before opening the new one.
  A ``None`` key on a scoped collection means "nothing to show": items are
  cleared and the state is READY, not LOADING.
* ``close()`` is idempotent; callbacks from a closed or superseded handle
  are ignored.

Usage:
    from pdca.services.reconciliation import LiveCollection

    with LiveCollection(store, "actions", project_id) as actions:
        if actions.ready:
            render(actions.items)
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class LoadState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    UNSUBSCRIBED = "unsubscribed"
    FAILED = "failed"


class StreamPhase(str, Enum):
    AWAITING_FIRST = "awaiting_first"
    STREAMING = "streaming"


class SubscriptionHandle:
    """One store subscription plus its first-snapshot phase tag."""

    def __init__(self, kind, key):
        self.kind = kind
        self.key = key
        self.phase = StreamPhase.AWAITING_FIRST
        self.active = True
        self._unsubscribe = None

    def attach(self, unsubscribe):
        self._unsubscribe = unsubscribe
        if not self.active:
            unsubscribe()

    def mark_streaming(self) -> bool:
        """Move AWAITING_FIRST → STREAMING. True only on the first call."""
        if self.phase is StreamPhase.STREAMING:
            return False
        self.phase = StreamPhase.STREAMING
        return True

    def close(self):
        if not self.active:
            return
        self.active = False
        if self._unsubscribe is not None:
            self._unsubscribe()

    def __repr__(self) -> str:
        return f"<SubscriptionHandle {self.kind}:{self.key} {self.phase.value} active={self.active}>"


class LiveCollection:
    """Render-ready state for one collection subscription."""

    def __init__(self, store, kind, key=None, *, scoped=True, on_change=None):
        self.store = store
        self.kind = kind
        self.scoped = scoped
        self.on_change = on_change
        self.items: list[dict] = []
        self.error = None
        self.state = LoadState.LOADING
        self.key = None
        self._handle = None
        self._subscribe(key)

    # ── State accessors ──────────────────────────────────────────────────

    @property
    def loading(self) -> bool:
        return self.state is LoadState.LOADING

    @property
    def ready(self) -> bool:
        return self.state is LoadState.READY

    @property
    def closed(self) -> bool:
        return self.state in (LoadState.UNSUBSCRIBED, LoadState.FAILED)

    @property
    def handle(self):
        return self._handle

    @property
    def phase(self):
        return self._handle.phase if self._handle else None

    @property
    def first(self):
        """Single-document view (``project`` kind): first item or None."""
        return self.items[0] if self.items else None

    # ── Subscription management ──────────────────────────────────────────

    def _subscribe(self, key):
        self.key = key
        self.error = None
        if self.scoped and key is None:
            self._handle = None
            self.items = []
            self._set_state(LoadState.READY)
            return

        handle = SubscriptionHandle(self.kind, key)
        self._handle = handle
        self._set_state(LoadState.LOADING)
        unsubscribe = self.store.subscribe(
            self.kind, key,
            lambda snapshot: self._on_snapshot(handle, snapshot),
            lambda exc: self._on_error(handle, exc),
        )
        handle.attach(unsubscribe)

    def set_key(self, key):
        """Re-point the collection at another scope (e.g. another project)."""
        if self.closed:
            raise RuntimeError(f"LiveCollection {self.kind} is {self.state.value}")
        if key == self.key and (self._handle is not None or self.scoped and key is None):
            return
        if self._handle is not None:
            self._handle.close()
        self._subscribe(key)

    def close(self):
        if self.state is LoadState.UNSUBSCRIBED:
            return
        if self._handle is not None:
            self._handle.close()
        if self.state is not LoadState.FAILED:
            self.state = LoadState.UNSUBSCRIBED

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ── Store callbacks ──────────────────────────────────────────────────

    def _is_current(self, handle) -> bool:
        return handle is self._handle and handle.active and not self.closed

    def _on_snapshot(self, handle, snapshot):
        if not self._is_current(handle):
            logger.debug("Ignoring stale snapshot kind=%s key=%s", handle.kind, handle.key)
            return
        self.items = list(snapshot)
        if handle.mark_streaming():
            self._set_state(LoadState.READY)
        elif self.on_change is not None:
            self.on_change(self)

    def _on_error(self, handle, exc):
        if not self._is_current(handle):
            return
        logger.warning("Subscription failed kind=%s key=%s: %s", handle.kind, handle.key, exc,
                       extra={"collection": handle.kind})
        self.error = exc
        self.state = LoadState.FAILED
        handle.close()
        if self.on_change is not None:
            self.on_change(self)

    def _set_state(self, state):
        self.state = state
        if self.on_change is not None:
            self.on_change(self)

    def __repr__(self) -> str:
        return f"<LiveCollection {self.kind}:{self.key} {self.state.value} n={len(self.items)}>"
