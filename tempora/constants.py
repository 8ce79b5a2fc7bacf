"""Engine-wide defaults."""

from __future__ import annotations

from datetime import timedelta

# Serialized step arguments at or above this length are replaced by a digest.
STEP_KEY_INLINE_LIMIT = 150

# Child ids at or above this length use a digest of the child input.
CHILD_ID_INLINE_LIMIT = 200

# Timestamp component used by activities declared ``unique``.
UNIQUE_STEP_TIMESTAMP = "0"

# Activities the step binder treats as timers instead of invoking them.
TIMER_ACTIVITIES = frozenset({"delay", "wait_for_external_event"})

DEFAULT_IDLE_INTERVAL = timedelta(seconds=15)
DEFAULT_LEASE_TTL = timedelta(minutes=5)
DEFAULT_BATCH_SIZE = 100
DEFAULT_UNBOUNDED_WAIT = timedelta(days=1)

DEFAULT_PRESERVE_TIME = timedelta(days=1)
DEFAULT_FAILED_PRESERVE_TIME = timedelta(hours=12)

# A finished child stays around long enough for its parent to read it.
CHILD_RETENTION = timedelta(days=365)
