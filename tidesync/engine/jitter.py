"""Per-install jitter offsets.

Each install draws one seed from a high-entropy source the first time
it runs and keeps it for life. Offsets are then a deterministic
sequence from that seed: the same machine keeps the same statistical
behaviour across restarts, while different machines spread their
requests over the configured range.
"""

import logging
import random
import secrets

from tidesync.engine.state_store import RetryStateStore

logger = logging.getLogger(__name__)


class JitterSource:
    """Seeded generator of offsets in ``[low, high)``.

    Successive draws advance an internal counter, so repeated calls
    within a session do not collapse to the same value.
    """

    def __init__(self, seed: int) -> None:
        self._seed = seed
        self._rng = random.Random(seed)
        self._draws = 0

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def draws(self) -> int:
        """Number of offsets drawn so far."""
        return self._draws

    def offset(self, low: int, high: int) -> int:
        """Draw an offset in ``[low, high)``; ``low`` if the range is empty."""
        if high <= low:
            return low
        self._draws += 1
        return self._rng.randrange(low, high)


def generate_seed() -> int:
    """Draw a non-zero 63-bit seed from the OS entropy pool."""
    seed = 0
    while seed == 0:
        seed = secrets.randbits(63)
    return seed


def find_or_create_seed(store: RetryStateStore) -> int:
    """Return the persisted jitter seed, generating and persisting it once."""
    seed = store.get_seed()
    if seed != 0:
        return seed

    seed = generate_seed()
    store.set_seed(seed)
    logger.info("Generated new jitter seed for this install")
    return seed
