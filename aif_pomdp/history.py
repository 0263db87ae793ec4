"""
Per-cycle record of everything the agent computed.

The history is for diagnostics and replay only; control decisions never read
from it.
"""

from collections import deque

import numpy as np

from .errors import InvalidConfiguration

RECORD_KEYS = (
    "prior",
    "posterior_states",
    "posterior_policies",
    "expected_free_energies",
    "action",
)


def _copy(value):
    if isinstance(value, (list, tuple)):
        return [np.array(v, copy=True) for v in value]
    return np.array(value, copy=True)


class History:
    """
    Append-only log of agent quantities, one entry per control cycle.

    Args:
        policies: the agent's fixed policy set, kept alongside the records
        maxlen: cap on entries per record; oldest entries are dropped once
            reached. None keeps everything.
    """

    def __init__(self, policies=None, maxlen=None):
        if maxlen is not None and maxlen < 1:
            raise InvalidConfiguration(f"maxlen must be positive or None, got {maxlen!r}")
        self.maxlen = maxlen
        self.policies = policies
        self._records = {key: deque(maxlen=maxlen) for key in RECORD_KEYS}

    def record(self, key, value):
        """Append a copy of ``value`` under ``key``."""
        if key not in self._records:
            raise KeyError(f"unknown history record {key!r}")
        self._records[key].append(_copy(value))

    def __getitem__(self, key):
        if key == "policies":
            return self.policies
        return list(self._records[key])

    def __len__(self):
        return max(len(entries) for entries in self._records.values())

    def flush(self):
        """Return all records as lists and clear them."""
        out = {key: list(entries) for key, entries in self._records.items()}
        for entries in self._records.values():
            entries.clear()
        return out

    def clear(self):
        for entries in self._records.values():
            entries.clear()
