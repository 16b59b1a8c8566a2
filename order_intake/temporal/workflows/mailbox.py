"""Per-case signal mailbox used by the order workflow."""

from typing import Any, Dict, Optional

SIGNAL_KINDS = (
    "file_reuploaded",
    "corrections_submitted",
    "selections_submitted",
    "approval_received",
)


class SignalMailbox:
    """One slot per signal kind.

    A new signal overwrites its slot. The workflow resets a slot before it
    starts waiting on it and consumes the value exactly once with :meth:`take`.
    """

    def __init__(self):
        self._slots: Dict[str, Optional[Dict[str, Any]]] = {kind: None for kind in SIGNAL_KINDS}

    def put(self, kind: str, payload: Dict[str, Any]) -> None:
        self._check(kind)
        self._slots[kind] = payload

    def has(self, kind: str) -> bool:
        self._check(kind)
        return self._slots[kind] is not None

    def take(self, kind: str) -> Optional[Dict[str, Any]]:
        self._check(kind)
        payload, self._slots[kind] = self._slots[kind], None
        return payload

    def reset(self, kind: str) -> None:
        self._check(kind)
        self._slots[kind] = None

    @staticmethod
    def _check(kind: str) -> None:
        if kind not in SIGNAL_KINDS:
            raise KeyError(f"Unknown signal kind: {kind}")
