from __future__ import annotations

from collections.abc import Iterable, Iterator, MutableMapping
from typing import Any

from pwsession.constants import TRACKED_NAMES
from pwsession.exceptions import UntrackedName


class DurableNamespace(MutableMapping[str, Any]):
    """Per-session store for the values of tracked names.

    Only names from the fixed tracked set are accepted, so the set stays an explicit
    contract between the rewriter and the execution environment.
    """

    def __init__(self, tracked_names: Iterable[str] = TRACKED_NAMES) -> None:
        self.tracked_names = frozenset(tracked_names)
        self._slots: dict[str, Any] = {}

    def __getitem__(self, name: str) -> Any:
        return self._slots[name]

    def __setitem__(self, name: str, value: Any) -> None:
        if name not in self.tracked_names:
            raise UntrackedName(name)
        self._slots[name] = value

    def __delitem__(self, name: str) -> None:
        del self._slots[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __repr__(self) -> str:
        return f"DurableNamespace({sorted(self._slots)})"
