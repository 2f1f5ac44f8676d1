"""Dictionary-backed dispatch store for tests and dry runs."""

import copy
from dataclasses import replace
from typing import Any

from dispatch_ocr.errors import StoreError
from dispatch_ocr.models import Dispatch


class InMemoryDispatchStore:
    """Keeps dispatches in insertion order in a plain dict."""

    def __init__(self, dispatches: list[Dispatch] | None = None) -> None:
        self._dispatches: dict[str, Dispatch] = {}
        for dispatch in dispatches or []:
            self.add(dispatch)

    def add(self, dispatch: Dispatch) -> None:
        self._dispatches[dispatch.id] = copy.deepcopy(dispatch)

    def get(self, dispatch_id: str) -> Dispatch | None:
        dispatch = self._dispatches.get(dispatch_id)
        return copy.deepcopy(dispatch) if dispatch else None

    def find_by_tracking_id(self, tracking_id: str) -> list[Dispatch]:
        return [
            copy.deepcopy(d)
            for d in self._dispatches.values()
            if d.tracking_id.upper() == tracking_id.upper()
        ]

    def update(self, dispatch_id: str, changes: dict[str, Any]) -> None:
        if dispatch_id not in self._dispatches:
            raise StoreError(f"Dispatch {dispatch_id} not found")
        try:
            self._dispatches[dispatch_id] = replace(
                self._dispatches[dispatch_id], **changes
            )
        except TypeError as exc:
            raise StoreError(f"Invalid update for {dispatch_id}: {exc}") from exc
