"""Dispatch store contract and tracking ID lookup."""

from typing import Any, Protocol

from dispatch_ocr.errors import LookupFailure, StoreError
from dispatch_ocr.models import Dispatch
from dispatch_ocr.utils.logger import get_logger

logger = get_logger(__name__)


class DispatchStore(Protocol):
    """Backing store for dispatch records.

    Implementations raise ``StoreError`` when a query or mutation fails.
    """

    def find_by_tracking_id(self, tracking_id: str) -> list[Dispatch]:
        """Return every dispatch whose tracking ID equals ``tracking_id``."""
        ...

    def update(self, dispatch_id: str, changes: dict[str, Any]) -> None:
        """Apply ``changes`` to the dispatch with id ``dispatch_id``."""
        ...


def lookup_dispatch(store: DispatchStore, tracking_id: str) -> Dispatch | None:
    """Find the dispatch carrying a tracking ID.

    Tracking IDs are expected to be unique but the store does not enforce
    it; when several records match, the first one is returned and the
    ambiguity is logged.

    Args:
        store: Dispatch store to query.
        tracking_id: Tracking ID, matched case-insensitively.

    Returns:
        The matching dispatch, or ``None``.

    Raises:
        LookupFailure: If the store query fails for any reason.
    """
    normalized = tracking_id.strip().upper()
    try:
        matches = store.find_by_tracking_id(normalized)
    except StoreError as exc:
        raise LookupFailure(f"Lookup failed for {normalized}: {exc}") from exc
    except Exception as exc:
        logger.exception("Unexpected store failure looking up %s", normalized)
        raise LookupFailure(f"Lookup failed for {normalized}: {exc}") from exc

    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            "Tracking ID %s matches %d dispatches (%s); using %s",
            normalized,
            len(matches),
            ", ".join(d.id for d in matches),
            matches[0].id,
        )
    return matches[0]
