"""Exception hierarchy for the dispatch OCR pipeline."""


class DispatchOCRError(Exception):
    """Base class for all pipeline errors."""


class ExtractionError(DispatchOCRError):
    """The recognition engine could not process an image."""


class NoExtraction(ExtractionError):
    """Recognition succeeded but yielded neither a tracking ID nor an amount."""

    def __init__(self, message: str = "failed to extract tracking ID or amount") -> None:
        super().__init__(message)


class StoreError(DispatchOCRError):
    """The dispatch store rejected a query or mutation."""


class LookupFailure(DispatchOCRError):
    """A dispatch lookup by tracking ID failed."""


class CommitFailure(DispatchOCRError):
    """Applying a payment update to a dispatch failed."""


class InvalidUpload(DispatchOCRError):
    """An image was refused at batch intake."""


class InvalidTransition(DispatchOCRError):
    """An image job was moved to a state not reachable from its current one."""
