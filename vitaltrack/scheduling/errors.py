class StoreError(Exception):
    """Base class for failures talking to the appointment store."""


class StoreUnavailableError(StoreError):
    """The store could not be reached or refused the request."""


class StoreTimeoutError(StoreUnavailableError):
    """The store did not answer in time. Safe to retry once."""


class DocumentNotFoundError(StoreError):
    def __init__(self, collection: str, document_id: str):
        super().__init__(f"{collection} document {document_id!r} not found")
        self.collection = collection
        self.document_id = document_id


class ValidationError(ValueError):
    """Input rejected before any write is attempted."""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))
