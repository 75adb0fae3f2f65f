"""Exception hierarchy for docchat.

All library exceptions inherit from :class:`DocChatError`, which carries an
optional ``store_name`` so handlers can tell which index the failure belongs to.

    DocChatError
    +-- StoreNotFoundError     (store absent, nothing to seed it with)
    +-- StoreLoadError         (artifacts present but unreadable)
    +-- PartialWriteFailure    (one side of a dual write failed)
    +-- AggregateWriteFailure  (both sides of a dual write failed)
    +-- RetrievalDegraded      (scored search failed, fallback used)

Only ``StoreNotFoundError``, ``StoreLoadError`` and ``AggregateWriteFailure``
reach callers. ``PartialWriteFailure`` and ``RetrievalDegraded`` are recorded
and logged where they happen.
"""


class DocChatError(Exception):
    """Base exception for all docchat errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        store_name: str | None = None,
    ) -> None:
        self._message = message
        self._store_name = store_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def store_name(self) -> str | None:
        return self._store_name

    def __str__(self) -> str:
        if self._store_name:
            return f"[{self._store_name}] {self._message}"
        return self._message


class StoreNotFoundError(DocChatError):
    """Raised when a store does not exist and no chunks were given to create it.

    Recoverable by calling again with chunks.
    """

    def __init__(self, store_name: str, message: str | None = None) -> None:
        super().__init__(
            message=message
            or "Vector store does not exist and no documents provided to create it",
            store_name=store_name,
        )


class StoreLoadError(DocChatError):
    """Raised when persisted artifacts exist but cannot be read.

    Never auto-recovered: the store needs an explicit rebuild.
    """

    def __init__(
        self,
        store_name: str,
        cause: BaseException | None = None,
        message: str | None = None,
    ) -> None:
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            message=message or f"Failed to load vector store{detail}",
            store_name=store_name,
        )


class PartialWriteFailure(DocChatError):
    """One side ("individual" or "combined") of a document write failed."""

    def __init__(self, side: str, store_name: str, cause: BaseException) -> None:
        self.side = side
        self.cause = cause
        super().__init__(
            message=f"{side} store write failed: {cause}",
            store_name=store_name,
        )


class AggregateWriteFailure(DocChatError):
    """Both the individual and the combined write failed for a document."""

    def __init__(
        self,
        document_id: str,
        individual: PartialWriteFailure,
        combined: PartialWriteFailure,
    ) -> None:
        self.document_id = document_id
        self.individual = individual
        self.combined = combined
        super().__init__(
            message=(
                f"Failed to add document {document_id} to both individual and "
                f"combined stores. Individual: {individual.cause}; "
                f"Combined: {combined.cause}"
            ),
        )

    @property
    def causes(self) -> tuple[BaseException, BaseException]:
        """Underlying exceptions of the individual and combined writes."""
        return (self.individual.cause, self.combined.cause)


class RetrievalDegraded(DocChatError):
    """Scored search failed and plain similarity search was used instead."""

    def __init__(self, store_name: str, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(
            message=f"Scored search failed, falling back to similarity: {cause}",
            store_name=store_name,
        )
