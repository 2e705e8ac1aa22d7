"""
Typed errors raised across component boundaries.

Item-level problems inside the parse and bulk-review entry points are never
raised; they are collected into result objects instead.
"""


class LedgerflowError(Exception):
    """Base class for all ledgerflow errors."""

    pass


class InvalidActionError(LedgerflowError):
    """A review or match action is missing a required field.

    Raised before any mutation happens.
    """

    pass


class NotFoundError(LedgerflowError):
    """A referenced transaction, receivable, payable or document does not exist."""

    def __init__(self, kind: str, record_id: int | str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class BalanceSyncError(LedgerflowError):
    """A settlement was committed but the owner's cash could not be updated.

    The obligation and transaction link are already persisted; ``obligation``
    holds the settled state.
    """

    def __init__(self, transaction_id: int, obligation, cause: Exception):
        self.transaction_id = transaction_id
        self.obligation = obligation
        self.cause = cause
        super().__init__(
            f"Settled obligation {obligation.id} with transaction {transaction_id} "
            f"but balance sync failed: {cause}"
        )
