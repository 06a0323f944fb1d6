class MarketingOpsError(Exception):
    """Base exception for the execution engine."""

    pass


class InvariantViolationError(MarketingOpsError):
    """Raised when a caller asks for an operation that would corrupt engine state."""

    pass


class PhaseNotStartedError(InvariantViolationError):
    """Raised when completing a phase that has no actual_start_date."""

    def __init__(self, phase_id: str):
        self.phase_id = phase_id
        super().__init__(f"Phase '{phase_id}' cannot be completed: it was never started")


class CrossCampaignMoveError(InvariantViolationError):
    """Raised when a work item is moved to a phase owned by another campaign."""

    def __init__(self, work_item_id: str, phase_id: str):
        self.work_item_id = work_item_id
        self.phase_id = phase_id
        super().__init__(
            f"Work item '{work_item_id}' cannot move to phase '{phase_id}' of a different campaign"
        )


class NotFoundError(MarketingOpsError):
    """Raised when a campaign-scoped record does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} '{record_id}' not found")


class ReasoningServiceError(MarketingOpsError):
    """Raised by the live reasoning client on malformed or unusable responses.

    Always recovered by the correlation engine via the deterministic fallback.
    """

    pass
