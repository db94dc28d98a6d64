"""Domain exceptions for the tenancy bounded context.

Raised by aggregates when an operation would break one of their own rules.
"""


class InvalidStatusTransitionError(Exception):
    """Raised when a provisioning record is moved out of a terminal state.

    Ledger status is monotonic: ``pending`` becomes ``completed`` or
    ``failed`` exactly once.
    """

    def __init__(self, record_id: str, current: str, target: str) -> None:
        self.record_id = record_id
        self.current = current
        self.target = target
        super().__init__(
            f"Provisioning record {record_id} cannot move from {current} to {target}"
        )


class ProfileAlreadyBoundError(Exception):
    """Raised when binding a profile already linked to another identity."""

    pass


class TenantDeactivatedError(Exception):
    """Raised when changing the owner of a deactivated tenant."""

    pass
