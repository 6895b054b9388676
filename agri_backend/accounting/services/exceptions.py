# accounting/services/exceptions.py

"""
ACCOUNTING SERVICE ERRORS

Centralized domain errors for accounting services.

Three families, so callers can tell "bad input, nothing happened" from
"blocked by committed state" from "must never reach storage":
- ValidationFault: malformed input, rejected before any write
- StateConflict:   closed period/cycle, already reversed, active allocations,
                   over-application, insufficient stock
- IntegrityFault:  balance or allocation invariant violated (fatal)
"""


class AccountingServiceError(Exception):
    """Base exception for all accounting service failures."""


# ------------------------------------------------------------
# VALIDATION
# ------------------------------------------------------------


class ValidationFault(AccountingServiceError, ValueError):
    """Malformed input. Nothing was written; fix the input and retry."""


class AccountResolutionError(ValidationFault):
    """Raised when an expected account cannot be resolved for the tenant."""


class PostingGroupNotFound(ValidationFault):
    """Raised when a posting group does not exist for the tenant."""


class ShareRuleError(ValidationFault):
    """Raised when a share rule is malformed or cannot be resolved."""


# ------------------------------------------------------------
# STATE CONFLICTS
# ------------------------------------------------------------


class StateConflict(AccountingServiceError):
    """Blocked by existing committed state. Nothing was written."""


class PeriodLockedError(StateConflict):
    """Raised when attempting to post into a closed accounting period."""


class PeriodStateError(StateConflict):
    """Raised on invalid period transitions (overlap, already closed/open)."""


class CropCycleClosedError(StateConflict):
    """Raised when posting into a closed crop cycle."""


class PostingDateOutOfRangeError(StateConflict):
    """Raised when the posting date falls outside the crop cycle range."""


class ReversalNotAllowedError(StateConflict):
    """Raised when a posting group may not be reversed (e.g. it is a reversal)."""


class AlreadyReversedError(StateConflict):
    """Raised when a posting group already has a reversal on another date."""


class ActiveAllocationsError(StateConflict):
    """Raised when ACTIVE downstream allocations block a reversal."""


class InsufficientStockError(StateConflict):
    """Raised when an outbound stock movement exceeds on-hand quantity."""


class OverApplicationError(StateConflict):
    """Raised when a payment would exceed an outstanding balance."""


class ShareRuleInUseError(StateConflict):
    """Raised when editing a share rule already frozen into allocation snapshots."""


class DocumentStateError(StateConflict):
    """Raised when a source document is not in the state an action requires."""


# ------------------------------------------------------------
# INTEGRITY
# ------------------------------------------------------------


class IntegrityFault(AccountingServiceError):
    """An invariant would be violated. Fatal; never committed."""


class UnbalancedPostingError(IntegrityFault):
    """Raised when debits and credits of a posting group differ."""


class AllocationMismatchError(IntegrityFault):
    """Raised when allocation rows do not sum to their pool's ledger amount."""
