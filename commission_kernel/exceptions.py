"""
Typed Exception Hierarchy for the Commission Service.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (command handlers, API adapters, operators reading logs) need to tell
"another instance is already running the batch" apart from "the requested
trading day is older than one already completed" without parsing messages.

Every exception:
  1. Has its own class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        engine.run_batch(operation_id, trading_day, parameters)
    except BatchAlreadyRunningError as e:
        publisher.publish(StartFailedEvent(..., fail_reason=str(e)))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CommissionServiceError (base)
    |
    +-- ConcurrencyError
    |   +-- BatchAlreadyRunningError
    |
    +-- BatchError
    |   +-- TradingDayOrderError
    |   +-- TaskNotRegisteredError
    |
    +-- PricingError
    |   +-- AssetPairNotFoundError
    |   +-- FxRateNotFoundError
    |
    +-- LedgerError
    |   +-- OperationNotFoundError
    |   +-- InvalidStateTransitionError
    |
    +-- SettingsError
    |   +-- RateSettingsValidationError
    |
    +-- IdentifierError
    |   +-- InvalidItemIdError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                       | When Raised
-------------|----------------------------|------------------------------------
Concurrency  | BATCH_ALREADY_RUNNING      | Distributed lock held elsewhere
-------------|----------------------------|------------------------------------
Batch        | TRADING_DAY_ORDER          | Requested day older than completed
             | TASK_NOT_REGISTERED        | No calculation task for the kind
-------------|----------------------------|------------------------------------
Pricing      | ASSET_PAIR_NOT_FOUND       | Position instrument unknown
             | FX_RATE_NOT_FOUND          | No conversion quote for instrument
-------------|----------------------------|------------------------------------
Ledger       | OPERATION_NOT_FOUND        | Ledger row missing
             | INVALID_STATE_TRANSITION   | Transition not in workflow
-------------|----------------------------|------------------------------------
Settings     | RATE_SETTINGS_INVALID      | Required rate field missing on write
-------------|----------------------------|------------------------------------
Identifier   | INVALID_ITEM_ID            | Item id without separator
-------------|----------------------------|------------------------------------
Config       | CONFIGURATION_ERROR        | Settings file malformed

Item-level pricing errors never escape a batch run: the engine records them
as failed results.  Duplicate commands and missing settings are not errors.
"""


class CommissionServiceError(Exception):
    """
    Base exception for all commission service errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "COMMISSION_SERVICE_ERROR"


# Concurrency-related exceptions


class ConcurrencyError(CommissionServiceError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class BatchAlreadyRunningError(ConcurrencyError):
    """The distributed lock guarding a batch run is held by another holder."""

    code: str = "BATCH_ALREADY_RUNNING"

    def __init__(self, lock_key: str, holder_id: str | None = None):
        self.lock_key = lock_key
        self.holder_id = holder_id
        super().__init__(
            f"Calculation process guarded by {lock_key} is already in progress."
        )


# Batch-related exceptions


class BatchError(CommissionServiceError):
    """Base exception for batch run errors."""

    code: str = "BATCH_ERROR"


class TradingDayOrderError(BatchError):
    """A batch was requested for a day older than one already calculated."""

    code: str = "TRADING_DAY_ORDER"

    def __init__(self, requested_day: str, latest_day: str):
        self.requested_day = requested_day
        self.latest_day = latest_day
        super().__init__(
            f"Calculation started for {requested_day}, but there already was "
            f"calculation for a newer date {latest_day}"
        )


class TaskNotRegisteredError(BatchError):
    """No calculation task is registered for the requested kind."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, kind: str, available: tuple[str, ...] = ()):
        self.kind = kind
        self.available = available
        super().__init__(
            f"No calculation task registered for '{kind}'. "
            f"Available: {list(available)}"
        )


# Pricing-related exceptions


class PricingError(CommissionServiceError):
    """Base exception for per-item pricing failures."""

    code: str = "PRICING_ERROR"


class AssetPairNotFoundError(PricingError):
    """The position's instrument is not among the known asset pairs."""

    code: str = "ASSET_PAIR_NOT_FOUND"

    def __init__(self, asset_pair_id: str):
        self.asset_pair_id = asset_pair_id
        super().__init__(f"Instrument {asset_pair_id} does not exist in cache")


class FxRateNotFoundError(PricingError):
    """No conversion quote is available for the instrument."""

    code: str = "FX_RATE_NOT_FOUND"

    def __init__(self, instrument_id: str, message: str | None = None):
        self.instrument_id = instrument_id
        super().__init__(message or f"There is no quote for {instrument_id}")


# Ledger-related exceptions


class LedgerError(CommissionServiceError):
    """Base exception for idempotency ledger errors."""

    code: str = "LEDGER_ERROR"


class OperationNotFoundError(LedgerError):
    """No ledger row exists for the operation identity."""

    code: str = "OPERATION_NOT_FOUND"

    def __init__(self, operation_name: str, operation_id: str):
        self.operation_name = operation_name
        self.operation_id = operation_id
        super().__init__(
            f"Operation {operation_name}/{operation_id} not found"
        )


class InvalidStateTransitionError(LedgerError, ValueError):
    """The requested transition is not declared by the operation workflow."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Transition {from_state} -> {to_state} is not allowed"
        )


# Settings-related exceptions


class SettingsError(CommissionServiceError):
    """Base exception for rate settings errors."""

    code: str = "SETTINGS_ERROR"


class RateSettingsValidationError(SettingsError):
    """A rate setting is missing a required field."""

    code: str = "RATE_SETTINGS_INVALID"

    def __init__(self, kind: str, field_name: str, key: str | None = None):
        self.kind = kind
        self.field_name = field_name
        self.key = key
        super().__init__(
            f"{kind} rate {key or ''} is missing required field '{field_name}'"
        )


# Identifier-related exceptions


class IdentifierError(CommissionServiceError):
    """Base exception for identifier parsing errors."""

    code: str = "IDENTIFIER_ERROR"


class InvalidItemIdError(IdentifierError):
    """An item id does not contain the operation/position separator."""

    code: str = "INVALID_ITEM_ID"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item id '{item_id}' has no separator")


# Configuration exceptions


class ConfigurationError(CommissionServiceError):
    """Service configuration is missing or malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message)
