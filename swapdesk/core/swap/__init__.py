"""
Swap Decision Core

Derives the swap screen's primary action from quote, allowance, price
impact and input state, and drives the confirm/submit lifecycle.
"""

from .allowance import AllowanceCoordinator, AllowanceKey, AllowanceState, AllowanceStatus
from .attempt import AttemptPhase, Confirming, Failed, Settled, Submitting, SwapAttempt
from .collaborators import SwapExecutor, TokenApprover, WalletConnector, WrapExecutor
from .errors import (
    AllowanceContractError,
    AuthorizationError,
    ErrorCategory,
    ExecutionError,
    InputError,
    InvalidTransitionError,
    RouteNotFoundError,
    SwapDeskError,
    UnsupportedAssetError,
)
from .impact import ImpactAssessment, ImpactGate, ImpactSeverity, warning_severity
from .models import (
    FiatValues,
    OperationOutcome,
    OutcomeStatus,
    Quote,
    QuoteRequest,
    QuoteStatus,
    SwapEnvironment,
    SwapField,
    SwapInputs,
    Token,
    TokenAmount,
    Trade,
    WrapType,
)
from .orchestrator import (
    ConfirmationModalProps,
    PrimaryAction,
    SwapFlowState,
    SwapOrchestrator,
    build_orchestrator,
)
from .quote_tracker import QuoteTelemetryWindow, QuoteTracker

__all__ = [
    # Orchestrator
    "SwapOrchestrator",
    "SwapFlowState",
    "PrimaryAction",
    "ConfirmationModalProps",
    "build_orchestrator",
    # Components
    "QuoteTracker",
    "QuoteTelemetryWindow",
    "AllowanceCoordinator",
    "AllowanceKey",
    "AllowanceState",
    "AllowanceStatus",
    "ImpactGate",
    "ImpactAssessment",
    "ImpactSeverity",
    "warning_severity",
    # Attempt lifecycle
    "AttemptPhase",
    "SwapAttempt",
    "Confirming",
    "Submitting",
    "Settled",
    "Failed",
    # Collaborators
    "TokenApprover",
    "SwapExecutor",
    "WrapExecutor",
    "WalletConnector",
    # Models
    "Token",
    "TokenAmount",
    "Trade",
    "Quote",
    "QuoteRequest",
    "QuoteStatus",
    "SwapEnvironment",
    "SwapField",
    "SwapInputs",
    "WrapType",
    "FiatValues",
    "OperationOutcome",
    "OutcomeStatus",
    # Errors
    "ErrorCategory",
    "SwapDeskError",
    "InputError",
    "RouteNotFoundError",
    "AuthorizationError",
    "ExecutionError",
    "UnsupportedAssetError",
    "AllowanceContractError",
    "InvalidTransitionError",
]
