"""
Swap Error Classification

Every failure in the swap core resolves to a well-defined state with a
retry path. These types carry the category and recoverability that decide
which state that is. Only the contract errors at the bottom are raised to
callers. Input, route and unsupported-asset errors ride on the disabled
primary action; the rest are caught at the async boundaries and folded into
an OperationOutcome.
"""

from enum import Enum
from typing import Any, Dict, Optional

from .constants import LABEL_INSUFFICIENT_LIQUIDITY, LABEL_UNSUPPORTED_ASSET


class ErrorCategory(str, Enum):
    """Categories of swap errors."""

    INPUT = "input"                       # User-correctable, shown inline
    ROUTE = "route"                       # No executable route for the pair/amount
    AUTHORIZATION = "authorization"       # Spending approval failed
    EXECUTION = "execution"               # Swap submission failed
    UNSUPPORTED_ASSET = "unsupported_asset"  # Pair cannot be swapped here
    CONTRACT = "contract"                 # Caller broke an operation precondition


class SwapDeskError(Exception):
    """Base class for errors raised or recorded by the swap core."""

    category: ErrorCategory = ErrorCategory.EXECUTION
    recoverable: bool = True

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "recoverable": self.recoverable,
            "message": self.message,
            "details": self.details,
        }


class InputError(SwapDeskError):
    """Typed input cannot be swapped as-is (no amount, no token, bad recipient)."""

    category = ErrorCategory.INPUT


class RouteNotFoundError(SwapDeskError):
    """Informational: no route exists for the requested trade."""

    category = ErrorCategory.ROUTE

    def __init__(self, message: str = LABEL_INSUFFICIENT_LIQUIDITY):
        super().__init__(message)


class AuthorizationError(SwapDeskError):
    """The token approval was rejected or failed. Status reverts to Required."""

    category = ErrorCategory.AUTHORIZATION

    def __init__(
        self,
        message: str = "Token approval failed",
        token: Optional[str] = None,
        spender: Optional[str] = None,
    ):
        super().__init__(message, details={"token": token, "spender": spender})


class ExecutionError(SwapDeskError):
    """The execution service could not submit the swap."""

    category = ErrorCategory.EXECUTION

    def __init__(self, message: str = "Swap failed", code: Optional[str] = None):
        super().__init__(message, details={"code": code} if code else {})
        self.code = code


class UnsupportedAssetError(SwapDeskError):
    """The selected pair is not swappable; fatal until the pair changes."""

    category = ErrorCategory.UNSUPPORTED_ASSET
    recoverable = False

    def __init__(self, message: str = LABEL_UNSUPPORTED_ASSET):
        super().__init__(message)


# Contract violations: raised, never folded into outcomes
class AllowanceContractError(SwapDeskError):
    """authorize() was called while the allowance was not Required."""

    category = ErrorCategory.CONTRACT
    recoverable = False


class InvalidTransitionError(SwapDeskError):
    """A swap attempt operation was called from a phase that does not allow it."""

    category = ErrorCategory.CONTRACT
    recoverable = False

    def __init__(self, from_phase: str, operation: str):
        super().__init__(
            f"Cannot {operation} while attempt is {from_phase}",
            details={"from_phase": from_phase, "operation": operation},
        )
        self.from_phase = from_phase
        self.operation = operation


TRANSACTION_REJECTED_MESSAGE = "Transaction rejected"
SLIPPAGE_MESSAGE = (
    "This transaction will not succeed either due to price movement or fee on transfer. "
    "Try increasing your slippage tolerance."
)


def user_readable_message(error: Exception) -> str:
    """
    Map an exception from an external collaborator to the text shown inline.

    Classified swap errors keep their own message. Generic exceptions are
    matched against the wallet/provider failure patterns users actually hit.
    """
    if isinstance(error, SwapDeskError):
        return error.message

    message = str(error)
    lowered = message.lower()

    rejection_patterns = ["user rejected", "user denied", "4001", "rejected by user"]
    if any(p in lowered for p in rejection_patterns):
        return TRANSACTION_REJECTED_MESSAGE

    slippage_patterns = [
        "too little received",
        "too much requested",
        "insufficient_output_amount",
        "excessive_input_amount",
        "slippage",
    ]
    if any(p in lowered for p in slippage_patterns):
        return SLIPPAGE_MESSAGE

    return message or error.__class__.__name__
