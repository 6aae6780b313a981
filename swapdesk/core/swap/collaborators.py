"""
Interfaces of the services the swap core drives but does not implement.

Token approval, swap execution, wrapping and the wallet drawer all live
outside this package; the orchestrator only awaits them and branches on
what they return or raise.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

from .models import FiatValues, Token, Trade


class TokenApprover(Protocol):
    async def approve(self, owner: str, token: Token, spender: str, amount: Decimal) -> Optional[str]:
        """Approve ``spender`` for ``amount``; return an opaque authorization (permit) if one applies.

        Raises AuthorizationError (or any exception) on rejection or failure.
        """
        ...


class SwapExecutor(Protocol):
    async def execute(
        self,
        trade: Trade,
        fiat_values: FiatValues,
        allowed_slippage: Decimal,
        authorization: Optional[str],
    ) -> str:
        """Submit the swap and return its settlement handle (transaction hash).

        Raises ExecutionError (or any exception) on failure.
        """
        ...


class WrapExecutor(Protocol):
    async def execute_wrap(self) -> Optional[str]:
        ...


class WalletConnector(Protocol):
    def toggle_wallet(self) -> None:
        ...
