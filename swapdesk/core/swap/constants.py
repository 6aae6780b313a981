"""Labels and fixed strings for the swap decision core."""

from __future__ import annotations

# Primary action labels
LABEL_UNSUPPORTED_ASSET = 'Unsupported Asset'
LABEL_CONNECT_WALLET = 'Connect Wallet'
LABEL_WRAP = 'Wrap'
LABEL_UNWRAP = 'Unwrap'
LABEL_INSUFFICIENT_LIQUIDITY = 'Insufficient liquidity for this trade.'
LABEL_APPROVE_TEMPLATE = 'Approve use of {symbol}'
LABEL_APPROVAL_PENDING = 'Approval pending'
LABEL_SWAP = 'Swap'
LABEL_SWAP_ANYWAY = 'Swap Anyway'
LABEL_PRICE_IMPACT_TOO_HIGH = 'Price Impact Too High'

# Input validation messages, in the order they are checked
ERROR_SELECT_TOKEN = 'Select a token'
ERROR_ENTER_AMOUNT = 'Enter an amount'
ERROR_INVALID_RECIPIENT = 'Invalid recipient'
ERROR_INSUFFICIENT_BALANCE_TEMPLATE = 'Insufficient {symbol} balance'

# Swap completion actions, keyed by how the recipient relates to the sender
SWAP_ACTION_NO_RECIPIENT = 'Swap w/o Send'
SWAP_ACTION_SELF_RECIPIENT = 'Swap w/o Send + recipient'
SWAP_ACTION_WITH_SEND = 'Swap w/ Send'

# Suffix appended to the route label of swap completion events
SWAP_LABEL_SUFFIX = 'MH'

__all__ = [
    'LABEL_UNSUPPORTED_ASSET',
    'LABEL_CONNECT_WALLET',
    'LABEL_WRAP',
    'LABEL_UNWRAP',
    'LABEL_INSUFFICIENT_LIQUIDITY',
    'LABEL_APPROVE_TEMPLATE',
    'LABEL_APPROVAL_PENDING',
    'LABEL_SWAP',
    'LABEL_SWAP_ANYWAY',
    'LABEL_PRICE_IMPACT_TOO_HIGH',
    'ERROR_SELECT_TOKEN',
    'ERROR_ENTER_AMOUNT',
    'ERROR_INVALID_RECIPIENT',
    'ERROR_INSUFFICIENT_BALANCE_TEMPLATE',
    'SWAP_ACTION_NO_RECIPIENT',
    'SWAP_ACTION_SELF_RECIPIENT',
    'SWAP_ACTION_WITH_SEND',
    'SWAP_LABEL_SUFFIX',
]
