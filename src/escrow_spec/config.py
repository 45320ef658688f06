"""Escrow spec configuration constants.

Keep this file aligned with the deployed escrow contract constants.
"""

# Integer bounds (contract values are unsigned 128-bit)
U128_MAX = (1 << 128) - 1

# Fees
BPS_DENOMINATOR = 10_000
MAX_FEE_RATE_BPS = 1_000  # 10%
DEFAULT_FEE_RATE_BPS = 250  # 2.5%

# Text limits
MAX_DESCRIPTION_LEN = 256
MAX_REASON_LEN = 512

# Identity
ADDRESS_LEN = 32

# Escrow ids
FIRST_ESCROW_ID = 0
