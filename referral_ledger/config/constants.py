"""
Business constants.

Code formats and fixed identifiers shared by the referral and reward services.
"""

from decimal import Decimal

# ========================================================================
# CODES
# ========================================================================

# Alphabet for generated referral and gift codes
CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

# Referral codes: issued with 6 characters, accepted with 3-20
REFERRAL_CODE_LENGTH = 6
REFERRAL_CODE_PATTERN = r"^[A-Z0-9]{3,20}$"
REFERRAL_CODE_ISSUE_ATTEMPTS = 10

# Gift codes: exactly 8 characters
GIFT_CODE_LENGTH = 8
GIFT_CODE_PATTERN = r"^[A-Z0-9]{8}$"

# ========================================================================
# AMOUNTS
# ========================================================================

# Balance columns are DECIMAL(18, 8)
AMOUNT_QUANTUM = Decimal("0.00000001")

# ========================================================================
# DEPOSITS
# ========================================================================

# External payment reference, unique across all deposit requests
TRANSACTION_ID_MAX_LENGTH = 100

# ========================================================================
# AUDIT
# ========================================================================

SYSTEM_ACTOR = "SYSTEM"
