"""
Enumerations shared by the accounting models.
"""

import enum


class AccountRole(str, enum.Enum):
    """
    Account role enumeration.

    Roles:
        USER: Paying end user (default role)
        ADMIN: Back-office operator, may pay influencers and read usage logs
    """
    USER = "USER"
    ADMIN = "ADMIN"


class PaymentEventStatus(str, enum.Enum):
    """Terminal state of one payment verification attempt."""
    REJECTED = "REJECTED"  # Signature did not verify
    CREDITED = "CREDITED"  # Credits added, order recorded as applied
    ALREADY_APPLIED = "ALREADY_APPLIED"  # Order was credited by an earlier call
    NO_CREDIT = "NO_CREDIT"  # Verified, but amount is not in the price table
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"


class UsageCategory(str, enum.Enum):
    """AI generation categories tracked by usage accounting."""
    BIO = "bio"
    PROFILE_ANALYSIS = "profile_analysis"
    CHAT_ANALYSIS = "chat_analysis"
    CHAT_IMAGE_ANALYSIS = "chat_image_analysis"


# Aggregate key that sums every category
ALL_CATEGORIES_KEY = "_all"
