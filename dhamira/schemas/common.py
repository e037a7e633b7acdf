from __future__ import annotations

from enum import Enum


class LoanStatus(str, Enum):
    INITIATED = "initiated"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    REPAID = "repaid"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"

    @classmethod
    def terminal(cls) -> frozenset["LoanStatus"]:
        return frozenset({cls.REJECTED, cls.REPAID, cls.DEFAULTED, cls.CANCELLED})


class LoanType(str, Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class LoanProduct(str, Enum):
    BUSINESS = "business"
    FAFA = "fafa"
    EMERGENCY = "emergency"
    SCHOOL_FEES = "school_fees"
    OTHER = "other"


class GuarantorStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RecordStatus(str, Enum):
    """Approval status shared by clients and groups."""

    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


class RepaymentMethod(str, Enum):
    CASH = "cash"
    MPESA = "mpesa"
    BANK = "bank"


class ApprovalDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
