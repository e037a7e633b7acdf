from dhamira.models.audit_log import AuditLog
from dhamira.models.branch import Branch
from dhamira.models.client import Client
from dhamira.models.credit_assessment import CreditAssessment
from dhamira.models.group import Group
from dhamira.models.guarantor import Guarantor
from dhamira.models.loan import Loan
from dhamira.models.loan_approval import LoanApproval
from dhamira.models.repayment import Repayment
from dhamira.models.savings_transaction import SavingsTransaction
from dhamira.models.user import User

__all__ = [
    "AuditLog",
    "Branch",
    "Client",
    "CreditAssessment",
    "Group",
    "Guarantor",
    "Loan",
    "LoanApproval",
    "Repayment",
    "SavingsTransaction",
    "User",
]
