from dhamira.sdk.api import ApiClient, ApiError
from dhamira.sdk.session import Session
from dhamira.sdk.workflow import LoanWorkflowClient, TransitionBlocked, TransitionInFlight

__all__ = [
    "ApiClient",
    "ApiError",
    "LoanWorkflowClient",
    "Session",
    "TransitionBlocked",
    "TransitionInFlight",
]
