from enum import Enum
from typing import List


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    INITIATOR_ADMIN = "initiator_admin"
    APPROVER_ADMIN = "approver_admin"
    LOAN_OFFICER = "loan_officer"

    @classmethod
    def admin_roles(cls) -> frozenset["Role"]:
        return frozenset({cls.SUPER_ADMIN, cls.INITIATOR_ADMIN, cls.APPROVER_ADMIN})


class Action(str, Enum):
    # Loan workflow
    LOAN_INITIATE = "loan.initiate"
    LOAN_ASSESS = "loan.assess"
    LOAN_APPROVE = "loan.approve"
    LOAN_REJECT = "loan.reject"
    LOAN_DISBURSE = "loan.disburse"
    LOAN_REPAY = "loan.repay"
    LOAN_CANCEL = "loan.cancel"
    LOAN_MARK_DEFAULT = "loan.mark_default"
    LOAN_MARK_FEE_PAID = "loan.mark_fee_paid"

    # Loan views
    LOAN_VIEW = "loan.view"
    LOAN_VIEW_ALL = "loan.view_all"
    LOAN_VIEW_OWN = "loan.view_own"
    LOAN_VIEW_HISTORY = "loan.view_history"

    # Guarantors
    GUARANTOR_ADD = "guarantor.add"
    GUARANTOR_DECIDE = "guarantor.decide"

    # Clients / groups
    CLIENT_VIEW = "client.view"
    CLIENT_CREATE = "client.create"
    CLIENT_UPDATE = "client.update"
    CLIENT_APPROVE = "client.approve"
    GROUP_VIEW = "group.view"
    GROUP_CREATE = "group.create"
    GROUP_UPDATE = "group.update"
    GROUP_APPROVE = "group.approve"

    # Savings
    SAVINGS_VIEW = "savings.view"
    SAVINGS_ADJUST = "savings.adjust"
    SAVINGS_DEPOSIT = "savings.deposit"

    # Organisation
    BRANCH_VIEW = "branch.view"
    BRANCH_MANAGE = "branch.manage"
    USER_VIEW = "user.view"
    ADMIN_MANAGE = "admin.manage"
    LOAN_OFFICER_MANAGE = "loan_officer.manage"
    AUDIT_LOG_VIEW = "audit_log.view"


_EVERYONE = frozenset(Role)
_ADMINS = Role.admin_roles()

ROLE_ACTIONS: dict[Action, frozenset[Role]] = {
    Action.LOAN_INITIATE: frozenset({Role.LOAN_OFFICER}),
    Action.LOAN_ASSESS: _ADMINS,
    Action.LOAN_APPROVE: frozenset({Role.APPROVER_ADMIN}),
    Action.LOAN_REJECT: frozenset({Role.APPROVER_ADMIN}),
    Action.LOAN_DISBURSE: frozenset({Role.SUPER_ADMIN, Role.APPROVER_ADMIN}),
    Action.LOAN_REPAY: _EVERYONE,
    Action.LOAN_CANCEL: frozenset({Role.SUPER_ADMIN, Role.APPROVER_ADMIN}),
    Action.LOAN_MARK_DEFAULT: frozenset({Role.SUPER_ADMIN, Role.APPROVER_ADMIN}),
    Action.LOAN_MARK_FEE_PAID: _ADMINS,
    Action.LOAN_VIEW: _EVERYONE,
    Action.LOAN_VIEW_ALL: _ADMINS,
    Action.LOAN_VIEW_OWN: frozenset({Role.LOAN_OFFICER}),
    Action.LOAN_VIEW_HISTORY: frozenset({Role.SUPER_ADMIN}),
    Action.GUARANTOR_ADD: _EVERYONE,
    Action.GUARANTOR_DECIDE: _ADMINS,
    Action.CLIENT_VIEW: _EVERYONE,
    Action.CLIENT_CREATE: _EVERYONE,
    Action.CLIENT_UPDATE: _EVERYONE,
    Action.CLIENT_APPROVE: _ADMINS,
    Action.GROUP_VIEW: _EVERYONE,
    Action.GROUP_CREATE: _EVERYONE,
    Action.GROUP_UPDATE: _EVERYONE,
    Action.GROUP_APPROVE: frozenset({Role.SUPER_ADMIN, Role.APPROVER_ADMIN}),
    Action.SAVINGS_VIEW: _EVERYONE,
    Action.SAVINGS_ADJUST: frozenset({Role.SUPER_ADMIN, Role.APPROVER_ADMIN}),
    Action.SAVINGS_DEPOSIT: _EVERYONE,
    Action.BRANCH_VIEW: _EVERYONE,
    Action.BRANCH_MANAGE: frozenset({Role.SUPER_ADMIN}),
    Action.USER_VIEW: _ADMINS,
    Action.ADMIN_MANAGE: frozenset({Role.SUPER_ADMIN}),
    Action.LOAN_OFFICER_MANAGE: frozenset({Role.SUPER_ADMIN, Role.INITIATOR_ADMIN}),
    Action.AUDIT_LOG_VIEW: frozenset({Role.SUPER_ADMIN}),
}


def _coerce_role(role: Role | str | None) -> Role | None:
    if role is None or isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def is_allowed(role: Role | str | None, action: Action | str) -> bool:
    """Single source of truth for role gating; unknown roles and actions are denied."""
    resolved = _coerce_role(role)
    if resolved is None:
        return False
    try:
        key = Action(action)
    except ValueError:
        return False
    return resolved in ROLE_ACTIONS.get(key, frozenset())


def allowed_actions(role: Role | str | None) -> List[str]:
    resolved = _coerce_role(role)
    if resolved is None:
        return []
    return [action.value for action, roles in ROLE_ACTIONS.items() if resolved in roles]


def roles_for(action: Action | str) -> List[str]:
    roles = ROLE_ACTIONS.get(Action(action), frozenset())
    return sorted(role.value for role in roles)

