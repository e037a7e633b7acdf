import pytest

from dhamira.core import permissions
from dhamira.core.permissions import Action, Role


@pytest.mark.parametrize(
    ("role", "action", "expected"),
    [
        (Role.LOAN_OFFICER, Action.LOAN_INITIATE, True),
        (Role.SUPER_ADMIN, Action.LOAN_INITIATE, False),
        (Role.APPROVER_ADMIN, Action.LOAN_APPROVE, True),
        (Role.SUPER_ADMIN, Action.LOAN_APPROVE, False),
        (Role.INITIATOR_ADMIN, Action.LOAN_APPROVE, False),
        (Role.LOAN_OFFICER, Action.LOAN_APPROVE, False),
        (Role.SUPER_ADMIN, Action.LOAN_DISBURSE, True),
        (Role.APPROVER_ADMIN, Action.LOAN_DISBURSE, True),
        (Role.INITIATOR_ADMIN, Action.LOAN_DISBURSE, False),
        (Role.INITIATOR_ADMIN, Action.LOAN_ASSESS, True),
        (Role.LOAN_OFFICER, Action.LOAN_ASSESS, False),
        (Role.LOAN_OFFICER, Action.LOAN_REPAY, True),
        (Role.SUPER_ADMIN, Action.LOAN_VIEW_HISTORY, True),
        (Role.APPROVER_ADMIN, Action.LOAN_VIEW_HISTORY, False),
        (Role.INITIATOR_ADMIN, Action.LOAN_OFFICER_MANAGE, True),
        (Role.INITIATOR_ADMIN, Action.ADMIN_MANAGE, False),
    ],
)
def test_role_table(role, action, expected):
    assert permissions.is_allowed(role, action) is expected


def test_string_roles_and_actions_are_accepted():
    assert permissions.is_allowed("approver_admin", "loan.approve")
    assert not permissions.is_allowed("loan_officer", "loan.approve")


def test_unknown_role_or_action_is_denied():
    assert permissions.is_allowed("teller", Action.LOAN_VIEW) is False
    assert permissions.is_allowed(None, Action.LOAN_VIEW) is False
    assert permissions.is_allowed(Role.SUPER_ADMIN, "loan.launch_rocket") is False


def test_every_action_has_a_policy_entry():
    assert set(permissions.ROLE_ACTIONS) == set(Action)


def test_allowed_actions_for_loan_officer():
    actions = permissions.allowed_actions(Role.LOAN_OFFICER)
    assert "loan.initiate" in actions
    assert "loan.approve" not in actions
    assert permissions.allowed_actions("unknown") == []


def test_roles_for_approve_is_approver_only():
    assert permissions.roles_for(Action.LOAN_APPROVE) == ["approver_admin"]
