"""
Tests for the role-tiered approval chain (claims_engines/approval_chain.py).
"""

from decimal import Decimal

import pytest

from claims_config.schema import DEFAULT_APPROVAL_TIERS, ApprovalTier
from claims_engines.approval_chain import fill_step, open_steps, required_steps
from claims_kernel.domain.ports import ReviewerRole
from tests.factories import make_claim

MANAGER = ReviewerRole.MANAGER
HR = ReviewerRole.HR
ADMIN = ReviewerRole.ADMIN


class TestRequiredSteps:

    @pytest.mark.parametrize(
        "amount, category, expected",
        [
            ("120", "Fuel", (MANAGER,)),
            ("5000", "Fuel", (MANAGER,)),
            ("5000.01", "Fuel", (MANAGER, HR)),
            ("300", "Entertainment", (MANAGER, HR)),
            ("300", " travel ", (MANAGER, HR)),
            ("15000", "Fuel", (MANAGER, HR)),
            ("15000.01", "Fuel", (MANAGER, HR, ADMIN)),
        ],
    )
    def test_default_chain(self, amount, category, expected):
        claim = make_claim(amount=amount, category=category)
        assert required_steps(claim, DEFAULT_APPROVAL_TIERS) == expected

    def test_empty_chain(self):
        assert required_steps(make_claim(amount="90000"), ()) == ()

    def test_chain_order_follows_declaration(self):
        tiers = (ApprovalTier(ADMIN, amount_above=Decimal("0")), ApprovalTier(MANAGER))
        assert required_steps(make_claim(), tiers) == (ADMIN, MANAGER)


class TestOpenSteps:

    def test_each_approver_fills_one_step(self):
        assert open_steps((MANAGER, HR), (MANAGER,)) == (HR,)
        assert open_steps((MANAGER, HR), (MANAGER, HR)) == ()

    def test_senior_role_takes_most_senior_step_it_qualifies_for(self):
        assert open_steps((MANAGER, HR, ADMIN), (HR,)) == (MANAGER, ADMIN)
        assert open_steps((MANAGER, HR, ADMIN), (ADMIN,)) == (MANAGER, HR)

    def test_senior_role_covers_junior_steps(self):
        assert open_steps((MANAGER, HR), (ADMIN, ADMIN)) == ()

    def test_junior_role_never_fills_senior_step(self):
        assert fill_step((HR, ADMIN), MANAGER) is None
        assert open_steps((HR,), (MANAGER, MANAGER)) == (HR,)

    def test_unknown_or_employee_fills_nothing(self):
        assert fill_step((MANAGER,), None) is None
        assert fill_step((MANAGER,), ReviewerRole.EMPLOYEE) is None


class TestApprovalTier:

    def test_employee_role_not_allowed(self):
        with pytest.raises(ValueError):
            ApprovalTier(ReviewerRole.EMPLOYEE)

    def test_negative_amount_not_allowed(self):
        with pytest.raises(ValueError):
            ApprovalTier(HR, amount_above=Decimal("-1"))

    def test_unconditional_tier_always_applies(self):
        assert ApprovalTier(MANAGER).applies_to(Decimal("1"), "Fuel")
