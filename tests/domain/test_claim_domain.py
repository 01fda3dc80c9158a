"""
Tests for the claim value objects and input validation.
"""

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

import pytest

from claims_kernel.domain.claim import (
    ClaimAmendment,
    ClaimStatus,
    HistoryAction,
    HistoryEntry,
    OPEN_CLAIM_STATUSES,
    TERMINAL_CLAIM_STATUSES,
    validate_claim,
)
from claims_kernel.exceptions import ValidationError
from tests.factories import BASE_TIME, make_claim


class TestClaimStatus:

    def test_terminal_statuses(self):
        assert TERMINAL_CLAIM_STATUSES == {ClaimStatus.APPROVED, ClaimStatus.REJECTED}

    def test_open_statuses(self):
        assert OPEN_CLAIM_STATUSES == (ClaimStatus.PENDING, ClaimStatus.INFO_REQUESTED)

    @pytest.mark.parametrize("status", list(ClaimStatus))
    def test_is_terminal(self, status):
        claim = make_claim(status=status)
        assert claim.is_terminal == (status in TERMINAL_CLAIM_STATUSES)


class TestClaim:

    def test_claim_is_frozen(self):
        claim = make_claim()
        with pytest.raises(AttributeError):
            claim.status = ClaimStatus.APPROVED

    def test_has_receipt(self):
        assert make_claim(receipt_count=2).has_receipt
        assert not make_claim(receipt_count=0).has_receipt
        assert not make_claim(receipt_count=None).has_receipt

    def test_state_entered_at_defaults_to_submission(self):
        claim = make_claim()
        assert claim.state_entered_at == BASE_TIME

    def test_state_entered_at_uses_status_change(self):
        changed = datetime(2024, 1, 12, 9, 0, tzinfo=BASE_TIME.tzinfo)
        claim = make_claim(status_changed_at=changed)
        assert claim.state_entered_at == changed

    def test_history_not_part_of_equality(self):
        claim = make_claim()
        entry = HistoryEntry(
            action=HistoryAction.ESCALATED,
            actor_id="system",
            at=BASE_TIME,
            from_status=ClaimStatus.PENDING,
            to_status=ClaimStatus.PENDING,
        )
        assert replace(claim, history=(entry,)) == claim


class TestValidateClaim:

    def test_valid_claim_passes(self):
        validate_claim(make_claim())

    def test_empty_employee_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_claim(make_claim(employee_id="  "))
        assert exc_info.value.field_errors[0]["field"] == "employee_id"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("NaN")])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            validate_claim(make_claim(amount=amount))
        assert [e["field"] for e in exc_info.value.field_errors] == ["amount"]

    def test_naive_submitted_at_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_claim(make_claim(submitted_at=datetime(2024, 1, 10, 12, 0)))
        assert exc_info.value.field_errors[0]["field"] == "submitted_at"

    def test_bad_currency_rejected(self):
        with pytest.raises(ValidationError):
            validate_claim(make_claim(currency="RAND"))

    def test_all_problems_reported_together(self):
        claim = make_claim(employee_id="", category="", receipt_count=-1)
        with pytest.raises(ValidationError) as exc_info:
            validate_claim(claim)
        fields = {e["field"] for e in exc_info.value.field_errors}
        assert fields == {"employee_id", "category", "receipt_count"}
        assert exc_info.value.code == "VALIDATION_ERROR"

    @pytest.mark.parametrize("receipt_count", [None, "1", 1.0, True])
    def test_non_integer_receipt_count_rejected(self, receipt_count):
        with pytest.raises(ValidationError) as exc_info:
            validate_claim(make_claim(receipt_count=receipt_count))
        assert [e["field"] for e in exc_info.value.field_errors] == ["receipt_count"]

    def test_open_ended_category_accepted(self):
        validate_claim(make_claim(category="Parking at client site"))


class TestClaimAmendment:

    def test_only_supplied_fields_change(self):
        amendment = ClaimAmendment(receipt_count=1, description="Hotel, 2 nights in Durban")
        assert amendment.changed_fields() == {
            "description": "Hotel, 2 nights in Durban",
            "receipt_count": 1,
        }

    def test_empty_amendment(self):
        assert ClaimAmendment().changed_fields() == {}

    def test_zero_receipt_count_is_a_change(self):
        assert ClaimAmendment(receipt_count=0).changed_fields() == {"receipt_count": 0}

    def test_expense_date_change(self):
        amendment = ClaimAmendment(expense_date=date(2024, 1, 2))
        assert amendment.changed_fields() == {"expense_date": date(2024, 1, 2)}
