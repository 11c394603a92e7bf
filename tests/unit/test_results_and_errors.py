"""
Unit tests for the result container, error categories and bonus math.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from referral_ledger.services.base_service import ServiceResult
from referral_ledger.services.reward.first_deposit_bonus import calculate_bonus
from referral_ledger.utils.exceptions import (
    ConflictError,
    ErrorCode,
    InsufficientFundsError,
    StorageError,
    ValidationError,
    is_expected,
    is_retryable,
)


class TestServiceResult:
    """Test ServiceResult helpers."""

    def test_ok(self):
        result = ServiceResult.ok(Decimal("5"))
        assert result.success is True
        assert result.unwrap() == Decimal("5")
        assert result.is_conflict is False

    def test_fail_from_conflict(self):
        result = ServiceResult.fail(ConflictError(ErrorCode.ALREADY_REDEEMED))
        assert result.success is False
        assert result.error_code is ErrorCode.ALREADY_REDEEMED
        assert result.error == "ALREADY_REDEEMED"
        assert result.is_conflict is True

    def test_fail_from_validation_is_not_conflict(self):
        result = ServiceResult.fail(
            ValidationError(ErrorCode.SELF_REFERRAL, "own code")
        )
        assert result.is_conflict is False
        assert result.error == "own code"

    def test_unwrap_reraises(self):
        result = ServiceResult.fail(InsufficientFundsError())
        with pytest.raises(InsufficientFundsError):
            result.unwrap()


class TestErrorCategories:
    """Test exception categorization."""

    def test_expected_outcomes(self):
        assert is_expected(ValidationError(ErrorCode.INVALID_AMOUNT))
        assert is_expected(InsufficientFundsError())
        assert not is_expected(StorageError("db down"))

    def test_retryable(self):
        operational = OperationalError("SELECT 1", {}, Exception("locked"))
        assert is_retryable(operational)
        assert not is_retryable(ConflictError(ErrorCode.ALREADY_ACCEPTED))

    def test_storage_error_retryable_by_cause(self):
        operational = OperationalError("SELECT 1", {}, Exception("locked"))
        try:
            raise StorageError("failed") from operational
        except StorageError as e:
            assert is_retryable(e)

    def test_persist_flag(self):
        error = ConflictError(ErrorCode.EXPIRED, persist=True)
        assert error.persist is True
        assert ConflictError(ErrorCode.EXPIRED).persist is False


class TestBonusCalculation:
    """Test first-deposit bonus amount."""

    def test_ten_percent(self):
        assert calculate_bonus(Decimal("100"), Decimal("0.10")) == Decimal("10")

    def test_truncated_to_eight_places(self):
        assert calculate_bonus(
            Decimal("0.00000019"), Decimal("0.10")
        ) == Decimal("0.00000001")

    def test_default_rate_from_settings(self):
        assert calculate_bonus(Decimal("250")) == Decimal("25")
