"""Unit tests for amount and time matching (pure functions)."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from chainpay.application.payments.use_cases.amount_matcher import (
    AmountMatcher,
    amount_matches,
    time_matches,
    tolerance_band,
    within_strict_band,
)
from chainpay.domain.errors import AmountMismatch, TimingMismatch
from chainpay.domain.payments.entities import (
    CandidateTransfer,
    PaymentAsset,
    PaymentPurpose,
)
from tests.fixtures import build_intent
from tests.fixtures.test_ledger_client import make_signature


class TestToleranceBand:
    """Test the purpose- and asset-specific scan bands."""

    def test_issue_native_is_absolute(self) -> None:
        band = tolerance_band(PaymentPurpose.ISSUE, PaymentAsset.NATIVE, Decimal("0.5"))
        assert band == (Decimal("0.045"), Decimal("1.0"))

    def test_issue_stable_is_ten_percent(self) -> None:
        low, high = tolerance_band(
            PaymentPurpose.ISSUE, PaymentAsset.STABLE_A, Decimal("31")
        )
        assert low == Decimal("27.9")
        assert high == Decimal("34.1")

    def test_fund_stable_is_five_percent(self) -> None:
        low, high = tolerance_band(
            PaymentPurpose.FUND, PaymentAsset.STABLE_B, Decimal("100")
        )
        assert (low, high) == (Decimal("95"), Decimal("105"))

    def test_fund_small_native_is_thirty_percent(self) -> None:
        low, high = tolerance_band(
            PaymentPurpose.FUND, PaymentAsset.NATIVE, Decimal("0.04")
        )
        assert (low, high) == (Decimal("0.028"), Decimal("0.052"))

    def test_fund_native_at_threshold_is_twenty_percent(self) -> None:
        low, high = tolerance_band(
            PaymentPurpose.FUND, PaymentAsset.NATIVE, Decimal("0.05")
        )
        assert (low, high) == (Decimal("0.04"), Decimal("0.06"))


class TestAmountMatches:
    def test_fund_native_lower_bound_is_inclusive(self) -> None:
        intent = build_intent(purpose=PaymentPurpose.FUND, expected_amount="0.2")
        assert amount_matches(intent, Decimal("0.16"))

    def test_fund_native_just_below_lower_bound(self) -> None:
        intent = build_intent(purpose=PaymentPurpose.FUND, expected_amount="0.2")
        assert not amount_matches(intent, Decimal("0.159"))

    def test_fund_native_upper_bound_is_inclusive(self) -> None:
        intent = build_intent(purpose=PaymentPurpose.FUND, expected_amount="0.2")
        assert amount_matches(intent, Decimal("0.24"))
        assert not amount_matches(intent, Decimal("0.2401"))

    @pytest.mark.parametrize(
        "amount,expected",
        [("0.045", True), ("0.3", True), ("1.0", True), ("0.044", False), ("1.01", False)],
    )
    def test_issue_native_ignores_expected_amount(self, amount: str, expected: bool) -> None:
        intent = build_intent(purpose=PaymentPurpose.ISSUE, expected_amount="0.5")
        assert amount_matches(intent, Decimal(amount)) is expected

    def test_issue_stable_accepts_ratio_within_ten_percent(self) -> None:
        intent = build_intent(
            purpose=PaymentPurpose.ISSUE,
            asset=PaymentAsset.STABLE_A,
            expected_amount="31",
        )
        assert amount_matches(intent, Decimal("33"))


class TestTimeMatches:
    created = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_window_boundary_is_inclusive(self) -> None:
        intent = build_intent(created_at=self.created)
        assert time_matches(intent, int(self.created.timestamp()) + 300)

    def test_just_outside_window(self) -> None:
        intent = build_intent(created_at=self.created)
        assert not time_matches(intent, int(self.created.timestamp()) + 301)

    def test_transfer_before_creation_counts(self) -> None:
        intent = build_intent(created_at=self.created)
        assert time_matches(intent, int(self.created.timestamp()) - 300)
        assert not time_matches(intent, int(self.created.timestamp()) - 301)


class TestMatcherCheck:
    """Test the reason a candidate is turned down."""

    created = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def _candidate(self, amount: str, offset: int) -> CandidateTransfer:
        return CandidateTransfer(
            signature=make_signature("check"),
            amount=Decimal(amount),
            counterparty="Sender",
            timestamp=int(self.created.timestamp()) + offset,
        )

    def test_amount_outside_band(self) -> None:
        matcher = AmountMatcher(AsyncMock())
        intent = build_intent(
            purpose=PaymentPurpose.FUND, expected_amount="0.2", created_at=self.created
        )

        with pytest.raises(AmountMismatch):
            matcher.check(intent, self._candidate("0.159", 0))

    def test_amount_fits_but_outside_window(self) -> None:
        matcher = AmountMatcher(AsyncMock())
        intent = build_intent(
            purpose=PaymentPurpose.FUND, expected_amount="0.2", created_at=self.created
        )

        with pytest.raises(TimingMismatch) as exc:
            matcher.check(intent, self._candidate("0.2", 301))
        assert exc.value.code == "TIMING_MISMATCH"

    def test_qualifying_candidate_passes(self) -> None:
        matcher = AmountMatcher(AsyncMock())
        intent = build_intent(
            purpose=PaymentPurpose.FUND, expected_amount="0.2", created_at=self.created
        )

        matcher.check(intent, self._candidate("0.16", 300))


class TestStrictBand:
    def test_exact_amount(self) -> None:
        assert within_strict_band(Decimal("0.3"), Decimal("0.3"))

    def test_bounds_inclusive(self) -> None:
        assert within_strict_band(Decimal("100"), Decimal("95"))
        assert within_strict_band(Decimal("100"), Decimal("105"))

    def test_six_percent_over_rejected(self) -> None:
        assert not within_strict_band(Decimal("31"), Decimal("33"))
