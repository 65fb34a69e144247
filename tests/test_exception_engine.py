"""Tests for the exception engine."""

from decimal import Decimal
from uuid import UUID

import pytest
from hypothesis import given, settings, strategies as st

from payroll_execution.calculators import (
    ExceptionEngine,
    IssueCode,
    PayLineSnapshot,
    Severity,
)

ALICE = UUID("0a000000-0000-4000-8000-000000000001")
BOB = UUID("0b000000-0000-4000-8000-000000000002")

MINIMUM = Decimal("5000")


@pytest.fixture
def engine() -> ExceptionEngine:
    return ExceptionEngine(MINIMUM)


class TestCheckLine:
    """Test the per-line rules."""

    def test_clean_line(self, engine):
        line = PayLineSnapshot(ALICE, Decimal("6000"), "ready")
        assert engine.check_line(line) == []

    def test_missing_bank_and_below_minimum(self, engine):
        """Both rules fire: critical bank issue first, then the wage warning."""
        line = PayLineSnapshot(ALICE, Decimal("4000"), "missing")

        issues = engine.check_line(line)

        assert [i.code for i in issues] == [
            IssueCode.BANK_DETAILS_MISSING,
            IssueCode.BELOW_MINIMUM_WAGE,
        ]
        assert [i.severity for i in issues] == [Severity.CRITICAL, Severity.WARNING]
        assert issues[1].issue == "Net pay (4000.00) is below minimum wage (5000.00)"

    def test_invalid_bank(self, engine):
        issues = engine.check_line(PayLineSnapshot(ALICE, Decimal("7000"), "invalid"))
        assert [i.code for i in issues] == [IssueCode.BANK_DETAILS_INVALID]
        assert issues[0].is_critical

    def test_negative_net_pay_is_critical_only(self, engine):
        """Negative pay does not also produce a minimum wage warning."""
        issues = engine.check_line(PayLineSnapshot(ALICE, Decimal("-10"), "ready"))
        assert [i.code for i in issues] == [IssueCode.NEGATIVE_NET_PAY]
        assert issues[0].issue == "Net pay (-10.00) is negative"

    def test_zero_net_pay_is_a_warning(self, engine):
        issues = engine.check_line(PayLineSnapshot(ALICE, Decimal("0"), "ready"))
        assert [i.code for i in issues] == [IssueCode.BELOW_MINIMUM_WAGE]

    def test_exactly_minimum_is_clean(self, engine):
        assert engine.check_line(PayLineSnapshot(ALICE, MINIMUM, "ready")) == []

    def test_negative_minimum_rejected(self):
        with pytest.raises(ValueError):
            ExceptionEngine(Decimal("-1"))


class TestScan:
    """Test whole-run scans."""

    def test_blocking_report(self, engine):
        report = engine.scan([PayLineSnapshot(BOB, Decimal("4000"), "missing")])

        assert report.critical_count == 1
        assert report.warning_count == 1
        assert report.has_blocking_issues is True
        assert report.employees_with_issues == 1

    def test_fixed_line_clears(self, engine):
        report = engine.scan([PayLineSnapshot(BOB, Decimal("6000"), "ready")])

        assert report.issues == ()
        assert report.has_blocking_issues is False

    def test_warnings_do_not_block(self, engine):
        report = engine.scan([PayLineSnapshot(BOB, Decimal("100"), "ready")])
        assert report.warning_count == 1
        assert report.has_blocking_issues is False

    def test_totals(self, engine):
        report = engine.scan(
            [
                PayLineSnapshot(ALICE, Decimal("6000.50"), "ready"),
                PayLineSnapshot(BOB, Decimal("4000"), "ready"),
            ]
        )
        assert report.total_employees == 2
        assert report.total_net_pay == Decimal("10000.50")

    def test_empty_run(self, engine):
        report = engine.scan([])
        assert report.total_employees == 0
        assert report.has_blocking_issues is False

    def test_issues_for_employee(self, engine):
        report = engine.scan(
            [
                PayLineSnapshot(BOB, Decimal("4000"), "missing"),
                PayLineSnapshot(ALICE, Decimal("6000"), "ready"),
            ]
        )
        assert report.issues_for(ALICE) == []
        assert len(report.issues_for(BOB)) == 2

    def test_format_notes(self, engine):
        issues = engine.check_line(PayLineSnapshot(BOB, Decimal("4000"), "missing"))
        assert ExceptionEngine.format_notes(issues) == (
            "Bank details missing; Net pay (4000.00) is below minimum wage (5000.00)"
        )
        assert ExceptionEngine.format_notes([]) is None


snapshots = st.builds(
    PayLineSnapshot,
    employee_id=st.uuids(),
    net_pay=st.decimals(
        min_value=Decimal("-10000"),
        max_value=Decimal("20000"),
        places=2,
        allow_nan=False,
        allow_infinity=False,
    ),
    bank_status=st.sampled_from(["ready", "missing", "invalid"]),
)


class TestDeterminism:
    """Property tests: the report depends only on the set of lines."""

    @settings(max_examples=100)
    @given(lines=st.lists(snapshots, max_size=20, unique_by=lambda s: s.employee_id))
    def test_order_independent(self, lines):
        engine = ExceptionEngine(MINIMUM)

        forward = engine.scan(lines)
        backward = engine.scan(list(reversed(lines)))

        assert forward == backward
        assert forward.to_json() == backward.to_json()

    @settings(max_examples=100)
    @given(lines=st.lists(snapshots, max_size=20, unique_by=lambda s: s.employee_id))
    def test_counts_match_issues(self, lines):
        report = ExceptionEngine(MINIMUM).scan(lines)

        assert report.critical_count + report.warning_count == len(report.issues)
        assert report.total_employees == len(lines)
        assert report.has_blocking_issues == any(i.is_critical for i in report.issues)

    @settings(max_examples=50)
    @given(lines=st.lists(snapshots, max_size=10, unique_by=lambda s: s.employee_id))
    def test_repeatable(self, lines):
        engine = ExceptionEngine(MINIMUM)
        assert engine.scan(lines).to_json() == engine.scan(lines).to_json()
