"""
Unit tests for ledger, trial balance and reconciliation reports.
"""

from datetime import date, timedelta
from decimal import Decimal

from hims_billing.models.accounting import AccountBalance
from hims_billing.models.billing import FinalBilling
from hims_billing.services.ledger_reports import (
    get_account_balance, get_cash_book, get_chart_of_accounts, get_ledger,
    get_patient_account_statement, get_trial_balance,
    reconcile_account_balances)
from hims_billing.services.voucher_engine import (create_contra_voucher,
                                                  create_journal_entry,
                                                  create_payment_voucher,
                                                  create_receipt_voucher,
                                                  delete_journal_entry)
from tests.utils import create_patient


def _post_some_vouchers(db, now):
    create_receipt_voucher(db, {
        "patient_id": "1",
        "amount": 1000,
        "voucher_date": now.date() - timedelta(days=2),
    },
                           now=now)
    create_payment_voucher(db, {
        "account_id": 10,
        "amount": 150,
        "voucher_date": now.date() - timedelta(days=1),
    },
                           now=now)
    create_contra_voucher(db, {
        "from_account_id": 1,
        "to_account_id": 2,
        "amount": 300,
        "voucher_date": now.date(),
    },
                          now=now)
    reversed_one = create_journal_entry(
        db,
        [{"account_id": 1, "debit": 999}, {"account_id": 10, "credit": 999}],
        voucher_date=now.date(),
        now=now,
    )
    delete_journal_entry(db, reversed_one.batch_identifier, now=now)


class TestLedger:
    """get_ledger / get_cash_book."""

    def test_running_balance_matches_cached_balance(self, db_session, now):
        """Replaying the ledger gives the cached balance for every account."""
        _post_some_vouchers(db_session, now)

        for account_id in (1, 2, 3, 10):
            lines = get_ledger(db_session, account_id)
            assert lines, account_id
            assert lines[-1].running_balance == get_account_balance(
                db_session, account_id)

    def test_lines_are_chronological_with_running_total(self, db_session,
                                                        now):
        _post_some_vouchers(db_session, now)

        lines = get_ledger(db_session, 1)
        assert [x.voucher_date for x in lines] == sorted(
            x.voucher_date for x in lines)
        assert [x.running_balance for x in lines] == [
            Decimal("1000"), Decimal("850"), Decimal("550")
        ]
        assert [x.voucher_type for x in lines] == ["Receipt", "Payment",
                                                   "Contra"]

    def test_deleted_entries_are_excluded(self, db_session, now):
        _post_some_vouchers(db_session, now)
        assert all(x.debit != Decimal("999") for x in get_ledger(db_session, 1))

    def test_date_bounds(self, db_session, now):
        _post_some_vouchers(db_session, now)
        lines = get_ledger(db_session, 1, from_date=now.date(),
                           to_date=now.date())
        assert len(lines) == 1
        assert lines[0].credit == Decimal("300")
        assert lines[0].running_balance == Decimal("-300")

    def test_cash_book_is_the_cash_account_ledger(self, db_session, now):
        _post_some_vouchers(db_session, now)
        assert [x.entry_id for x in get_cash_book(db_session)] == [
            x.entry_id for x in get_ledger(db_session, 1)
        ]
        assert get_cash_book(db_session, location_id=5) == []


class TestTrialBalance:

    def test_totals_balance_and_ignore_cached_balances(self, db_session,
                                                       now):
        _post_some_vouchers(db_session, now)
        # a corrupted cache must not show up in the trial balance
        db_session.get(AccountBalance, 1).balance_amount = Decimal("123456")
        db_session.commit()

        tb = get_trial_balance(db_session)

        assert tb.is_balanced is True
        assert tb.total_debit == tb.total_credit == Decimal("1450")
        by_account = {r.account_id: r for r in tb.rows}
        assert by_account[1].total_debit == Decimal("1000")
        assert by_account[1].total_credit == Decimal("450")
        assert by_account[1].account_name == "Cash"
        assert by_account[3].net == Decimal("-1000")

    def test_date_range_and_location(self, db_session, now):
        _post_some_vouchers(db_session, now)

        today_only = get_trial_balance(db_session, now.date(), now.date())
        assert {r.account_id for r in today_only.rows} == {1, 2}

        elsewhere = get_trial_balance(db_session, location_id=7)
        assert elsewhere.rows == []
        assert elsewhere.is_balanced is True


class TestReconcile:

    def test_no_drift_after_normal_posting(self, db_session, now):
        _post_some_vouchers(db_session, now)
        assert reconcile_account_balances(db_session) == []

    def test_drift_reported_then_repaired(self, db_session, now):
        _post_some_vouchers(db_session, now)
        db_session.get(AccountBalance, 2).balance_amount = Decimal("1")
        db_session.commit()

        drifts = reconcile_account_balances(db_session)
        assert len(drifts) == 1
        assert drifts[0].account_id == 2
        assert drifts[0].ledger_balance == Decimal("300")
        assert drifts[0].difference == Decimal("-299")
        assert drifts[0].repaired is False

        reconcile_account_balances(db_session, repair=True)
        assert get_account_balance(db_session, 2) == Decimal("300")
        assert reconcile_account_balances(db_session) == []


class TestAccounts:

    def test_chart_of_accounts_sorted_by_name(self, db_session, now):
        create_receipt_voucher(db_session, {
            "patient_id": "1",
            "amount": 80
        },
                               now=now)

        chart = get_chart_of_accounts(db_session)
        assert [a.name for a in chart] == [
            "Bank", "Cash", "General Expenses", "Patient Receivables"
        ]
        cash = next(a for a in chart if a.id == 1)
        assert cash.balance_amount == Decimal("80")

    def test_untouched_account_balance_is_zero(self, db_session):
        assert get_account_balance(db_session, 10) == Decimal("0")
        assert get_account_balance(db_session, 12345) == Decimal("0")


class TestPatientStatement:

    def test_billed_vs_received(self, db_session, now):
        patient = create_patient(db_session)
        other = create_patient(db_session, first_name="Other")
        db_session.add(
            FinalBilling(patient_id=patient.id,
                         bill_number="2024030001",
                         bill_date=date(2024, 3, 15),
                         total_bill_amount=Decimal("5000"),
                         balance_amount=Decimal("3500")))
        db_session.commit()
        for pid, amount in ((patient.id, 1000), (patient.id, 500),
                            (other.id, 700)):
            create_receipt_voucher(db_session, {
                "patient_id": pid,
                "amount": amount
            },
                                   now=now)

        statement = get_patient_account_statement(db_session, patient.id)

        assert statement.patient_id == str(patient.id)
        assert statement.total_billed == Decimal("5000")
        assert statement.total_paid == Decimal("1500")
        assert statement.outstanding == Decimal("3500")
        assert [p.amount for p in statement.payments] == [
            Decimal("1000"), Decimal("500")
        ]
        assert statement.billings[0]["bill_number"] == "2024030001"
