"""
Unit tests for page-facing billing actions (advances, final bill, receipts).
"""

from datetime import timedelta
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from hims_billing.core.config import AccountConventions
from hims_billing.models.accounting import VoucherLog
from hims_billing.models.billing import Billing, FinalBilling
from hims_billing.services import billing_actions
from hims_billing.services.billing_actions import (
    delete_advance_payment, generate_bill_number, generate_receipt,
    get_advance_payments, get_billing_summary, get_final_bill,
    get_payment_history, save_advance_payment, save_final_bill)
from hims_billing.services.billing_errors import NotFoundError
from hims_billing.services.ledger_reports import get_account_balance
from tests.utils import (create_patient, create_tariff_amount,
                         create_tariff_standard, create_ward,
                         create_ward_stay)


def _admitted_patient(db, now):
    standard = create_tariff_standard(db, ward_non_ac_rate=Decimal("800"))
    create_tariff_amount(db, standard, "doctor", nabh=0, non_nabh=0)
    admitted = now - timedelta(days=2)
    patient = create_patient(db,
                             first_name="Asha",
                             last_name="Rao",
                             admission_date=admitted,
                             discharge_date=now,
                             tariff_standard=standard)
    ward = create_ward(db)
    create_ward_stay(db, patient, ward, admitted, now)
    return patient


class TestBillNumber:

    def test_monthly_sequence(self, db_session, now):
        assert generate_bill_number(db_session, now=now) == "2024030001"
        assert generate_bill_number(db_session, now=now) == "2024030002"
        assert generate_bill_number(db_session,
                                    now=now + timedelta(days=20)) == \
            "2024040001"

    def test_continues_existing_bills(self, db_session, now):
        patient = create_patient(db_session)
        db_session.add(
            Billing(patient_id=patient.id,
                    bill_number="2024030041",
                    total_amount=Decimal("10"),
                    payment_category="Finalbill",
                    billing_date=now.date()))
        db_session.commit()
        assert generate_bill_number(db_session, now=now) == "2024030042"


class TestAdvancePayment:

    def test_save_posts_receipt_and_updates_snapshot(self, db_session, now):
        patient = _admitted_patient(db_session, now)

        res = save_advance_payment(db_session, {
            "patient_id": patient.id,
            "amount": 1000,
            "payment_mode": "Cash",
        },
                                   now=now)

        assert res["ok"] is True
        billing = db_session.get(Billing, res["data"]["billing_id"])
        assert billing.payment_category == "Advance"
        assert billing.voucher_log_id == res["data"]["voucher_log_id"]
        voucher = db_session.get(VoucherLog, billing.voucher_log_id)
        assert voucher.type == "Receipt"
        assert voucher.patient_id == str(patient.id)

        assert get_account_balance(db_session, 1) == Decimal("1000")
        assert get_account_balance(db_session, 3) == Decimal("-1000")
        assert get_advance_payments(db_session, patient.id) == Decimal("1000")
        assert get_final_bill(db_session,
                              patient.id).advance_amount == Decimal("1000")

    def test_bank_mode_goes_to_bank(self, db_session, now):
        patient = _admitted_patient(db_session, now)
        save_advance_payment(db_session, {
            "patient_id": patient.id,
            "amount": 300,
            "payment_mode": "NEFT",
            "transaction_id": "UTR123",
        },
                             now=now)
        assert get_account_balance(db_session, 2) == Decimal("300")

    def test_invalid_input_and_missing_patient(self, db_session, now):
        bad = save_advance_payment(db_session, {
            "patient_id": 1,
            "amount": -5
        },
                                   now=now)
        assert bad["ok"] is False
        assert bad["error"]["code"] == "VALIDATION"

        missing = save_advance_payment(db_session, {
            "patient_id": 999,
            "amount": 5
        },
                                       now=now)
        assert missing["ok"] is False
        assert missing["error"]["code"] == "NOT_FOUND"
        assert db_session.query(VoucherLog).count() == 0

    def test_delete_reverses_voucher_and_snapshot(self, db_session, now):
        patient = _admitted_patient(db_session, now)
        res = save_advance_payment(db_session, {
            "patient_id": patient.id,
            "amount": 1000
        },
                                   now=now)
        billing_id = res["data"]["billing_id"]

        out = delete_advance_payment(db_session, billing_id, now=now)

        assert out["ok"] is True
        assert db_session.get(Billing, billing_id).is_deleted is True
        assert get_account_balance(db_session, 1) == Decimal("0")
        assert get_account_balance(db_session, 3) == Decimal("0")
        assert get_advance_payments(db_session, patient.id) == Decimal("0")
        assert get_final_bill(db_session,
                              patient.id).advance_amount == Decimal("0")

        again = delete_advance_payment(db_session, billing_id, now=now)
        assert again["error"]["code"] == "NOT_FOUND"

    def test_failed_billing_row_reverses_the_voucher(self, db_session, now,
                                                     monkeypatch):
        patient = _admitted_patient(db_session, now)

        def broken_snapshot(*args, **kwargs):
            raise SQLAlchemyError("final_billings locked")

        monkeypatch.setattr(billing_actions, "_apply_advance", broken_snapshot)

        res = save_advance_payment(db_session, {
            "patient_id": patient.id,
            "amount": 1000
        },
                                   now=now)

        assert res["error"]["code"] == "DB_ERROR"
        assert db_session.query(Billing).count() == 0
        assert db_session.query(VoucherLog).one().is_deleted is True
        assert get_account_balance(db_session, 1) == Decimal("0")
        assert get_account_balance(db_session, 3) == Decimal("0")

    def test_failed_reversal_reports_the_orphaned_voucher(
            self, db_session, now, monkeypatch):
        patient = _admitted_patient(db_session, now)

        def broken_snapshot(*args, **kwargs):
            raise SQLAlchemyError("final_billings locked")

        def broken_reversal(*args, **kwargs):
            raise NotFoundError("voucher vanished")

        monkeypatch.setattr(billing_actions, "_apply_advance", broken_snapshot)
        monkeypatch.setattr(billing_actions, "delete_voucher", broken_reversal)

        res = save_advance_payment(db_session, {
            "patient_id": patient.id,
            "amount": 1000
        },
                                   now=now)

        assert res["ok"] is False
        assert res["error"]["code"] == "VOUCHER_REVERSAL_FAILED"
        voucher = db_session.query(VoucherLog).one()
        assert res["data"]["voucher_number"] == voucher.voucher_number
        assert voucher.is_deleted is False
        assert get_account_balance(db_session, 1) == Decimal("1000")


class TestFinalBill:

    def test_split_payment_final_bill(self, db_session, now):
        patient = _admitted_patient(db_session, now)
        save_advance_payment(db_session, {
            "patient_id": patient.id,
            "amount": 1000
        },
                             now=now)

        res = save_final_bill(
            db_session,
            patient.id,
            {
                "total_amount": 5000,
                "discount": 200,
                "payments": [
                    {"mode": "Cash", "amount": 2000},
                    {"mode": "UPI", "amount": 1000, "transaction_id": "T1"},
                ],
            },
            now=now,
        )

        assert res["ok"] is True
        assert res["data"]["bill_number"] == "2024030001"
        assert len(res["data"]["voucher_numbers"]) == 2

        fb = db_session.query(FinalBilling).filter_by(
            patient_id=patient.id).one()
        assert fb.advance_amount == Decimal("1000")
        assert fb.discount_amount == Decimal("200")
        assert fb.final_amount == Decimal("3800")
        assert fb.paid_amount == Decimal("3000")
        assert fb.balance_amount == Decimal("800")
        assert fb.ward_charges == Decimal("1600")

        main = db_session.get(Billing, res["data"]["billing_id"])
        assert main.payment_category == "Finalbill"
        assert main.payment_mode == "Cash, UPI"
        assert main.transaction_id == "T1"
        children = (db_session.query(Billing).filter_by(
            parent_bill_id=main.id).order_by(Billing.id).all())
        assert [c.bill_number for c in children] == [
            "2024030001-Cash", "2024030001-UPI"
        ]
        assert all(c.voucher_log_id for c in children)

        assert get_account_balance(db_session, 1) == Decimal("3000")
        assert get_account_balance(db_session, 2) == Decimal("1000")
        assert get_account_balance(db_session, 3) == Decimal("-4000")

    def test_single_payment_links_voucher_to_main_row(self, db_session,
                                                      now):
        patient = _admitted_patient(db_session, now)
        res = save_final_bill(db_session, patient.id, {
            "total_amount": 2200,
            "payments": [{
                "mode": "Card",
                "amount": 2200
            }],
        },
                              now=now)

        main = db_session.get(Billing, res["data"]["billing_id"])
        assert main.voucher_log_id is not None
        assert db_session.query(Billing).filter_by(
            parent_bill_id=main.id).count() == 0
        assert get_final_bill(db_session,
                              patient.id).balance_amount == Decimal("0")

    def test_voucher_failure_keeps_saved_bill(self, db_session, now):
        patient = _admitted_patient(db_session, now)
        broken = AccountConventions(receivables_account_id=404)

        res = save_final_bill(db_session,
                              patient.id, {
                                  "total_amount": 500,
                                  "payments": [{
                                      "mode": "Cash",
                                      "amount": 500
                                  }],
                              },
                              conventions=broken,
                              now=now)

        assert res["ok"] is False
        assert res["error"]["code"] == "VOUCHER_POST_FAILED"
        assert res["data"]["bill_number"] == "2024030001"
        assert get_final_bill(db_session,
                              patient.id).bill_number == "2024030001"

    def test_missing_patient(self, db_session, now):
        res = save_final_bill(db_session, 31337, {"total_amount": 1},
                              now=now)
        assert res["error"]["code"] == "NOT_FOUND"


class TestReceiptsAndHistory:

    def test_receipt_for_advance_and_final_bill(self, db_session, now):
        patient = _admitted_patient(db_session, now)
        adv = save_advance_payment(db_session, {
            "patient_id": patient.id,
            "amount": 100
        },
                                   now=now)
        fin = save_final_bill(db_session, patient.id, {
            "total_amount": 2200,
            "payments": [{
                "mode": "Cash",
                "amount": 2100
            }],
        },
                              now=now)

        adv_receipt = generate_receipt(db_session, adv["data"]["billing_id"])
        assert adv_receipt.bill_number == f"ADV-{adv['data']['billing_id']}"
        assert adv_receipt.patient_name == "Asha Rao"
        assert adv_receipt.charges_breakdown is None
        assert adv_receipt.hospital_name

        fin_receipt = generate_receipt(db_session, fin["data"]["billing_id"])
        assert fin_receipt.bill_number == "2024030001"
        assert fin_receipt.charges_breakdown.ward_charges == Decimal("1600")

        assert generate_receipt(db_session, 98765) is None

    def test_history_and_summary(self, db_session, now):
        patient = _admitted_patient(db_session, now)
        keep = save_advance_payment(db_session, {
            "patient_id": patient.id,
            "amount": 400
        },
                                    now=now)
        drop = save_advance_payment(db_session, {
            "patient_id": patient.id,
            "amount": 50
        },
                                    now=now)
        delete_advance_payment(db_session, drop["data"]["billing_id"], now=now)
        save_final_bill(db_session, patient.id, {
            "total_amount": 2200,
            "payments": [{
                "mode": "Cash",
                "amount": 1000
            }],
        },
                        now=now)

        history = get_payment_history(db_session, patient.id)
        assert keep["data"]["billing_id"] in [h.id for h in history]
        assert drop["data"]["billing_id"] not in [h.id for h in history]

        summary = get_billing_summary(db_session, today=now.date())
        assert summary.today_bills == 2
        assert summary.today_revenue == Decimal("2600")
        assert summary.pending_bills == 1
        # 2200 - 400 advance - 1000 paid
        assert summary.pending_amount == Decimal("800")
        assert summary.total_bills == 2
