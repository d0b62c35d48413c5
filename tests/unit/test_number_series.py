"""
Unit tests for the locked document-number counters.
"""

from datetime import datetime

from hims_billing.models.billing import NumberResetPeriod, NumberSeries
from hims_billing.services.number_series import _period_key, next_number


class TestPeriodKey:

    def test_keys_per_reset_period(self):
        dt = datetime(2024, 3, 5, 23, 59)
        assert _period_key(dt, NumberResetPeriod.NONE) == ""
        assert _period_key(dt, NumberResetPeriod.YEAR) == "2024"
        assert _period_key(dt, NumberResetPeriod.MONTH) == "202403"
        assert _period_key(dt, NumberResetPeriod.DAY) == "20240305"


class TestNextNumber:

    def test_increments_within_period(self, db_session, now):
        first = next_number(db_session, doc_type="JV",
                            reset_period=NumberResetPeriod.DAY,
                            prefix="JV20240315", now=now)
        second = next_number(db_session, doc_type="JV",
                             reset_period=NumberResetPeriod.DAY,
                             prefix="JV20240315", now=now)
        assert (first, second) == ("JV20240315001", "JV20240315002")

    def test_scopes_are_independent(self, db_session, now):
        a = next_number(db_session, doc_type="RV", scope_id=1,
                        reset_period=NumberResetPeriod.DAY, prefix="RV",
                        now=now)
        b = next_number(db_session, doc_type="RV", scope_id=2,
                        reset_period=NumberResetPeriod.DAY, prefix="RV",
                        now=now)
        assert a == b == "RV001"
        assert db_session.query(NumberSeries).count() == 2

    def test_seed_only_for_a_new_row(self, db_session, now):
        calls = []

        def seed():
            calls.append(1)
            return 41

        kwargs = dict(doc_type="BILL", reset_period=NumberResetPeriod.MONTH,
                      prefix="202403", padding=4, now=now, seed=seed)
        assert next_number(db_session, **kwargs) == "2024030042"
        assert next_number(db_session, **kwargs) == "2024030043"
        assert len(calls) == 1

    def test_padding_grows_past_width(self, db_session, now):
        kwargs = dict(doc_type="PV", reset_period=NumberResetPeriod.NONE,
                      prefix="PV", padding=2, now=now, seed=lambda: 99)
        assert next_number(db_session, **kwargs) == "PV100"
