# Overview: Pytest coverage for internal code formatting and allocation.

import pytest

from orderdesk.models import InternalCodeCounter, OrderRow
from orderdesk.services.internal_code_service import (
    allocate_codes,
    code_date,
    format_code,
)
from orderdesk.validation import ConflictError

from conftest import stage_and_confirm


class TestFormat:
    """YYMMDD + 4-digit mall + 4-digit sequence."""

    def test_mall_and_sequence_are_zero_padded(self):
        assert format_code("241017", 12, 3) == "24101700120003"

    def test_missing_mall_uses_zeros(self):
        assert format_code("241017", None, 1) == "24101700000001"

    def test_code_date_uses_business_timezone(self, app):
        from datetime import datetime

        # 16:00 UTC is already the next day in Seoul
        with app.app_context():
            assert code_date(datetime(2024, 10, 17, 16, 0)) == "241018"
            assert code_date(datetime(2024, 10, 17, 14, 59)) == "241017"


class TestAllocate:
    """Batched allocation per (company, mall, date)."""

    def test_codes_follow_input_order(self, db_session, company_a, mall_a):
        codes = allocate_codes(company_a.id, [mall_a.id, None, mall_a.id], date_str="241017")
        db_session.commit()

        prefix = f"241017{mall_a.id:04d}"
        assert codes == [f"{prefix}0001", "24101700000001", f"{prefix}0002"]

    def test_each_scope_counter_touched_once(self, db_session, company_a, mall_a):
        allocate_codes(company_a.id, [mall_a.id] * 5 + [None] * 2, date_str="241017")
        db_session.commit()

        counters = {
            c.counter_key: c.last_increment
            for c in db_session.query(InternalCodeCounter).filter_by(company_id=company_a.id)
        }
        assert counters == {f"mall_{mall_a.id}": 5, "mall_null": 2}

    def test_counter_continues_across_calls(self, db_session, company_a, mall_a):
        allocate_codes(company_a.id, [mall_a.id, mall_a.id], date_str="241017")
        db_session.commit()
        codes = allocate_codes(company_a.id, [mall_a.id], date_str="241017")

        assert codes == [f"241017{mall_a.id:04d}0003"]

    def test_new_day_restarts_sequence(self, db_session, company_a, mall_a):
        allocate_codes(company_a.id, [mall_a.id, mall_a.id], date_str="241017")
        db_session.commit()
        codes = allocate_codes(company_a.id, [mall_a.id], date_str="241018")

        assert codes == [f"241018{mall_a.id:04d}0001"]

    def test_companies_have_independent_counters(self, db_session, company_a, company_b):
        allocate_codes(company_a.id, [None, None], date_str="241017")
        db_session.commit()

        assert allocate_codes(company_b.id, [None], date_str="241017") == ["24101700000001"]

    def test_empty_batch(self, db_session, company_a):
        assert allocate_codes(company_a.id, []) == []

    def test_capacity_exhausted(self, db_session, company_a):
        db_session.add(InternalCodeCounter(
            company_id=company_a.id,
            counter_key="mall_null",
            date_str="241017",
            last_increment=9999,
        ))
        db_session.commit()

        with pytest.raises(ConflictError):
            allocate_codes(company_a.id, [None], date_str="241017")


class TestNoReissue:
    """Deleting rows or losing a counter never reissues a code."""

    TABLE = [["상품명", "수취인명"], ["위젯", "홍길동"], ["가방", "김철수"]]

    def test_deleted_rows_do_not_free_codes(self, db_session, company_a, user_a, products_a):
        stage_and_confirm(company_a, user_a, self.TABLE)
        issued = sorted(r.internal_code for r in db_session.query(OrderRow).all())

        db_session.query(OrderRow).delete()
        db_session.commit()

        fresh = allocate_codes(company_a.id, [None])
        assert fresh[0] not in issued
        assert fresh[0] > issued[-1]

    def test_stale_counter_skips_past_stored_codes(self, db_session, company_a, user_a, products_a):
        stage_and_confirm(company_a, user_a, self.TABLE)
        issued = sorted(r.internal_code for r in db_session.query(OrderRow).all())

        counter = db_session.query(InternalCodeCounter).filter_by(
            company_id=company_a.id, counter_key="mall_null"
        ).one()
        counter.last_increment = 0
        db_session.commit()

        fresh = allocate_codes(company_a.id, [None])
        assert fresh == [format_code(code_date(), None, 3)]
        assert fresh[0] not in issued
