# Overview: Pytest coverage for staging and the exactly-once confirm pipeline.

"""
Confirm Pipeline Tests

Verifies:
1. Rows get internal codes, routing attributes and the default status
2. Delivery messages carry the internal code after the sentinel
3. A staged file is confirmed exactly once; duplicates fail before any write
4. Staged files are private to their owner; violations are logged
5. Online-grade uploads resolve the vendor per row and keep order numbers
6. A failure mid-write leaves nothing behind
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from orderdesk.extensions import db
from orderdesk.models import OrderRow, SecurityEvent, StagedFile, Upload
from orderdesk.services import confirm_service, internal_code_service, mall_service, staging_service
from orderdesk.services.confirm_service import confirm_staged_files, match_product_refs
from orderdesk.services.internal_code_service import code_date
from orderdesk.services.row_fields import stamp_delivery_message
from orderdesk.validation import (
    ConflictError,
    DuplicateFilenamesError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)

from conftest import stage_and_confirm


TABLE = [
    ["상품명", "수취인명", "수량", "배송메시지"],
    ["위젯", "홍길동", 3, "빠른배송★OLD123"],
    ["가방", "김철수", 1, "문 앞"],
]


def _rows(db_session, company):
    return (
        db_session.query(OrderRow)
        .filter_by(company_id=company.id)
        .order_by(OrderRow.id)
        .all()
    )


class TestStaging:
    """Staged files before confirmation."""

    def test_stage_autofills_exact_catalog_matches(self, db_session, company_a, user_a, products_a):
        staged = staging_service.stage_file(
            company_id=company_a.id,
            user_id=user_a.id,
            file_id="f1",
            file_name="a.xlsx",
            table_data=TABLE,
        )
        assert staged.product_code_map == {"위젯": "P-100", "가방": "P-200"}
        assert staged.product_id_map["위젯"] == products_a["P-100"].id
        assert staged.row_count == 2

    def test_user_choice_overrides_autofill(self, db_session, company_a, user_a, products_a):
        staging_service.stage_file(
            company_id=company_a.id, user_id=user_a.id, file_id="f1", file_name="a.xlsx", table_data=TABLE,
        )
        staged = staging_service.assign_product_codes(
            company_id=company_a.id,
            user_id=user_a.id,
            file_id="f1",
            assignments=[{"name": "위젯", "code": "P-300"}],
        )
        assert staged.product_code_map["위젯"] == "P-300"
        assert staged.product_id_map["위젯"] == products_a["P-300"].id

    def test_unknown_code_rejected(self, db_session, company_a, user_a, products_a):
        staging_service.stage_file(
            company_id=company_a.id, user_id=user_a.id, file_id="f1", file_name="a.xlsx", table_data=TABLE,
        )
        with pytest.raises(ValidationError):
            staging_service.assign_product_codes(
                company_id=company_a.id,
                user_id=user_a.id,
                file_id="f1",
                assignments=[{"name": "위젯", "code": "NOPE"}],
            )

    def test_malformed_table_rejected(self, db_session, company_a, user_a):
        with pytest.raises(ValidationError):
            staging_service.stage_file(
                company_id=company_a.id, user_id=user_a.id, file_id="f1", file_name="a.xlsx", table_data=[],
            )

    def test_list_is_per_user(self, db_session, company_a, user_a, colleague_a):
        staging_service.stage_file(
            company_id=company_a.id, user_id=user_a.id, file_id="f1", file_name="a.xlsx", table_data=TABLE,
        )
        assert len(staging_service.list_staged_files(company_a.id, user_a.id)) == 1
        assert staging_service.list_staged_files(company_a.id, colleague_a.id) == []

    def test_stage_rejects_name_of_stored_upload(self, db_session, company_a, user_a, products_a):
        stage_and_confirm(company_a, user_a, TABLE, file_name="a.xlsx")
        with pytest.raises(DuplicateFilenamesError):
            staging_service.stage_file(
                company_id=company_a.id, user_id=user_a.id, file_id="f2", file_name="a.xlsx", table_data=TABLE,
            )


class TestConfirmRows:
    """What a confirmed row looks like."""

    def test_rows_get_codes_status_and_routing(self, db_session, company_a, user_a, mall_a, products_a):
        result = stage_and_confirm(company_a, user_a, TABLE, vendor_name="ACME")

        assert result.saved_count == 1
        assert result.total_rows == 2
        rows = _rows(db_session, company_a)
        assert len(rows) == 2

        prefix = f"{code_date()}{mall_a.id:04d}"
        for row in rows:
            assert row.internal_code.startswith(prefix)
            assert len(row.internal_code) == 14
            assert row.row_data["내부코드"] == row.internal_code
            assert row.order_status == "공급중"
            assert row.row_data["업체명"] == "ACME"
            assert row.mall_id == mall_a.id

        assert len({r.internal_code for r in rows}) == 2

    def test_catalog_attributes_copied(self, db_session, company_a, user_a, products_a):
        stage_and_confirm(company_a, user_a, TABLE)
        widget = next(r for r in _rows(db_session, company_a) if r.row_data["상품명"] == "위젯")

        assert widget.row_data["매핑코드"] == "P-100"
        assert widget.row_data["productId"] == products_a["P-100"].id
        assert widget.row_data["내외주"] == "외주"
        assert widget.row_data["택배사"] == "CJ대한통운"
        assert widget.supply_price == 1000

    def test_row_order_keeps_file_position(self, db_session, company_a, user_a, products_a):
        stage_and_confirm(company_a, user_a, TABLE)
        rows = _rows(db_session, company_a)

        # Inserted in display order (가방 before 위젯), numbered in file order
        assert [r.row_data["상품명"] for r in rows] == ["가방", "위젯"]
        assert [r.row_order for r in rows] == [2, 1]

    def test_delivery_message_restamped(self, db_session, company_a, user_a, products_a):
        stage_and_confirm(company_a, user_a, TABLE)
        by_name = {r.row_data["상품명"]: r for r in _rows(db_session, company_a)}

        widget = by_name["위젯"]
        assert widget.row_data["배송메시지"] == f"빠른배송★{widget.internal_code}"
        bag = by_name["가방"]
        assert bag.row_data["배송메시지"] == f"문 앞★{bag.internal_code}"

    def test_blank_rows_skipped(self, db_session, company_a, user_a, products_a):
        table = TABLE + [["", None, "", ""]]
        result = stage_and_confirm(company_a, user_a, table)
        assert result.total_rows == 2

    def test_unmatched_product_still_saved(self, db_session, company_a, user_a):
        result = stage_and_confirm(company_a, user_a, [["상품명"], ["미등록상품"]])
        row = _rows(db_session, company_a)[0]

        assert result.total_rows == 1
        assert "매핑코드" not in row.row_data
        assert row.mall_id is None
        assert row.internal_code.startswith(f"{code_date()}0000")

    def test_staged_file_removed_and_upload_recorded(self, db_session, company_a, user_a, products_a):
        result = stage_and_confirm(company_a, user_a, TABLE, file_name="orders.xlsx", file_id="f9")

        assert db_session.query(StagedFile).filter_by(file_id="f9").count() == 0
        upload = db_session.query(Upload).filter_by(id=result.uploads[0].upload_id).one()
        assert upload.file_name == "orders.xlsx"
        assert upload.source_file_id == "f9"
        assert upload.row_count == 2
        assert upload.original_header == TABLE[0]

    def test_original_header_kept_verbatim(self, db_session, company_a, user_a, products_a):
        raw = [" 상품명 ", None, "수량"]
        result = stage_and_confirm(company_a, user_a, [raw, ["위젯", "x", 3]], file_id="f10")
        upload = db_session.query(Upload).filter_by(id=result.uploads[0].upload_id).one()

        assert upload.original_header == [" 상품명 ", None, "수량"]
        assert upload.header == ["상품명", "", "수량"]

    def test_failed_mall_lookup_degrades_to_no_mall(self, db_session, company_a, user_a, mall_a, products_a, monkeypatch):
        def broken_lookup(company_id, name):
            db.session.execute(text("SELECT * FROM no_such_table"))

        monkeypatch.setattr(mall_service, "find_mall_by_name", broken_lookup)
        result = stage_and_confirm(company_a, user_a, TABLE, vendor_name="ACME")

        assert result.saved_count == 2
        rows = db_session.query(OrderRow).filter_by(company_id=company_a.id).all()
        assert {r.mall_id for r in rows} == {None}


class TestExactlyOnce:
    """A staged file becomes permanent rows at most once."""

    def test_second_confirm_conflicts(self, db_session, company_a, user_a, products_a):
        stage_and_confirm(company_a, user_a, TABLE, file_id="f1")

        with pytest.raises(ConflictError):
            confirm_staged_files(company_a.id, user_a, ["f1"])
        assert len(_rows(db_session, company_a)) == 2

    def test_duplicate_name_in_company_fails_before_writes(
        self, db_session, company_a, user_a, colleague_a, products_a
    ):
        for user, fid in ((user_a, "mine"), (colleague_a, "theirs")):
            staging_service.stage_file(
                company_id=company_a.id, user_id=user.id, file_id=fid, file_name="same.xlsx", table_data=TABLE,
            )
        confirm_staged_files(company_a.id, colleague_a, ["theirs"])

        with pytest.raises(DuplicateFilenamesError) as excinfo:
            confirm_staged_files(company_a.id, user_a, ["mine"])

        assert excinfo.value.file_names == ["same.xlsx"]
        assert excinfo.value.payload()["error"] == "DUPLICATE_FILENAMES"
        assert len(_rows(db_session, company_a)) == 2
        assert db_session.query(StagedFile).filter_by(file_id="mine").count() == 1

    def test_multiple_files_share_one_transaction(self, db_session, company_a, user_a, products_a):
        for fid, name in (("f1", "one.xlsx"), ("f2", "two.xlsx")):
            staging_service.stage_file(
                company_id=company_a.id, user_id=user_a.id, file_id=fid, file_name=name, table_data=TABLE,
            )
        result = confirm_staged_files(company_a.id, user_a, ["f1", "f2"])

        assert result.saved_count == 2
        assert result.total_rows == 4
        codes = [r.internal_code for r in _rows(db_session, company_a)]
        assert len(set(codes)) == 4

    def test_failure_mid_write_rolls_back(self, db_session, company_a, user_a, products_a, monkeypatch):
        staging_service.stage_file(
            company_id=company_a.id, user_id=user_a.id, file_id="f1", file_name="a.xlsx", table_data=TABLE,
        )

        def explode(**kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(confirm_service, "ConfirmedUpload", explode)
        with pytest.raises(RuntimeError):
            confirm_staged_files(company_a.id, user_a, ["f1"])

        assert db_session.query(Upload).count() == 0
        assert db_session.query(OrderRow).count() == 0
        assert db_session.query(StagedFile).filter_by(file_id="f1").count() == 1

    def test_lost_race_is_retried(self, db_session, company_a, user_a, products_a, monkeypatch):
        staging_service.stage_file(
            company_id=company_a.id, user_id=user_a.id, file_id="f1", file_name="a.xlsx", table_data=TABLE,
        )
        real = internal_code_service.allocate_codes
        calls = []

        def flaky(company_id, mall_ids, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
            return real(company_id, mall_ids, **kwargs)

        monkeypatch.setattr(confirm_service, "allocate_codes", flaky)
        result = confirm_staged_files(company_a.id, user_a, ["f1"])

        assert len(calls) == 2
        assert result.total_rows == 2


class TestOwnership:
    """Staged files are private to their uploader."""

    def test_colleague_cannot_confirm(self, db_session, company_a, user_a, colleague_a, products_a):
        staging_service.stage_file(
            company_id=company_a.id, user_id=user_a.id, file_id="f1", file_name="a.xlsx", table_data=TABLE,
        )

        with pytest.raises(ForbiddenError):
            confirm_staged_files(company_a.id, colleague_a, ["f1"])

        event = db_session.query(SecurityEvent).filter_by(event_type="STAGED_FILE_ACCESS_DENIED").one()
        assert event.user_id == colleague_a.id
        assert event.success is False
        assert db_session.query(Upload).count() == 0

    def test_other_company_cannot_confirm(self, db_session, company_a, company_b, user_a, user_b, products_a):
        staging_service.stage_file(
            company_id=company_a.id, user_id=user_a.id, file_id="f1", file_name="a.xlsx", table_data=TABLE,
        )

        with pytest.raises(ForbiddenError):
            confirm_staged_files(company_b.id, user_b, ["f1"])

        assert db_session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").count() == 1

    def test_user_outside_company_rejected(self, db_session, company_a, company_b, user_a):
        with pytest.raises(ForbiddenError):
            confirm_staged_files(company_b.id, user_a, ["f1"])

    def test_missing_context(self, db_session, company_a, user_a):
        with pytest.raises(ValidationError):
            confirm_staged_files(None, user_a, ["f1"])
        with pytest.raises(ValidationError):
            confirm_staged_files(company_a.id, user_a, [])

    def test_unknown_file(self, db_session, company_a, user_a):
        with pytest.raises(NotFoundError):
            confirm_staged_files(company_a.id, user_a, ["missing"])

    def test_colleague_cannot_delete(self, db_session, company_a, user_a, colleague_a):
        staging_service.stage_file(
            company_id=company_a.id, user_id=user_a.id, file_id="f1", file_name="a.xlsx", table_data=TABLE,
        )
        with pytest.raises(ForbiddenError):
            staging_service.delete_staged_file(company_id=company_a.id, user_id=colleague_a.id, file_id="f1")


class TestOnlineUploads:
    """Online-grade users upload marketplace exports."""

    ONLINE_TABLE = [
        ["쇼핑몰명(1)", "주문번호", "상품명", "수취인명", "배송메시지"],
        ["ACME", "SB-1001", "위젯", "홍길동", "부재시 경비실"],
        ["쿠팡", "SB-1002", "가방", "김철수", ""],
    ]

    def test_vendor_resolved_per_row(self, db_session, company_a, online_user_a, mall_a, products_a):
        stage_and_confirm(company_a, online_user_a, self.ONLINE_TABLE)
        by_number = {r.sabang_code: r for r in _rows(db_session, company_a)}

        acme = by_number["SB-1001"]
        assert acme.vendor_name == "ACME"
        assert acme.mall_id == mall_a.id
        assert acme.internal_code.startswith(f"{code_date()}{mall_a.id:04d}")

        coupang = by_number["SB-1002"]
        assert coupang.vendor_name == "쿠팡"
        assert coupang.mall_id is None
        assert coupang.internal_code.startswith(f"{code_date()}0000")

    def test_marketplace_message_untouched(self, db_session, company_a, online_user_a, mall_a, products_a):
        stage_and_confirm(company_a, online_user_a, self.ONLINE_TABLE)
        row = next(r for r in _rows(db_session, company_a) if r.sabang_code == "SB-1001")

        assert row.row_data["배송메시지"] == "부재시 경비실"

    def test_staff_upload_uses_file_vendor(self, db_session, company_a, user_a, mall_a, products_a):
        stage_and_confirm(company_a, user_a, self.ONLINE_TABLE, vendor_name="ACME")
        rows = _rows(db_session, company_a)

        assert {r.vendor_name for r in rows} == {"ACME"}
        assert all(r.sabang_code is None for r in rows)


class TestHelpers:
    """Pure helpers used by confirmation."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("빠른배송★OLD123", "빠른배송★NEW456"),
            ("빠른배송", "빠른배송★NEW456"),
            ("", "★NEW456"),
            (None, "★NEW456"),
        ],
    )
    def test_stamp_delivery_message(self, message, expected):
        assert stamp_delivery_message(message, "NEW456") == expected

    def test_match_product_refs(self):
        code_map = {"위젯 세트": "P-1", "가방": "P-2"}
        id_map = {"위젯 세트": "7"}

        assert match_product_refs("위젯 세트", code_map, id_map) == ("P-1", 7)
        assert match_product_refs("위젯세트", code_map, id_map) == ("P-1", 7)
        assert match_product_refs("큰 가방 (블랙)", code_map, id_map) == ("P-2", None)
        assert match_product_refs("자동차", code_map, id_map) == (None, None)
        assert match_product_refs("", code_map, id_map) == (None, None)
