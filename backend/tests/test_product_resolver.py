# Overview: Pytest coverage for exact product resolution and fuzzy suggestions.

import pytest

from orderdesk.models import Product
from orderdesk.services import product_resolver
from orderdesk.services.product_resolver import resolve_product, suggest_products, sequence_ratio


class TestResolveProduct:
    """Exact-name resolution against one company's catalog."""

    def test_trimmed_exact_match(self, db_session, company_a, products_a):
        match = resolve_product(company_a.id, "  위젯 ")
        assert match is not None
        assert match.code == "P-100"
        assert match.type == "외주"
        assert match.carrier == "CJ대한통운"
        assert match.price == 1000

    def test_vendor_facing_name_matches(self, db_session, company_a, products_a):
        match = resolve_product(company_a.id, "ㄱ프리미엄 가방")
        assert match is not None
        assert match.code == "P-200"

    def test_unknown_and_blank_names(self, db_session, company_a, products_a):
        assert resolve_product(company_a.id, "없는상품") is None
        assert resolve_product(company_a.id, "   ") is None
        assert resolve_product(company_a.id, None) is None

    def test_other_company_catalog_is_invisible(self, db_session, company_a, company_b, products_a):
        assert resolve_product(company_b.id, "위젯") is None

    def test_duplicate_names_prefer_hinted_vendor(self, db_session, company_a):
        plain = Product(company_id=company_a.id, code="S-1", name="참깨")
        carried = Product(company_id=company_a.id, code="S-2", name="참깨", post_type="로젠")
        routed = Product(company_id=company_a.id, code="S-3", name="참깨", purchase="ACME")
        db_session.add_all([plain, carried, routed])
        db_session.commit()

        assert resolve_product(company_a.id, "참깨", "acme").code == "S-3"
        # Without a hint the entry with a carrier wins, then the oldest
        assert resolve_product(company_a.id, "참깨").code == "S-2"

    def test_duplicate_names_fall_back_to_oldest(self, db_session, company_a):
        first = Product(company_id=company_a.id, code="T-1", name="깨소금")
        second = Product(company_id=company_a.id, code="T-2", name="깨소금")
        db_session.add_all([first, second])
        db_session.commit()

        assert resolve_product(company_a.id, "깨소금").code == "T-1"

    def test_vendor_hint_by_mall_id(self, db_session, company_a, mall_a):
        db_session.add_all([
            Product(company_id=company_a.id, code="U-1", name="소금", post_type="로젠"),
            Product(company_id=company_a.id, code="U-2", name="소금", purchase="ACME"),
        ])
        db_session.commit()

        assert resolve_product(company_a.id, "소금", mall_a.id).code == "U-2"

    def test_catalog_name_beats_vendor_facing_name(self, db_session, company_a):
        db_session.add_all([
            Product(company_id=company_a.id, code="V-1", name="다른이름", sabang_name="고춧가루"),
            Product(company_id=company_a.id, code="V-2", name="고춧가루"),
        ])
        db_session.commit()

        assert resolve_product(company_a.id, "고춧가루").code == "V-2"


class TestSuggestProducts:
    """Similarity ranking for the interactive picker."""

    def test_best_match_uses_vendor_facing_name(self, db_session, company_a, products_a):
        result = suggest_products(company_a.id, "프리미엄 가방")
        codes = [p.code for p in result.products()]
        assert codes[0] == "P-200"
        assert result.direct_input is False
        assert result.items[0].score > 0.9

    def test_ties_keep_catalog_order(self, db_session, company_a, products_a):
        result = suggest_products(company_a.id, "기름")
        codes = [p.code for p in result.products()]
        assert codes[:2] == ["106464", "P-300"]
        assert result.items[0].score == result.items[1].score

    def test_code_hit_scores_one(self, db_session, company_a, products_a):
        result = suggest_products(company_a.id, "p-100")
        assert result.items[0].product.code == "P-100"
        assert result.items[0].score == 1.0

    def test_nothing_above_threshold_means_direct_input(self, db_session, company_a, products_a):
        result = suggest_products(company_a.id, "자동차 타이어")
        assert result.items == []
        assert result.direct_input is True
        assert result.to_dict() == {"items": [], "direct_input": True}

    def test_empty_catalog(self, db_session, company_a):
        result = suggest_products(company_a.id, "위젯")
        assert result.items == []
        assert result.direct_input is True

    def test_blank_query(self, db_session, company_a, products_a):
        assert suggest_products(company_a.id, "  ").direct_input is True

    def test_limit(self, db_session, company_a, products_a):
        result = suggest_products(company_a.id, "기름", limit=1)
        assert len(result.items) == 1

    def test_min_score_override(self, db_session, company_a, products_a):
        result = suggest_products(company_a.id, "위잿", min_score=0.9)
        assert result.items == []

    def test_pluggable_scorer(self, db_session, company_a, products_a):
        def only_bags(query, candidate):
            return 1.0 if candidate == "가방" else 0.0

        result = suggest_products(company_a.id, "아무거나", scorer=only_bags)
        assert [p.code for p in result.products()] == ["P-200"]

    def test_suggestions_are_tenant_scoped(self, db_session, company_a, company_b, products_a):
        assert suggest_products(company_b.id, "위젯").items == []

    def test_result_serializes_score(self, db_session, company_a, products_a):
        payload = suggest_products(company_a.id, "위젯").to_dict()
        assert payload["items"][0]["code"] == "P-100"
        assert payload["items"][0]["score"] == 1.0


class TestNormalization:
    """Name normalization shared by resolution and scoring."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, ""),
            ("  Widget  Pro ", "widget pro"),
            ("위젯\t세트", "위젯 세트"),
        ],
    )
    def test_normalize_name(self, raw, expected):
        assert product_resolver.normalize_name(raw) == expected

    def test_sequence_ratio_ignores_case_and_spacing(self):
        assert sequence_ratio("Widget  PRO", "widget pro") == 1.0
        assert sequence_ratio("", "widget") == 0.0
