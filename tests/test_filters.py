from datetime import datetime, timezone

from opendata_search.retrieval.models import Query, QueryFilters
from opendata_search.search.filters import apply_query_filters, matches

from conftest import make_item


def test_category_filter():
    item = make_item("a", category="子育て")
    assert matches(item, Query(text="x", category="子育て"))
    assert not matches(item, Query(text="x", category="交通"))
    assert matches(item, Query(text="x"))


def test_catalog_language_matches_any_query_language():
    ja = make_item("ja", language="ja")
    en = make_item("en", language="en")

    english_query = Query(text="park", language="en")
    assert matches(ja, english_query)
    assert matches(en, english_query)
    assert not matches(en, Query(text="park", language="ko"))


def test_tag_filter_requires_every_tag():
    item = make_item("a", tags=["公園", "東京都"])
    assert matches(item, Query(text="x", filters=QueryFilters(tags=["公園"])))
    assert not matches(item, Query(text="x", filters=QueryFilters(tags=["公園", "図書館"])))


def test_date_range_is_inclusive_and_accepts_naive_bounds():
    item = make_item("a", last_updated=datetime(2024, 4, 1, tzinfo=timezone.utc))

    inclusive = QueryFilters(
        date_from=datetime(2024, 4, 1, tzinfo=timezone.utc),
        date_to=datetime(2024, 4, 1, tzinfo=timezone.utc),
    )
    assert matches(item, Query(text="x", filters=inclusive))

    naive_after = QueryFilters(date_from=datetime(2024, 5, 1))
    assert not matches(item, Query(text="x", filters=naive_after))


def test_apply_query_filters_keeps_order():
    items = [
        make_item("a", category="子育て"),
        make_item("b", category="交通"),
        make_item("c", category="子育て"),
    ]
    kept = apply_query_filters(items, Query(text="x", category="子育て"))
    assert [i.id for i in kept] == ["a", "c"]


def test_language_and_category_match_after_normalization():
    item = make_item("a", category="子育て", language="en")

    assert matches(item, Query(text="x", language="EN", category=" 子育て "))
    assert not matches(item, Query(text="x", language="KO"))
