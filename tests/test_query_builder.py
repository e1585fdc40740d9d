import unittest

from sqlalchemy import select

from lectern.models.models import Video
from lectern.services.catalog.query_builder import (
    ListingOptions,
    Predicate,
    build_video_query,
    clamp_limit,
    normalize_language,
    normalize_limit,
    normalize_page,
    normalize_sort,
)
from lectern.services.catalog.repository import video_from_dict

from support import CATALOG_ROWS


def compile_where(query):
    compiled = select(Video).where(*query.where_clauses()).compile()
    return str(compiled), compiled.params


class PaginationTests(unittest.TestCase):
    def test_allowed_limits_pass_through(self):
        for limit in (24, 48, 96):
            self.assertEqual(normalize_limit(str(limit)), limit)

    def test_legacy_limits_map_to_nearest_allowed(self):
        self.assertEqual(normalize_limit("25"), 24)
        self.assertEqual(normalize_limit("50"), 48)
        self.assertEqual(normalize_limit("100"), 96)

    def test_invalid_limits_fall_back_to_default(self):
        for value in (None, "", "abc", "0", "-24", "20", "1000", "24.5"):
            with self.subTest(value=value):
                self.assertEqual(normalize_limit(value), 24)

    def test_page_defaults(self):
        self.assertEqual(normalize_page(None), 1)
        self.assertEqual(normalize_page("0"), 1)
        self.assertEqual(normalize_page("-3"), 1)
        self.assertEqual(normalize_page("x"), 1)
        self.assertEqual(normalize_page(" 3 "), 3)

    def test_offset_follows_page_and_limit(self):
        query = build_video_query(ListingOptions(page="3", limit="48"))
        self.assertEqual((query.page, query.limit, query.offset), (3, 48, 96))

    def test_total_pages(self):
        query = build_video_query(ListingOptions(limit="24"))
        self.assertEqual(query.total_pages(0), 0)
        self.assertEqual(query.total_pages(1), 1)
        self.assertEqual(query.total_pages(24), 1)
        self.assertEqual(query.total_pages(25), 2)

    def test_clamp_limit(self):
        self.assertEqual(clamp_limit(None, default=10, maximum=50), 10)
        self.assertEqual(clamp_limit("0", default=10, maximum=50), 10)
        self.assertEqual(clamp_limit("7", default=10, maximum=50), 7)
        self.assertEqual(clamp_limit("500", default=10, maximum=50), 50)


class FilterTests(unittest.TestCase):
    def test_language_normalization(self):
        self.assertEqual(normalize_language(" EN "), "en")
        self.assertIsNone(normalize_language("eng"))
        self.assertIsNone(normalize_language("e1"))
        self.assertIsNone(normalize_language(""))

    def test_sort_whitelist(self):
        self.assertEqual(normalize_sort(None), "date")
        self.assertEqual(normalize_sort("clicks"), "clicks")
        self.assertEqual(normalize_sort("views"), "clicks")
        self.assertEqual(normalize_sort("id; DROP TABLE videos"), "date")

    def test_invalid_options_are_dropped(self):
        query = build_video_query(ListingOptions(language="english", length="medium", preacher="  "))
        self.assertEqual(query.predicates, ())
        self.assertEqual(query.where_clauses(), [])
        sql, params = compile_where(query)
        self.assertNotIn("WHERE", sql)
        self.assertEqual(params, {})

    def test_where_clauses_bind_request_values(self):
        query = build_video_query(ListingOptions(
            preacher="Smith' OR 1=1 --",
            category="smith",
            search_category="Gospel",
            language="EN",
            length="short",
        ))
        sql, params = compile_where(query)
        where = sql.split("WHERE", 1)[1]
        for fragment in (
            "videos.vid_preacher = :",
            "videos.vid_category = :",
            "videos.search_category = :",
            "lower(videos.language) = :",
            "videos.runtime_minutes < :",
        ):
            self.assertIn(fragment, where)
        self.assertEqual(
            sorted(params.values(), key=str),
            sorted(["Smith' OR 1=1 --", "smith", "Gospel", "en", 20], key=str),
        )
        self.assertNotIn("Smith", sql)
        self.assertNotIn("OR 1=1", sql)
        self.assertNotIn("Gospel", sql)

    def test_composition_is_idempotent(self):
        options = ListingOptions(preacher="Smith", length="long", sort="clicks", page="2", limit="50")
        first, second = build_video_query(options), build_video_query(options)
        self.assertEqual(first, second)
        self.assertEqual(compile_where(first), compile_where(second))
        self.assertEqual(compile_where(first), compile_where(first))

    def test_length_split_covers_rows_with_runtime(self):
        rows = [video_from_dict(r) for r in CATALOG_ROWS]
        short = build_video_query(ListingOptions(length="short"))
        long = build_video_query(ListingOptions(length="long"))

        short_ids = {v.id for v in rows if short.matches(v)}
        long_ids = {v.id for v in rows if long.matches(v)}
        timed_ids = {v.id for v in rows if v.runtime_minutes is not None}

        self.assertEqual(short_ids, {42})
        self.assertEqual(long_ids, {43, 44})
        self.assertFalse(short_ids & long_ids)
        self.assertEqual(short_ids | long_ids, timed_ids)

    def test_language_match_is_case_insensitive(self):
        rows = [video_from_dict(r) for r in CATALOG_ROWS]
        query = build_video_query(ListingOptions(language="en"))
        self.assertEqual({v.id for v in rows if query.matches(v)}, {42, 43})

    def test_extra_predicates_are_appended(self):
        extra = (Predicate("clicks", "ge", 5),)
        query = build_video_query(ListingOptions(preacher="Smith", extra=extra))
        sql, params = compile_where(query)
        where = sql.split("WHERE", 1)[1]
        self.assertLess(where.index("videos.vid_preacher = :"), where.index("videos.clicks >= :"))
        self.assertEqual(sorted(params.values(), key=str), [5, "Smith"])


if __name__ == "__main__":
    unittest.main()
