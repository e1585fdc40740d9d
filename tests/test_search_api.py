import unittest

import httpx

from lectern.services.catalog.repository import FixtureVideoRepository
from lectern.services.search.search_service import (
    MATCH_BATCH_SIZE,
    SearchService,
    best_match,
    choose_search_mode,
    expected_media_path,
    lookup_keys,
)

from support import CATALOG_ROWS, ORIGIN, Upstream, make_client

SEARCH_URL = "http://search.internal"


def search_backend(payload, status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=payload)
    return handler


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class SearchModeTests(unittest.TestCase):
    def test_q_selects_catalog_search(self):
        plan = choose_search_mode(q=" grace ")
        self.assertEqual((plan.mode, plan.term), ("videos", "grace"))

    def test_query_selects_content_search(self):
        plan = choose_search_mode(q="grace", query="mercy")
        self.assertEqual((plan.mode, plan.term), ("subtitles", "mercy"))

    def test_explicit_mode_wins(self):
        self.assertEqual(choose_search_mode(q="grace", query="mercy", mode="videos").term, "grace")
        self.assertEqual(choose_search_mode(q="grace", mode="subtitles").mode, "subtitles")
        self.assertEqual(choose_search_mode(query="mercy", mode="videos").mode, "videos")

    def test_blank_terms(self):
        self.assertIsNone(choose_search_mode())
        self.assertIsNone(choose_search_mode(q="  ", query=""))
        self.assertEqual(choose_search_mode(q="grace", query="  ").mode, "videos")


class ReconciliationHelperTests(unittest.TestCase):
    def test_expected_media_path(self):
        self.assertEqual(expected_media_path("Smith/Sermon.vtt"), "Smith/Sermon.mp4")
        self.assertEqual(expected_media_path("/Smith/Sermon.srt"), "Smith/Sermon.mp4")
        self.assertEqual(expected_media_path("https://cdn.example.org/x/Smith/My%20Talk.vtt"), "x/Smith/My Talk.mp4")
        self.assertEqual(expected_media_path("Smith\\Sermon.vtt"), "Smith/Sermon.mp4")

    def test_lookup_keys_longest_first(self):
        self.assertEqual(lookup_keys("subs/Smith/Sermon.mp4"), [
            "subs/Smith/Sermon.mp4", "Smith/Sermon.mp4", "Sermon.mp4",
        ])
        self.assertEqual(lookup_keys(""), [])

    def test_longest_key_wins(self):
        keys = ["Smith/Sermon.mp4", "Sermon.mp4"]
        self.assertEqual(best_match(keys, [(5, "Jones/Sermon.mp4"), (9, "Smith/Sermon.mp4")]), 9)

    def test_exact_beats_suffix(self):
        self.assertEqual(best_match(["Sermon.mp4"], [(2, "z/Sermon.mp4"), (8, "/Sermon.mp4")]), 8)

    def test_lowest_id_breaks_ties(self):
        self.assertEqual(best_match(["Sermon.mp4"], [(9, "a/Sermon.mp4"), (4, "b/Sermon.mp4")]), 4)

    def test_no_match(self):
        self.assertIsNone(best_match(["Sermon.mp4"], [(1, "Sermon2.mp4"), (2, "xSermon.mp4")]))


class RecordingRepository(FixtureVideoRepository):
    def __init__(self, rows):
        super().__init__(rows)
        self.batches = []

    async def find_by_media_paths(self, paths):
        self.batches.append(list(paths))
        return await super().find_by_media_paths(paths)


class ReconcileBatchingTests(unittest.IsolatedAsyncioTestCase):
    async def test_lookups_are_batched(self):
        repository = RecordingRepository(CATALOG_ROWS)
        hits = [{"subtitlePath": f"a/b{i}/c{i}.vtt"} for i in range(30)]
        hits.append({"subtitlePath": "Smith/Sermon.vtt"})
        async with httpx.AsyncClient() as client:
            results = await SearchService(repository, client).reconcile(hits)

        self.assertEqual([len(b) for b in repository.batches], [MATCH_BATCH_SIZE, 42])
        self.assertTrue(all(len(b) <= MATCH_BATCH_SIZE for b in repository.batches))
        self.assertEqual(results[-1]["videoId"], 42)
        self.assertTrue(all(r["videoId"] is None for r in results[:-1]))

    async def test_no_hits_means_no_lookups(self):
        repository = RecordingRepository(CATALOG_ROWS)
        async with httpx.AsyncClient() as client:
            self.assertEqual(await SearchService(repository, client).reconcile([]), [])
        self.assertEqual(repository.batches, [])


class CatalogSearchApiTests(unittest.TestCase):
    def setUp(self):
        self.client, _, self.upstream = make_client()

    def test_single_match_with_resolved_urls(self):
        response = self.client.get("/api/search", params={"q": "repentance"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual((body["mode"], body["query"], body["total"]), ("videos", "repentance", 1))
        result = body["results"][0]
        self.assertEqual(result["id"], 44)
        self.assertEqual(result["vid_url"], f"{ORIGIN}/Jones/Repentance.mp4")
        self.assertEqual(result["thumb_url"], f"{ORIGIN}/Jones/covers/repentance.png")
        self.assertEqual(self.upstream.requests, [])

    def test_matches_title_and_preacher_case_insensitively(self):
        body = self.client.get("/api/search", params={"q": "SMITH"}).json()
        self.assertEqual([r["id"] for r in body["results"]], [42, 43])
        self.assertEqual(body["results"][0]["thumb_url"], f"{ORIGIN}/Smith/Sermon.jpg")

    def test_limit_and_offset(self):
        body = self.client.get("/api/search", params={"q": "sermon", "limit": "1", "offset": "1"}).json()
        self.assertEqual([r["id"] for r in body["results"]], [43])

    def test_missing_term(self):
        for params in ({}, {"q": "   "}):
            response = self.client.get("/api/search", params=params)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {"error": 'Query parameter "q" is required'})


class ContentSearchApiTests(unittest.TestCase):
    HITS = {
        "results": [
            {"subtitlePath": "Smith/Sermon.vtt", "text": "grace through faith"},
            {"path": "/subs/Jones/Repentance.vtt", "text": "repent"},
            {"file": "Nobody/Missing.vtt", "text": "nothing"},
        ],
    }

    def test_hits_are_matched_to_videos(self):
        client, _, upstream = make_client(
            upstream=Upstream(fallback=search_backend(self.HITS)),
            search_service_url=SEARCH_URL,
        )
        response = client.get("/api/search", params={"query": "grace", "categoryInfo": "smith"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual((body["mode"], body["query"], body["total"]), ("subtitles", "grace", 3))
        self.assertEqual([r["videoId"] for r in body["results"]], [42, 44, None])
        self.assertEqual(body["results"][1]["subtitlePath"], "/subs/Jones/Repentance.vtt")
        self.assertEqual(body["results"][0]["text"], "grace through faith")

        sent = upstream.requests[0]
        self.assertEqual(sent.url.path, "/search")
        self.assertEqual(sent.url.params["query"], "grace")
        self.assertEqual(sent.url.params["categoryInfo"], "smith")
        self.assertNotIn("maxResults", sent.url.params)

    def test_bare_list_payload(self):
        client, _, _ = make_client(
            upstream=Upstream(fallback=search_backend([{"subtitlePath": "Smith/Long.vtt"}])),
            search_service_url=SEARCH_URL,
        )
        body = client.get("/api/search", params={"q": "x", "mode": "subtitles"}).json()
        self.assertEqual(body["results"][0]["videoId"], 43)

    def test_not_configured(self):
        client, _, upstream = make_client()
        response = client.get("/api/search", params={"query": "grace"})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json(), {"error": "Search service not configured"})
        self.assertEqual(upstream.requests, [])

    def test_unreachable_service(self):
        client, _, _ = make_client(upstream=Upstream(fallback=unreachable), search_service_url=SEARCH_URL)
        response = client.get("/api/search", params={"query": "grace"})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json(), {"error": "Search service unavailable"})

    def test_error_status_from_service(self):
        client, _, _ = make_client(
            upstream=Upstream(fallback=search_backend({"detail": "boom"}, status=500)),
            search_service_url=SEARCH_URL,
        )
        response = client.get("/api/search", params={"query": "grace"})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json(), {"error": "Search service returned 500"})

    def test_unexpected_payload(self):
        client, _, _ = make_client(
            upstream=Upstream(fallback=search_backend("not a list")),
            search_service_url=SEARCH_URL,
        )
        self.assertEqual(client.get("/api/search", params={"query": "grace"}).status_code, 502)


if __name__ == "__main__":
    unittest.main()
