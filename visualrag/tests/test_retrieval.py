import pytest

from conftest import FailingEmbedder, KeywordEmbedder, seed_document
from visualrag.core.retrieve.citations import NO_CONTEXT, CitationBuilder
from visualrag.core.retrieve.ranker import ELLIPSIS, SearchRanker, build_snippet, pick_region_ids

REGIONS = ["r0", "r1", "r2", "r3", "r4"]


def test_snippet_marks_truncated_edges():
    text = "x" * 100 + "needle" + "y" * 100

    snippet = build_snippet(text, "needle", window=60)

    assert snippet == ELLIPSIS + "x" * 60 + "needle" + "y" * 60 + ELLIPSIS


def test_snippet_of_short_text_has_no_markers():
    assert build_snippet("find the needle here", "needle", window=60) == "find the needle here"


def test_snippet_without_hit_is_page_prefix():
    assert build_snippet("z" * 300, "needle", window=60) == "z" * 120


def test_regions_without_hit_use_middle_region():
    assert pick_region_ids("nothing relevant", "needle", REGIONS) == ["r2"]


def test_regions_surround_the_matching_line():
    text = "alpha\nbeta\ngamma\ndelta\nepsilon"

    assert pick_region_ids(text, "gamma", REGIONS) == ["r1", "r2", "r3"]
    assert pick_region_ids(text, "alpha", REGIONS) == ["r0", "r1"]
    assert pick_region_ids(text, "epsilon", REGIONS) == ["r3", "r4"]
    # Region lookup ignores case like the snippet does
    assert pick_region_ids(text, "DELTA", REGIONS) == ["r2", "r3", "r4"]


def test_regions_clamp_when_text_has_more_lines_than_regions():
    text = "alpha\nbeta\ngamma\ndelta\nepsilon"
    assert pick_region_ids(text, "epsilon", ["r0", "r1"]) == ["r1"]


def test_no_regions_means_no_highlight():
    assert pick_region_ids("alpha", "alpha", []) == []


async def index_pages(document_store, vector_store, embedder, document_id):
    for page in document_store.find_text_pages(document_id):
        vector_store.upsert_text_embedding(document_id, page.id, page.page_number, await embedder.embed(page.text))


@pytest.mark.asyncio
async def test_literal_hit_is_found_on_its_page(document_store, vector_store):
    pages = [f"Filler page {i}\nnothing to see\nmore filler" for i in range(1, 11)]
    pages[2] = "Intro line\nThe quantum result is here\nClosing line"
    region_ids = seed_document(document_store, "doc-lit", pages)
    ranker = SearchRanker(document_store, vector_store, KeywordEmbedder())

    results = await ranker.search("doc-lit", "quantum")

    assert len(results) == 1
    assert results[0].page_number == 3
    assert "quantum" in results[0].snippet
    assert results[0].region_ids == region_ids[3]


@pytest.mark.asyncio
async def test_literal_hits_come_in_page_order_and_respect_limit(document_store, vector_store):
    seed_document(document_store, "doc-many", [f"page {i} mentions wheat" for i in range(1, 8)])
    ranker = SearchRanker(document_store, vector_store, None)

    results = await ranker.search("doc-many", "wheat", limit=3)

    assert [r.page_number for r in results] == [1, 2, 3]


@pytest.mark.asyncio
async def test_embedding_search_runs_when_literal_search_misses(document_store, vector_store):
    pages = [
        "A neural network learns weights\nsecond line\nthird line",
        "The wheat harvest came early\nsecond line\nthird line",
        "The planet follows its orbit\nsecond line\nthird line",
    ]
    region_ids = seed_document(document_store, "doc-sem", pages)
    embedder = KeywordEmbedder()
    await index_pages(document_store, vector_store, embedder, "doc-sem")
    ranker = SearchRanker(document_store, vector_store, embedder)

    results = await ranker.search("doc-sem", "orbiting planet")

    assert results
    assert results[0].page_number == 3
    # No literal hit on the page, so the middle line stands in for it
    assert results[0].region_ids == [region_ids[3][1]]


@pytest.mark.asyncio
async def test_failing_embedder_falls_back_to_empty_literal_results(document_store, vector_store):
    seed_document(document_store, "doc-fail", ["The planet follows its orbit"])
    ranker = SearchRanker(document_store, vector_store, FailingEmbedder())

    assert await ranker.search("doc-fail", "orbiting planet") == []


@pytest.mark.asyncio
async def test_literal_search_is_case_sensitive(document_store, vector_store):
    seed_document(document_store, "doc-case", ["A neural network"])
    ranker = SearchRanker(document_store, vector_store, None)

    assert await ranker.search("doc-case", "NEURAL") == []
    assert len(await ranker.keyword_search("doc-case", "neural")) == 1


@pytest.mark.asyncio
async def test_unknown_document_has_no_results(document_store, vector_store):
    ranker = SearchRanker(document_store, vector_store, KeywordEmbedder())
    assert await ranker.search("missing", "planet") == []


def test_limit_is_clamped(document_store, vector_store):
    ranker = SearchRanker(document_store, vector_store, None)
    assert ranker.clamp_limit(None) == 10
    assert ranker.clamp_limit(500) == 50
    assert ranker.clamp_limit(0) == 1


@pytest.mark.asyncio
async def test_citations_number_passages_and_cite_regions(document_store, vector_store):
    region_ids = seed_document(document_store, "doc-cite", [
        "Overview\nwheat yields rose\nend",
        "Nothing here",
        "Later the wheat was sold\nend",
    ])
    builder = CitationBuilder(SearchRanker(document_store, vector_store, None))

    response = await builder.build("doc-cite", "wheat")

    assert [c.page_number for c in response.citations] == [1, 3]
    assert response.citations[0].region_ids == region_ids[1]
    assert response.context.startswith("Passage 1 (page 1):\n")
    assert "Passage 2 (page 3):" in response.context
    assert response.messages[0]["role"] == "system"
    assert "wheat" in response.messages[1]["content"]


@pytest.mark.asyncio
async def test_citations_without_hits_say_so(document_store, vector_store):
    seed_document(document_store, "doc-empty", ["Unrelated text"])
    builder = CitationBuilder(SearchRanker(document_store, vector_store, None))

    response = await builder.build("doc-empty", "wheat")

    assert response.citations == []
    assert response.context == NO_CONTEXT
