import pytest

from conftest import FixedImageEmbedder, KeywordEmbedder
from visualrag.core.embed.base import ImageEmbedder
from visualrag.core.embed.embedder import build_image_embedder, build_text_embedder
from visualrag.core.embed.generator import EmbeddingGenerator
from visualrag.core.embed.http_client import HttpImageEmbedder, OpenAIEmbeddingClient
from visualrag.core.errors import EmbeddingUnavailableError, GenerationRequestError
from visualrag.config.settings import AppSettings, EmbeddingConfig, ImageEmbeddingConfig, settings
from visualrag.models.document import LayoutPage, NormalizedBBox, TextPage, VisualRegion


def text_page(page_number, text):
    return TextPage(page_number=page_number, width=600, height=800, text=text)


def region(region_id, page_number=1, type="figure"):
    return VisualRegion(
        id=region_id,
        document_id="doc-1",
        page_number=page_number,
        type=type,
        bbox=NormalizedBBox(x0=0.1, y0=0.1, x1=0.5, y1=0.3)
    )


class FlakyImageEmbedder(ImageEmbedder):
    """Fails for one region id and embeds the rest."""

    def __init__(self, failing_id):
        self.failing_id = failing_id

    async def embed_region(self, file_path, document_id, region):
        if region.id == self.failing_id:
            raise GenerationRequestError("service unavailable")
        return [0.2, 0.4]


@pytest.mark.asyncio
async def test_text_progress_covers_the_stage_span():
    generator = EmbeddingGenerator(KeywordEmbedder(), max_chars=8000, progress_span=15.0)
    pages = [text_page(i, f"page {i} about neural networks") for i in range(1, 11)]
    reported = []

    embeddings = await generator.embed_text_pages(
        pages, base_progress=45, on_progress=lambda p, meta: reported.append((p, meta))
    )

    assert [e.page_number for e in embeddings] == list(range(1, 11))
    values = [p for p, _ in reported]
    assert len(values) == 10
    assert all(a < b for a, b in zip(values, values[1:]))
    assert all(45 <= v <= 60 for v in values)
    assert values[-1] == pytest.approx(60)
    assert reported[0][1].page == 1
    assert reported[0][1].total_pages == 10


@pytest.mark.asyncio
async def test_page_text_is_truncated_before_embedding():
    embedder = KeywordEmbedder()
    generator = EmbeddingGenerator(embedder, max_chars=8000)

    embeddings = await generator.embed_text_pages([text_page(1, "x" * 20000)], base_progress=45)

    assert len(embedder.inputs[0]) == 8000
    # The stored text is the full page
    assert len(embeddings[0].text) == 20000


@pytest.mark.asyncio
async def test_blank_page_is_not_sent_but_still_reports_progress():
    embedder = KeywordEmbedder()
    generator = EmbeddingGenerator(embedder)
    reported = []

    embeddings = await generator.embed_text_pages(
        [text_page(1, "  \n "), text_page(2, "wheat harvest")],
        base_progress=45,
        on_progress=lambda p, meta: reported.append(p)
    )

    assert embedder.inputs == ["wheat harvest"]
    assert embeddings[0].embedding == []
    assert len(embeddings[1].embedding) == 6
    assert len(reported) == 2


@pytest.mark.asyncio
async def test_missing_text_backend_raises():
    generator = EmbeddingGenerator(None)
    with pytest.raises(EmbeddingUnavailableError):
        await generator.embed_text_pages([text_page(1, "hello")], base_progress=45)


@pytest.mark.asyncio
async def test_only_visual_regions_are_embedded():
    image_embedder = FixedImageEmbedder()
    generator = EmbeddingGenerator(KeywordEmbedder(), image_embedder)
    layout = [
        LayoutPage(page_number=1, width=600, height=800, regions=[
            region("r-text", type="text"),
            region("r-fig", type="figure"),
            region("r-other", type="other"),
        ]),
        LayoutPage(page_number=2, width=600, height=800, regions=[region("r-table", 2, "table")]),
    ]
    reported = []

    embeddings = await generator.embed_regions(
        layout, "/tmp/doc.pdf", "doc-1", base_progress=65,
        on_progress=lambda p, meta: reported.append(meta)
    )

    assert image_embedder.regions == ["r-fig", "r-table"]
    assert [e.region_id for e in embeddings] == ["r-fig", "r-table"]
    assert [m.current_region_index for m in reported] == [0, 1]
    assert reported[-1].total_regions == 2


@pytest.mark.asyncio
async def test_failed_region_is_skipped():
    generator = EmbeddingGenerator(None, FlakyImageEmbedder("r-2"))
    layout = [LayoutPage(page_number=1, width=1, height=1, regions=[region("r-1"), region("r-2"), region("r-3")])]
    reported = []

    embeddings = await generator.embed_regions(
        layout, "/tmp/doc.pdf", "doc-1", base_progress=65,
        on_progress=lambda p, meta: reported.append(p)
    )

    assert [e.region_id for e in embeddings] == ["r-1", "r-3"]
    assert reported[-1] == pytest.approx(80)


@pytest.mark.asyncio
async def test_missing_image_backend_raises():
    generator = EmbeddingGenerator(KeywordEmbedder(), None)
    with pytest.raises(EmbeddingUnavailableError):
        await generator.embed_regions([], "/tmp/doc.pdf", "doc-1", base_progress=65)


def test_build_text_embedder_selects_provider(monkeypatch):
    monkeypatch.setattr(settings.embedding, "provider", "none")
    assert build_text_embedder(settings) is None

    monkeypatch.setattr(settings.embedding, "provider", "openai")
    monkeypatch.setattr(settings, "openai_api_key", "")
    assert build_text_embedder(settings) is None

    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    assert isinstance(build_text_embedder(settings), OpenAIEmbeddingClient)

    monkeypatch.setattr(settings.embedding, "provider", "unknown")
    with pytest.raises(ValueError):
        build_text_embedder(settings)


def test_build_image_embedder_requires_endpoint(monkeypatch):
    monkeypatch.setattr(settings.image_embedding, "endpoint", "")
    assert build_image_embedder(settings) is None

    monkeypatch.setattr(settings.image_embedding, "endpoint", "http://images.local/embed")
    assert isinstance(build_image_embedder(settings), HttpImageEmbedder)


def test_built_embedders_use_the_given_settings():
    custom = AppSettings(
        openai_api_key="sk-custom",
        embedding=EmbeddingConfig(
            provider="openai",
            base_url="https://custom.example/v2",
            model="custom-model",
            max_retries=7
        ),
        image_embedding=ImageEmbeddingConfig(endpoint="http://images.custom/embed", timeout=3.0)
    )

    text_embedder = build_text_embedder(custom)
    assert text_embedder.model == "custom-model"
    assert text_embedder.poster.url == "https://custom.example/v2/embeddings"
    assert text_embedder.poster.max_retries == 7

    image_embedder = build_image_embedder(custom)
    assert image_embedder.poster.url == "http://images.custom/embed"
    assert image_embedder.poster.timeout == 3.0
