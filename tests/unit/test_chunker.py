import pytest

from agent_pipeline.config import ChunkingConfig
from agent_pipeline.ingest.chunker import FixedWindowChunker
from agent_pipeline.types import SourceDocument


def _document() -> SourceDocument:
    return SourceDocument(
        document_id="doc-1",
        name="handbook.txt",
        mime_type="text/plain",
        size=0,
        company_id="company-1",
        storage_locator="company-1/doc-1",
    )


def _text(length: int) -> str:
    sentence = "Data governance requires strict access control and encryption. "
    return (sentence * (length // len(sentence) + 1))[:length]


@pytest.mark.parametrize("length", [1000, 1001, 2500, 4321])
def test_chunk_starts_follow_backward_overlap(length: int) -> None:
    chunker = FixedWindowChunker(ChunkingConfig())

    chunks = chunker.chunk(_document(), _text(length))

    assert chunks[0].start == 0
    for chunk in chunks:
        i = chunk.chunk_index
        if i > 0:
            assert chunk.start == max(0, i * 1000 - 50)
        assert chunk.end == min((i + 1) * 1000, length)
    assert chunks[-1].end == length


def test_consecutive_chunks_share_overlap() -> None:
    text = _text(2500)
    chunks = FixedWindowChunker().chunk(_document(), text)

    assert [chunk.chunk_index for chunk in chunks] == [0, 1, 2]
    assert chunks[1].text[:50] == chunks[0].text[-50:]
    assert chunks[2].text == text[1950:2500]


def test_short_trailing_window_is_dropped_but_indexes_are_kept() -> None:
    text = _text(3000) + "   abc    "
    chunks = FixedWindowChunker().chunk(_document(), text)

    # Window 3 covers text[2950:3010]: 50 overlap chars, so it is kept.
    assert [chunk.chunk_index for chunk in chunks] == [0, 1, 2, 3]

    config = ChunkingConfig(chunk_size=100, overlap=0, min_chunk_chars=10)
    sparse = "x" * 100 + " " * 95 + "ab   " + "y" * 100
    kept = FixedWindowChunker(config).chunk(_document(), sparse)

    assert [chunk.chunk_index for chunk in kept] == [0, 2]
    assert all(len(chunk.text.strip()) >= 10 for chunk in kept)


def test_chunk_metadata_carries_document_fields() -> None:
    document = _document()
    document.agent_id = "agent-7"

    chunk = FixedWindowChunker().chunk(document, _text(200))[0]

    assert chunk.document_id == "doc-1"
    assert chunk.company_id == "company-1"
    assert chunk.agent_id == "agent-7"
    assert chunk.metadata == {"filename": "handbook.txt", "file_type": "text/plain", "chunk_index": 0}


def test_overlap_must_be_smaller_than_chunk_size() -> None:
    with pytest.raises(ValueError):
        ChunkingConfig(chunk_size=50, overlap=50)
