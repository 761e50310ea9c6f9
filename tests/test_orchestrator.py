from dataclasses import replace
import threading

import pytest

from search_sync.services.search.client import SearchIndexClientError, SearchIndexUnavailableError
from search_sync.services.search.content_source import InMemoryContentSource
from search_sync.services.search.errors import (
    BulkItemError,
    BulkTransportError,
    ConfigError,
    ConnectivityError,
    MalformedRecordError,
    SchemaError,
)
from search_sync.services.search.orchestrator import SyncOrchestrator
from search_sync.services.search.transformer import document_key
from search_sync.services.search.types import SyncOptions
from search_sync.services.search.uploader import BatchUploader


class SpyUploader(BatchUploader):
    def __init__(self, client) -> None:
        super().__init__(client)
        self.upload_calls = 0

    async def upload(self, documents, index, chunk_size=50):
        self.upload_calls += 1
        return await super().upload(documents, index, chunk_size)


class RecordingContentSource(InMemoryContentSource):
    def __init__(self, records) -> None:
        super().__init__(records)
        self.loads = 0
        self.load_threads: list[int] = []

    def published_articles(self):
        self.loads += 1
        self.load_threads.append(threading.get_ident())
        return super().published_articles()


@pytest.fixture
def corpus(make_record):
    return [make_record(number) for number in range(120)]


@pytest.mark.asyncio
async def test_full_run_indexes_every_candidate(fake_client, index_config, corpus) -> None:
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(corpus))

    summary = await orchestrator.run(index_config, SyncOptions(chunk_size=50))

    assert summary.total_candidates == 120
    assert summary.total_indexed == 120
    assert summary.total_failed == 0
    assert summary.batch_count == 3
    assert summary.dry_run is False
    assert summary.index_was_reset is False
    assert fake_client.operations()[:7] == [
        "cluster_health",
        "get_mapping",
        "create_index",
        "close_index",
        "put_settings",
        "open_index",
        "put_mapping",
    ]
    stored = fake_client.indices["blog"]
    assert stored[document_key(corpus[0].permalink)]["author"] == "Site Owner"


@pytest.mark.asyncio
async def test_rerun_upserts_instead_of_duplicating(fake_client, index_config, corpus) -> None:
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(corpus))

    await orchestrator.run(index_config)
    first_keys = set(fake_client.indices["blog"])
    first_batches = list(fake_client.bulk_batches)
    await orchestrator.run(index_config)

    second_batches = fake_client.bulk_batches[len(first_batches):]
    assert set(fake_client.indices["blog"]) == first_keys
    assert len(first_keys) == len(corpus)
    assert second_batches == first_batches


@pytest.mark.asyncio
async def test_dry_run_never_uploads(fake_client, index_config, corpus) -> None:
    uploader = SpyUploader(fake_client)
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(corpus), uploader=uploader)

    summary = await orchestrator.run(index_config, SyncOptions(dry_run=True))

    assert uploader.upload_calls == 0
    assert "bulk" not in fake_client.operations()
    assert summary.dry_run is True
    assert summary.total_indexed == 0
    assert summary.total_candidates == 120


@pytest.mark.asyncio
async def test_partial_failure_is_reported_not_raised(fake_client, index_config, corpus) -> None:
    fake_client.item_failures = {
        document_key(corpus[10].permalink): 400,
        document_key(corpus[20].permalink): 429,
    }
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(corpus))

    summary = await orchestrator.run(index_config, SyncOptions(chunk_size=50))

    assert len(fake_client.bulk_batches) == 3
    assert summary.total_failed == 2
    assert summary.total_indexed == 118
    assert {failure.status_code for failure in summary.failures} == {400, 429}
    with pytest.raises(BulkItemError) as excinfo:
        summary.raise_for_failures()
    assert len(excinfo.value.failures) == 2


@pytest.mark.asyncio
async def test_schema_failure_stops_before_loading_content(fake_client, index_config, corpus) -> None:
    fake_client.failures["put_settings"] = SearchIndexClientError("bad analyzer", status_code=400)
    source = RecordingContentSource(corpus)
    uploader = SpyUploader(fake_client)
    orchestrator = SyncOrchestrator(fake_client, source, uploader=uploader)

    with pytest.raises(SchemaError):
        await orchestrator.run(index_config)

    assert source.loads == 0
    assert uploader.upload_calls == 0


@pytest.mark.asyncio
async def test_reset_of_missing_index_still_creates_it(fake_client, index_config, corpus) -> None:
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(corpus))

    summary = await orchestrator.run(index_config, SyncOptions(reset_index=True))

    assert summary.index_was_reset is False
    assert "delete_index" not in fake_client.operations()
    assert "create_index" in fake_client.operations()
    assert summary.total_indexed == 120


@pytest.mark.asyncio
async def test_reset_drops_existing_documents(fake_client, index_config, corpus) -> None:
    fake_client.indices["blog"] = {"stale": {"title": "gone"}}
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(corpus[:5]))

    summary = await orchestrator.run(index_config, SyncOptions(reset_index=True))

    operations = fake_client.operations()
    assert summary.index_was_reset is True
    assert operations.index("delete_index") < operations.index("create_index")
    assert "stale" not in fake_client.indices["blog"]
    assert len(fake_client.indices["blog"]) == 5


@pytest.mark.asyncio
async def test_failed_reset_does_not_block_the_run(fake_client, index_config, corpus) -> None:
    fake_client.indices["blog"] = {}
    fake_client.failures["delete_index"] = SearchIndexClientError("forbidden", status_code=403)
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(corpus[:3]))

    summary = await orchestrator.run(index_config, SyncOptions(reset_index=True))

    assert summary.index_was_reset is False
    assert summary.total_indexed == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["username", "password", "index"])
async def test_missing_config_fails_before_network(fake_client, index_config, field) -> None:
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource([]))

    with pytest.raises(ConfigError, match=field):
        await orchestrator.run(replace(index_config, **{field: ""}))

    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_non_positive_chunk_size_is_a_config_error(fake_client, index_config) -> None:
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource([]))

    with pytest.raises(ConfigError, match="chunk_size"):
        await orchestrator.run(index_config, SyncOptions(chunk_size=0))

    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_unreachable_service_is_fatal(fake_client, index_config, corpus) -> None:
    fake_client.failures["cluster_health"] = SearchIndexUnavailableError("connection refused")
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(corpus))

    with pytest.raises(ConnectivityError) as excinfo:
        await orchestrator.run(index_config)

    assert excinfo.value.index == "blog"
    assert "connection refused" in str(excinfo.value)
    assert fake_client.operations() == ["cluster_health"]


@pytest.mark.asyncio
async def test_empty_corpus_returns_empty_summary(fake_client, index_config) -> None:
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource([]))

    summary = await orchestrator.run(index_config)

    assert summary.total_candidates == 0
    assert summary.total_indexed == 0
    assert summary.total_failed == 0
    assert "bulk" not in fake_client.operations()


@pytest.mark.asyncio
async def test_malformed_record_aborts_before_any_upload(fake_client, index_config, corpus) -> None:
    broken = [*corpus[:60], replace(corpus[60], date=None), *corpus[61:]]
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(broken))

    with pytest.raises(MalformedRecordError) as excinfo:
        await orchestrator.run(index_config)

    assert excinfo.value.permalink == corpus[60].permalink
    assert "bulk" not in fake_client.operations()


@pytest.mark.asyncio
async def test_transport_failure_during_upload_is_fatal(fake_client, index_config, corpus) -> None:
    fake_client.fail_bulk_calls[1] = SearchIndexUnavailableError("connection reset")
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(corpus))

    with pytest.raises(BulkTransportError):
        await orchestrator.run(index_config, SyncOptions(chunk_size=50))

    assert len(fake_client.bulk_batches) == 1


@pytest.mark.asyncio
async def test_only_published_posts_and_allowed_pages_are_candidates(
    fake_client, index_config, make_record
) -> None:
    records = [
        make_record(1),
        make_record(2, published=False),
        make_record(3, kind="page", layout="page"),
        make_record(4, kind="page", layout="gallery"),
    ]
    orchestrator = SyncOrchestrator(fake_client, InMemoryContentSource(records))

    summary = await orchestrator.run(index_config)

    assert summary.total_candidates == 2
    assert set(fake_client.indices["blog"]) == {
        document_key(records[0].permalink),
        document_key(records[2].permalink),
    }


@pytest.mark.asyncio
async def test_content_is_loaded_off_the_event_loop_thread(fake_client, index_config, make_record) -> None:
    source = RecordingContentSource([make_record(1)])
    orchestrator = SyncOrchestrator(fake_client, source)

    summary = await orchestrator.run(index_config)

    assert summary.total_indexed == 1
    assert source.load_threads
    assert threading.get_ident() not in source.load_threads
