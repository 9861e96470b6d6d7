"""Tests for the session lifecycle and the history log."""

import io
import json
import os
from unittest.mock import MagicMock

import pytest
from PIL import Image
from conftest import make_png, sample_result

from imageprep.metadata import ImageFile, prepare_descriptor
from imageprep.schemas import BatchResponse, ImageItem, ItemFailure
from imageprep.store import (
    Completed,
    Failed,
    HistoryStore,
    ImageSession,
    InvalidTransition,
    JsonFileBackend,
    MemoryBackend,
    ProcessingImage,
    Status,
)


def _file(n: int) -> ImageFile:
    return ImageFile(f"img{n}.png", make_png(4 + n, 4, (n * 20 % 256, 0, 0)))


def _image(n: int) -> ProcessingImage:
    return ProcessingImage(descriptor=prepare_descriptor(_file(n)))


def _completed(n: int) -> ProcessingImage:
    img = _image(n)
    img.start()
    img.complete(sample_result(alt=f"alt {n}"))
    return img


# ---------------------------------------------------------------------------
# ProcessingImage
# ---------------------------------------------------------------------------


def test_new_image_is_queued():
    img = _image(1)

    assert img.status is Status.QUEUED
    assert img.result is None
    assert img.error is None


def test_lifecycle_complete_then_regenerate():
    img = _image(1)
    img.start()
    img.complete(sample_result())

    assert img.status is Status.COMPLETED
    assert isinstance(img.state, Completed)
    assert img.result.alt == "Stub alt text"

    img.start()
    assert img.status is Status.PROCESSING
    assert img.result is None


def test_regenerate_clears_error():
    img = _image(1)
    img.start()
    img.fail("timeout")
    assert isinstance(img.state, Failed)
    assert img.error == "timeout"

    img.start()
    assert img.error is None


def test_invalid_transitions_raise():
    img = _image(1)

    with pytest.raises(InvalidTransition):
        img.complete(sample_result())
    with pytest.raises(InvalidTransition):
        img.fail("nope")

    img.start()
    with pytest.raises(InvalidTransition):
        img.start()


# ---------------------------------------------------------------------------
# ImageSession
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_files_queues_valid_images():
    session = ImageSession()

    report = await session.add_files([_file(1), _file(2)])

    assert [img.filename for img in report.added] == ["img1.png", "img2.png"]
    assert all(img.status is Status.QUEUED for img in session.images)
    assert report.duplicates_skipped == 0


@pytest.mark.asyncio
async def test_add_files_skips_duplicates():
    session = ImageSession()
    await session.add_files([_file(1)])

    report = await session.add_files([_file(1), ImageFile("copy.png", _file(1).data), _file(2)])

    assert [img.filename for img in report.added] == ["img2.png"]
    assert report.duplicates_skipped == 2
    assert len(session) == 2


@pytest.mark.asyncio
async def test_add_files_skips_history_fingerprints():
    session = ImageSession()
    known = prepare_descriptor(_file(3)).sha256

    report = await session.add_files([_file(3), _file(4)], skip_fingerprints={known})

    assert [img.filename for img in report.added] == ["img4.png"]
    assert report.duplicates_skipped == 1


@pytest.mark.asyncio
async def test_add_files_applies_limits_and_reports_unreadable():
    session = ImageSession()
    files = [_file(n) for n in range(3)] + [ImageFile("broken.png", b"nope")]

    report = await session.add_files(files, max_files=3)

    assert len(report.added) == 3
    assert report.extra_files_ignored
    assert report.unreadable == []

    other = ImageSession()
    report = await other.add_files([ImageFile("broken.png", b"nope"), _file(1)])
    assert [f.name for f, _ in report.unreadable] == ["broken.png"]
    assert len(other) == 1


@pytest.mark.asyncio
async def test_add_files_reports_oversized():
    session = ImageSession()
    noisy = Image.frombytes("RGB", (64, 64), os.urandom(64 * 64 * 3))
    buf = io.BytesIO()
    noisy.save(buf, format="PNG")
    big = ImageFile("big.png", buf.getvalue())

    report = await session.add_files([big, _file(1)], max_file_bytes=big.size - 1)

    assert report.oversized == [big]
    assert [img.filename for img in report.added] == ["img1.png"]


def test_pending_and_completed_selection():
    session = ImageSession()
    queued, done, failed = _image(1), _completed(2), _image(3)
    failed.start()
    failed.fail("err")
    session.images = [queued, done, failed]

    assert session.pending() == [queued, failed]
    assert session.completed() == [done]
    assert session.counts()[Status.COMPLETED] == 1
    assert session.total_bytes == sum(img.metrics.bytes for img in session.images)


def test_apply_response_matches_by_fingerprint():
    session = ImageSession()
    a, b, c = _image(1), _image(2), _image(3)
    session.images = [a, b, c]
    session.mark_processing([a, b, c])

    response = BatchResponse(
        generated_at="2026-01-01T00:00:00Z",
        lang="en",
        items=[
            ImageItem(filename=c.filename, sha256=c.sha256, metrics=c.metrics, result=sample_result(alt="c")),
            ImageItem(filename=a.filename, sha256=a.sha256, metrics=a.metrics, result=sample_result(alt="a")),
        ],
        failures=[],
    )

    completed = session.apply_response([a, b, c], response)

    assert completed == [a, c]
    assert a.result.alt == "a"
    assert c.result.alt == "c"
    assert b.status is Status.FAILED
    assert b.error == "No result returned for this image"


def test_apply_response_uses_item_failure_message():
    session = ImageSession()
    a = _image(1)
    session.images = [a]
    session.mark_processing([a])

    response = BatchResponse(
        generated_at="2026-01-01T00:00:00Z",
        lang="en",
        failures=[ItemFailure(filename=a.filename, sha256=a.sha256, message="bad json")],
    )
    session.apply_response([a], response)

    assert a.error == "bad json"


def test_remove_and_clear():
    session = ImageSession()
    a, b = _image(1), _image(2)
    session.images = [a, b]

    session.remove(a.id)
    assert session.images == [b]
    with pytest.raises(KeyError):
        session.get(a.id)

    session.clear()
    assert len(session) == 0


# ---------------------------------------------------------------------------
# HistoryStore
# ---------------------------------------------------------------------------


def test_save_batch_records_completed_images():
    store = HistoryStore()
    listener = MagicMock()
    store.on_change(listener)

    entry = store.save_batch([_completed(1), _image(2)], "en")

    entries = store.entries()
    assert len(entries) == 1
    assert entries[0].id == entry.id
    assert entries[0].lang == "en"
    assert [img.filename for img in entries[0].images] == ["img1.png"]
    listener.assert_called_once()


def test_batch_without_results_is_not_saved():
    store = HistoryStore()
    listener = MagicMock()
    store.on_change(listener)

    assert store.save_batch([_image(1)], "en") is None
    assert store.entries() == []
    listener.assert_not_called()


def test_history_is_capped_newest_first():
    store = HistoryStore()
    ids = [store.save_batch([_completed(n % 5)], "en").id for n in range(55)]

    entries = store.entries()
    assert len(entries) == 50
    assert [e.id for e in entries] == list(reversed(ids))[:50]


def test_delete_removes_only_that_entry():
    store = HistoryStore()
    first = store.save_batch([_completed(1)], "en")
    second = store.save_batch([_completed(2)], "ja")
    third = store.save_batch([_completed(3)], "en")

    store.delete(second.id)

    assert [e.id for e in store.entries()] == [third.id, first.id]


def test_clear_and_unsubscribe():
    store = HistoryStore()
    listener = MagicMock()
    unsubscribe = store.on_change(listener)
    store.save_batch([_completed(1)], "en")

    unsubscribe()
    store.clear()

    assert store.entries() == []
    assert listener.call_count == 1


def test_processed_fingerprints():
    store = HistoryStore()
    a, b = _completed(1), _completed(2)
    store.save_batch([a], "en")
    store.save_batch([b], "en")

    assert store.processed_fingerprints() == {a.sha256, b.sha256}


def test_entry_id_format():
    entry = HistoryStore().save_batch([_completed(1)], "en")
    millis, suffix = entry.id.split("-")

    assert millis.isdigit()
    assert len(suffix) == 9


def test_json_file_backend_persists(tmp_path):
    path = tmp_path / "history" / "log.json"
    store = HistoryStore(JsonFileBackend(path))
    entry = store.save_batch([_completed(1)], "en")

    reloaded = HistoryStore(JsonFileBackend(path))

    assert [e.id for e in reloaded.entries()] == [entry.id]
    assert json.loads(path.read_text(encoding="utf-8"))[0]["lang"] == "en"


def test_corrupt_backend_reads_as_empty(tmp_path):
    path = tmp_path / "log.json"
    path.write_text("{not json", encoding="utf-8")

    assert HistoryStore(JsonFileBackend(path)).entries() == []


def test_failed_save_is_logged_not_raised(caplog):
    backend = MemoryBackend()
    backend.save = MagicMock(side_effect=OSError("disk full"))
    store = HistoryStore(backend)

    assert store.save_batch([_completed(1)], "en") is None
    assert "Failed to save history" in caplog.text


def _stored_log(count: int) -> list[dict]:
    store = HistoryStore()
    for n in range(count):
        store.save_batch([_completed(n)], "en")
    return store.backend.load()


def test_entry_without_result_is_valid():
    good = _stored_log(1)
    del good[0]["images"][0]["result"]
    store = HistoryStore(MemoryBackend(good))

    entries = store.entries()

    assert len(entries) == 1
    assert entries[0].images[0].result is None


def test_delete_unknown_id_keeps_log_with_invalid_entry():
    invalid = {"id": "broken", "images": [{"filename": "x.png"}]}
    backend = MemoryBackend([invalid, *_stored_log(5)])
    store = HistoryStore(backend)

    store.delete("does-not-exist")

    stored = backend.load()
    assert len(stored) == 6
    assert stored[0] == invalid


def test_invalid_entry_is_skipped_not_fatal(caplog):
    invalid = {"id": "broken", "timestamp": 0}
    good = _stored_log(2)
    backend = MemoryBackend([good[0], invalid, good[1]])
    store = HistoryStore(backend)

    assert [e.id for e in store.entries()] == [good[0]["id"], good[1]["id"]]
    assert "Skipping invalid history entry" in caplog.text

    entry = store.save_batch([_completed(7)], "ja")

    assert [raw["id"] for raw in backend.load()] == [entry.id, good[0]["id"], "broken", good[1]["id"]]


def test_delete_keeps_invalid_neighbours():
    good = _stored_log(2)
    backend = MemoryBackend([good[0], {"id": "broken"}, good[1]])

    HistoryStore(backend).delete(good[0]["id"])

    assert [raw["id"] for raw in backend.load()] == ["broken", good[1]["id"]]


def test_unreadable_log_is_not_overwritten(tmp_path):
    path = tmp_path / "log.json"
    path.write_text("{not json", encoding="utf-8")
    store = HistoryStore(JsonFileBackend(path))

    assert store.save_batch([_completed(1)], "en") is None
    store.delete("anything")

    assert path.read_text(encoding="utf-8") == "{not json"
