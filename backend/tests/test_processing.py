"""
File and batch processing: per-file isolation, ordering, degraded uploads, deadlines.
"""

import asyncio

import pytest

from models.pipeline import AUDIO, IMAGE, ExtractionResult, FileFailure, FileSuccess
from pipeline.processing import FileProcessor, collect_references, process_batch

from fakes import FAST_SETTINGS, FakeBlobStore, FakeExtractor, audio_file, image_file


def _image_processor(blob_store=None, extractor=None):
    return FileProcessor(
        IMAGE,
        blob_store or FakeBlobStore(),
        image_extractor=extractor or FakeExtractor(),
        settings=FAST_SETTINGS,
    )


def _audio_processor(blob_store=None, extractor=None):
    return FileProcessor(
        AUDIO,
        blob_store or FakeBlobStore(),
        audio_extractor=extractor or FakeExtractor(),
        settings=FAST_SETTINGS,
    )


def test_image_success_builds_processed_attachment():
    store = FakeBlobStore()
    extractor = FakeExtractor({b"receipt": ExtractionResult(text="Total 12.50", summary="A receipt")})

    outcome = asyncio.run(_image_processor(store, extractor).process(image_file("r.png", b"receipt")))

    assert isinstance(outcome, FileSuccess)
    assert outcome.text == "Total 12.50"
    assert outcome.attachment.input_type == IMAGE
    assert outcome.attachment.reference == "https://storage.test/r.png"
    assert outcome.attachment.ocr_text == "Total 12.50"
    assert outcome.attachment.processed is True
    assert outcome.attachment.upload_error is None
    assert extractor.calls[0]["reference"] == "https://storage.test/r.png"


def test_image_without_ocr_text_falls_back_to_summary_but_is_not_processed():
    extractor = FakeExtractor({b"sunset": ExtractionResult(text="  ", summary="A sunset over the sea")})

    outcome = asyncio.run(_image_processor(extractor=extractor).process(image_file("s.png", b"sunset")))

    assert isinstance(outcome, FileSuccess)
    assert outcome.text == "A sunset over the sea"
    assert outcome.attachment.ocr_text is None
    assert outcome.attachment.processed is False


def test_audio_success_sets_transcript():
    outcome = asyncio.run(_audio_processor().process(audio_file("memo.webm", b"call mom")))

    assert isinstance(outcome, FileSuccess)
    assert outcome.text == "call mom"
    assert outcome.attachment.transcribed_text == "call mom"
    assert outcome.attachment.ocr_text is None
    assert outcome.attachment.processed is True


def test_wrong_media_type_fails_before_any_external_call():
    store = FakeBlobStore()
    extractor = FakeExtractor()

    outcome = asyncio.run(
        _image_processor(store, extractor).process(image_file("notes.pdf", media_type="application/pdf"))
    )

    assert isinstance(outcome, FileFailure)
    assert outcome.filename == "notes.pdf"
    assert "not an image" in outcome.error_message
    assert store.uploads == []
    assert extractor.calls == []


def test_audio_processor_rejects_image():
    outcome = asyncio.run(_audio_processor().process(image_file("photo.png")))

    assert isinstance(outcome, FileFailure)
    assert "not an audio file" in outcome.error_message


def test_upload_failure_degrades_but_extraction_continues():
    store = FakeBlobStore(fail_for={"r.png"})
    extractor = FakeExtractor()

    outcome = asyncio.run(_image_processor(store, extractor).process(image_file("r.png", b"text")))

    assert isinstance(outcome, FileSuccess)
    assert outcome.attachment.reference is None
    assert "storage unreachable" in outcome.attachment.upload_error
    assert extractor.calls[0]["reference"] is None


def test_upload_timeout_degrades_but_extraction_continues():
    store = FakeBlobStore(hang_for={"r.png"})

    outcome = asyncio.run(_image_processor(store).process(image_file("r.png", b"text")))

    assert isinstance(outcome, FileSuccess)
    assert outcome.attachment.reference is None
    assert "timed out" in outcome.attachment.upload_error


def test_upload_finishing_after_its_deadline_is_deleted():
    store = FakeBlobStore(slow_for={"r.png": 0.3})

    async def run():
        outcome = await _image_processor(store).process(image_file("r.png", b"text"))
        await asyncio.sleep(0.4)
        return outcome

    outcome = asyncio.run(run())

    assert isinstance(outcome, FileSuccess)
    assert outcome.attachment.reference is None
    assert store.deleted == ["https://storage.test/r.png"]


def test_spooled_file_is_read_from_disk(tmp_path):
    from models.pipeline import RawFile

    path = tmp_path / "memo.webm"
    path.write_bytes(b"call the plumber")
    spooled = RawFile(filename="memo.webm", media_type="audio/webm", size=16, path=str(path))

    outcome = asyncio.run(_audio_processor().process(spooled))

    assert outcome.text == "call the plumber"


def test_in_band_extractor_error_is_a_failure_that_keeps_the_reference():
    extractor = FakeExtractor({b"bad": ExtractionResult(error="model overloaded")})

    outcome = asyncio.run(_audio_processor(extractor=extractor).process(audio_file("a.webm", b"bad")))

    assert isinstance(outcome, FileFailure)
    assert "model overloaded" in outcome.error_message
    assert outcome.reference == "https://storage.test/a.webm"


def test_extractor_that_raises_anyway_is_contained():
    extractor = FakeExtractor({b"boom": ValueError("unexpected payload")})

    outcome = asyncio.run(_image_processor(extractor=extractor).process(image_file("x.png", b"boom")))

    assert isinstance(outcome, FileFailure)
    assert outcome.error_message == "unexpected payload"


def test_blank_extraction_is_success_without_text():
    extractor = FakeExtractor({b"silence": ExtractionResult(text="")})

    outcome = asyncio.run(_audio_processor(extractor=extractor).process(audio_file("s.webm", b"silence")))

    assert isinstance(outcome, FileSuccess)
    assert outcome.text is None
    assert outcome.attachment.processed is False


def test_unreadable_local_file_is_a_failure(tmp_path):
    from models.pipeline import RawFile

    missing = RawFile(filename="gone.png", media_type="image/png", size=3, path=str(tmp_path / "gone.png"))

    outcome = asyncio.run(_image_processor().process(missing))

    assert isinstance(outcome, FileFailure)
    assert outcome.filename == "gone.png"


def test_empty_batch_makes_no_calls():
    store = FakeBlobStore()
    extractor = FakeExtractor()

    result = asyncio.run(process_batch(_image_processor(store, extractor), []))

    assert (result.texts, result.attachments, result.failures) == ([], [], [])
    assert store.uploads == []
    assert extractor.calls == []


@pytest.mark.parametrize("bad_index", [0, 1, 3])
def test_one_failure_never_prevents_sibling_outcomes(bad_index):
    files = [image_file(f"img{i}.png", f"text {i}".encode()) for i in range(4)]
    files[bad_index] = image_file(f"img{bad_index}.gif", b"broken", media_type="text/plain")

    result = asyncio.run(process_batch(_image_processor(), files))

    expected = [f"text {i}" for i in range(4) if i != bad_index]
    assert result.texts == expected
    assert [a.filename for a in result.attachments] == [f"img{i}.png" for i in range(4) if i != bad_index]
    assert [f.filename for f in result.failures] == [f"img{bad_index}.gif"]


def test_hanging_extraction_times_out_without_blocking_siblings():
    extractor = FakeExtractor(hang_for={b"stuck"})
    files = [
        audio_file("a.webm", b"first"),
        audio_file("b.webm", b"stuck"),
        audio_file("c.webm", b"third"),
    ]

    result = asyncio.run(process_batch(_audio_processor(extractor=extractor), files))

    assert result.texts == ["first", "third"]
    assert len(result.failures) == 1
    assert result.failures[0].filename == "b.webm"
    assert "timed out" in result.failures[0].error_message


def test_files_are_processed_concurrently():
    class SlowExtractor(FakeExtractor):
        def __init__(self):
            super().__init__()
            self.active = 0
            self.peak = 0

        async def _run(self, data, mime_type, reference):
            self.active += 1
            self.peak = max(self.peak, self.active)
            await asyncio.sleep(0.02)
            self.active -= 1
            return ExtractionResult(text=data.decode())

    extractor = SlowExtractor()
    files = [image_file(f"{i}.png", str(i).encode()) for i in range(3)]

    asyncio.run(process_batch(_image_processor(extractor=extractor), files))

    assert extractor.peak == 3


def test_raised_outcome_is_recorded_as_failure():
    class ExplodingProcessor:
        async def process(self, raw_file):
            raise RuntimeError("worker crashed")

    result = asyncio.run(process_batch(ExplodingProcessor(), [image_file("a.png")]))

    assert result.failures[0].filename == "a.png"
    assert result.failures[0].error_message == "worker crashed"


def test_collect_references_covers_attachments_and_failures():
    extractor = FakeExtractor({b"bad": ExtractionResult(error="nope")})
    files = [image_file("ok.png", b"fine"), image_file("bad.png", b"bad")]

    result = asyncio.run(process_batch(_image_processor(extractor=extractor), files))

    assert sorted(collect_references([result])) == [
        "https://storage.test/bad.png",
        "https://storage.test/ok.png",
    ]
