"""Tests for the extraction worker and the default LLM-backed extractor."""

import pytest
from langchain_core.documents import Document

from app.core.exceptions import ExtractionFailure
from app.core.storage import BlobStorage
from app.background.extraction_worker import ExtractionWorker
from app.features.handbooks import extraction
from app.features.handbooks.extraction import LLMHandbookExtractor
from app.features.handbooks.pipeline import HandbookPipeline
from app.features.handbooks.schemas import HANDBOOK_FIELDS, HandbookExtraction
from app.features.handbooks.service import HandbookGateway


class StubExtractor:
    """Returns a fixed result (or raises) and records what it was given."""

    def __init__(self, result=None, error=None, on_call=None):
        self.result = result
        self.error = error
        self.on_call = on_call
        self.seen: list[tuple[bytes, str]] = []

    def extract(self, data, filename):
        self.seen.append((data, filename))
        if self.on_call:
            self.on_call()
        if self.error:
            raise self.error
        return self.result


class FakeStructuredLLM:
    def __init__(self, result):
        self.result = result
        self.prompts: list[str] = []

    def invoke(self, prompt):
        self.prompts.append(prompt)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


FULL = HandbookExtraction(**{name: {"found": True} for name in HANDBOOK_FIELDS})


@pytest.fixture
def gateway(fake_db, settings):
    return HandbookGateway(fake_db, settings=settings)


@pytest.fixture
def upload(gateway, academic_data, pdf_bytes):
    def _upload(filename="handbook.pdf"):
        return gateway.submit(academic_data["alice"], academic_data["alice_academic"], pdf_bytes, filename)
    return _upload


@pytest.fixture
def make_worker(fake_db, settings):
    def _make(extractor):
        return ExtractionWorker(
            pipeline=HandbookPipeline(fake_db, settings),
            storage=BlobStorage(fake_db, settings.HANDBOOK_BUCKET),
            extractor=extractor,
            name="test-worker",
        )
    return _make


class TestExtractionWorker:
    def test_successful_extraction_completes_handbook(self, make_worker, fake_db, upload, pdf_bytes):
        handbook_id = upload("Student Handbook.pdf")
        extractor = StubExtractor(result=FULL)

        assert make_worker(extractor).run_once() is True

        assert extractor.seen == [(pdf_bytes, "Student Handbook.pdf")]
        row = fake_db.row("user_handbooks", handbook_id)
        assert row["processing_status"] == "completed"
        assert all(row[name] == {"found": True} for name in HANDBOOK_FIELDS)
        assert fake_db.status_history[handbook_id] == ["uploaded", "processing", "completed"]

    def test_unparseable_pdf_fails_handbook(self, make_worker, fake_db, upload):
        handbook_id = upload()
        make_worker(StubExtractor(error=ExtractionFailure("unparseable PDF"))).run_once()

        row = fake_db.row("user_handbooks", handbook_id)
        assert row["processing_status"] == "failed"
        assert row["error_message"] == "unparseable PDF"
        assert fake_db.status_history[handbook_id] == ["uploaded", "processing", "failed"]

    def test_extractor_crash_fails_handbook(self, make_worker, fake_db, upload):
        handbook_id = upload()
        make_worker(StubExtractor(error=KeyError("pages"))).run_once()

        row = fake_db.row("user_handbooks", handbook_id)
        assert row["processing_status"] == "failed"
        assert row["error_message"].startswith("Extraction error:")

    def test_storage_outage_leaves_lease_for_reclaim(self, make_worker, fake_db, upload):
        handbook_id = upload()
        worker = make_worker(StubExtractor(result=FULL))

        fake_db.storage.fail_downloads = True
        worker.run_once()
        fake_db.storage.fail_downloads = False

        row = fake_db.row("user_handbooks", handbook_id)
        assert row["processing_status"] == "processing"
        assert row["error_message"] is None
        assert worker.extractor.seen == []

        # once the lease expires the handbook is retried and succeeds
        row["processing_started_at"] = "2000-01-01T00:00:00+00:00"
        assert worker.pipeline.reclaim_expired() == [handbook_id]
        worker.run_once()
        assert fake_db.row("user_handbooks", handbook_id)["processing_status"] == "completed"
        assert fake_db.status_history[handbook_id] == [
            "uploaded", "processing", "uploaded", "processing", "completed",
        ]

    def test_missing_file_of_deleted_handbook_is_noop(self, make_worker, fake_db, upload, gateway, academic_data):
        handbook_id = upload()
        worker = make_worker(StubExtractor(result=FULL))
        lease = worker.pipeline.claim_next()
        gateway.delete_handbook(academic_data["alice"], handbook_id)

        worker.process(lease)

        assert fake_db.rows("user_handbooks") == []
        assert worker.extractor.seen == []

    def test_nothing_to_do(self, make_worker):
        assert make_worker(StubExtractor(result=FULL)).run_once() is False

    def test_drain_processes_queue(self, make_worker, fake_db, upload):
        ids = [upload(f"h{i}.pdf") for i in range(4)]
        assert make_worker(StubExtractor(result=FULL)).drain() == 4
        assert {fake_db.row("user_handbooks", i)["processing_status"] for i in ids} == {"completed"}

    def test_drain_respects_limit(self, make_worker, fake_db, upload):
        for i in range(4):
            upload(f"h{i}.pdf")
        assert make_worker(StubExtractor(result=FULL)).drain(max_items=2) == 2
        statuses = [row["processing_status"] for row in fake_db.rows("user_handbooks")]
        assert statuses.count("uploaded") == 2

    def test_commit_outage_is_left_to_lease_reaper(self, make_worker, fake_db, upload):
        handbook_id = upload()
        worker = make_worker(StubExtractor(result=FULL))
        lease = worker.pipeline.claim_next()

        fake_db.fail_next("user_handbooks:update", RuntimeError("connection reset"))
        worker.process(lease)

        assert fake_db.row("user_handbooks", handbook_id)["processing_status"] == "processing"

    def test_deleted_during_extraction(self, make_worker, fake_db, upload, gateway, academic_data):
        handbook_id = upload()

        def delete_meanwhile():
            gateway.delete_handbook(academic_data["alice"], handbook_id)

        make_worker(StubExtractor(result=FULL, on_call=delete_meanwhile)).run_once()

        assert fake_db.row("user_handbooks", handbook_id) is None
        assert fake_db.rows("user_handbooks") == []


class TestLLMHandbookExtractor:
    def test_returns_structured_result(self, monkeypatch, pdf_bytes):
        monkeypatch.setattr(extraction, "extract_pdf_pages", lambda data: [
            Document(page_content="Minimum attendance is 75%."),
            Document(page_content="   "),
        ])
        llm = FakeStructuredLLM(HandbookExtraction(attendance_policies={"minimum_percent": 75}))

        result = LLMHandbookExtractor(llm=llm).extract(pdf_bytes, "h.pdf")

        assert result.populated() == {"attendance_policies": {"minimum_percent": 75}}
        assert "Minimum attendance is 75%." in llm.prompts[0]

    def test_dict_output_is_validated(self, monkeypatch, pdf_bytes):
        monkeypatch.setattr(extraction, "extract_pdf_pages", lambda data: [Document(page_content="Fees")])
        llm = FakeStructuredLLM({"fee_structure": {"tuition": 1000}})

        result = LLMHandbookExtractor(llm=llm).extract(pdf_bytes, "h.pdf")

        assert isinstance(result, HandbookExtraction)
        assert result.fee_structure == {"tuition": 1000}

    def test_pdf_without_text_is_unparseable(self, monkeypatch, pdf_bytes):
        monkeypatch.setattr(extraction, "extract_pdf_pages", lambda data: [Document(page_content="")])
        with pytest.raises(ExtractionFailure) as exc:
            LLMHandbookExtractor(llm=FakeStructuredLLM(FULL)).extract(pdf_bytes, "scan.pdf")
        assert exc.value.reason == "unparseable PDF"

    def test_unreadable_pdf_is_unparseable(self, monkeypatch, pdf_bytes):
        def broken(data):
            raise ValueError("EOF marker not found")

        monkeypatch.setattr(extraction, "extract_pdf_pages", broken)
        with pytest.raises(ExtractionFailure) as exc:
            LLMHandbookExtractor(llm=FakeStructuredLLM(FULL)).extract(pdf_bytes, "broken.pdf")
        assert exc.value.reason == "unparseable PDF"

    def test_model_error_becomes_extraction_failure(self, monkeypatch, pdf_bytes):
        monkeypatch.setattr(extraction, "extract_pdf_pages", lambda data: [Document(page_content="text")])
        with pytest.raises(ExtractionFailure) as exc:
            LLMHandbookExtractor(llm=FakeStructuredLLM(RuntimeError("quota exceeded"))).extract(pdf_bytes, "h.pdf")
        assert "quota exceeded" in exc.value.reason

    def test_empty_result_is_failure(self, monkeypatch, pdf_bytes):
        monkeypatch.setattr(extraction, "extract_pdf_pages", lambda data: [Document(page_content="text")])
        with pytest.raises(ExtractionFailure):
            LLMHandbookExtractor(llm=FakeStructuredLLM(HandbookExtraction())).extract(pdf_bytes, "h.pdf")
