"""
Handbooks feature: the extraction capability.

The pipeline only needs something with ``extract(data, filename)`` that
returns a HandbookExtraction or raises ExtractionFailure. The default
implementation reads the PDF text with LangChain's PyPDFLoader and asks the
configured chat model for structured output.
"""

import logging
import os
import tempfile
from typing import Protocol

from langchain_community.document_loaders import PyPDFLoader
from langchain_core.documents import Document

from app.core.exceptions import ExtractionFailure
from app.core.llm_provider import create_structured_llm
from app.features.handbooks.schemas import HandbookExtraction

logger = logging.getLogger(__name__)

# Keeps the prompt inside the context window of the smaller models
MAX_PROMPT_CHARS = 400_000

EXTRACTION_PROMPT = (
    "You are given the full text of a university academic handbook.\n"
    "Fill in every category you can find evidence for, as nested JSON objects. "
    "Leave a category null when the handbook does not cover it. "
    "Do not invent values.\n\n"
    "HANDBOOK TEXT:\n{text}"
)


class HandbookExtractor(Protocol):
    def extract(self, data: bytes, filename: str) -> HandbookExtraction:
        ...


def extract_pdf_pages(data: bytes) -> list[Document]:
    """Load PDF bytes page by page. PyPDFLoader needs a path, so go through a temp file."""
    with tempfile.NamedTemporaryFile(delete=False, suffix=".pdf") as temp_file:
        temp_file.write(data)
        temp_path = temp_file.name

    try:
        return PyPDFLoader(temp_path).load()
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)


class LLMHandbookExtractor:
    """PDF text → chat model → HandbookExtraction."""

    def __init__(self, llm=None):
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = create_structured_llm(HandbookExtraction)
        return self._llm

    def extract(self, data: bytes, filename: str) -> HandbookExtraction:
        try:
            pages = extract_pdf_pages(data)
        except Exception as e:
            logger.warning(f"⚠️ Could not read PDF {filename}: {e}")
            raise ExtractionFailure("unparseable PDF") from e

        text = "\n\n".join(page.page_content for page in pages if page.page_content.strip())
        if not text.strip():
            raise ExtractionFailure("unparseable PDF")

        logger.info(f"📄 {filename}: {len(pages)} pages, {len(text)} chars sent for extraction")
        try:
            result = self.llm.invoke(EXTRACTION_PROMPT.format(text=text[:MAX_PROMPT_CHARS]))
        except Exception as e:
            raise ExtractionFailure(f"Extraction model error: {e}") from e

        if result is None:
            raise ExtractionFailure("Extraction model returned no data")
        if isinstance(result, dict):
            result = HandbookExtraction(**result)
        if not result.populated():
            raise ExtractionFailure("No handbook information could be extracted")
        return result
