"""
Campus feature: the content-generation capability.

Given a college, produce the five content categories that publish() stores.
"""

import logging
from typing import Protocol

from app.core.llm_provider import create_structured_llm
from app.features.academic.schemas import College
from app.features.campus.schemas import CampusContentFields

logger = logging.getLogger(__name__)

CAMPUS_CONTENT_PROMPT = (
    "Write factual, student-facing information about this college as JSON "
    "objects for: overview, facilities, placements, departments, admissions. "
    "Use null for anything you have no reliable information about.\n\n"
    "College: {name}\n"
    "University: {university}\n"
    "Location: {location}\n"
    "Website: {website}"
)


class CampusContentGenerator(Protocol):
    def generate(self, college: College) -> CampusContentFields:
        ...


class LLMCampusContentGenerator:
    """College metadata → chat model → CampusContentFields."""

    def __init__(self, llm=None):
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = create_structured_llm(CampusContentFields)
        return self._llm

    def generate(self, college: College) -> CampusContentFields:
        location = ", ".join(part for part in (college.city, college.state) if part) or "unknown"
        prompt = CAMPUS_CONTENT_PROMPT.format(
            name=college.name,
            university=college.university_name or "unknown",
            location=location,
            website=college.college_website_url or "unknown",
        )
        logger.info(f"🏫 Generating campus content for {college.name} ({college.college_id})")
        result = self.llm.invoke(prompt)
        if isinstance(result, dict):
            result = CampusContentFields(**result)
        return result
