"""
Campus feature: Schemas for versioned AI-generated college content.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


CAMPUS_CONTENT_FIELDS: tuple[str, ...] = (
    "college_overview_content",
    "facilities_content",
    "placements_content",
    "departments_content",
    "admissions_content",
)


class CampusContentFields(BaseModel):
    """The five content categories one generation produces."""
    college_overview_content: dict[str, Any] | None = Field(
        default=None, description="History, accreditation, rankings, campus summary")
    facilities_content: dict[str, Any] | None = Field(
        default=None, description="Library, labs, hostels, sports, transport")
    placements_content: dict[str, Any] | None = Field(
        default=None, description="Recruiters, placement statistics, packages")
    departments_content: dict[str, Any] | None = Field(
        default=None, description="Departments and the programmes they offer")
    admissions_content: dict[str, Any] | None = Field(
        default=None, description="Admission process, entrance exams, intake")


class CampusContent(CampusContentFields):
    """Row of `campus_ai_content`."""
    campus_content_id: str
    college_id: str
    content_version: int
    is_active: bool
    generated_at: datetime
    updated_at: datetime

    model_config = {"extra": "ignore"}
