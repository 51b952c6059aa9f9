"""
Handbooks feature: Schemas for handbook records and extraction results.
"""

from enum import Enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class HandbookStatus(str, Enum):
    """uploaded → processing → completed | failed"""
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Column names of the twelve structured categories in `user_handbooks`
HANDBOOK_FIELDS: tuple[str, ...] = (
    "basic_info",
    "semester_structure",
    "examination_rules",
    "evaluation_criteria",
    "attendance_policies",
    "academic_calendar",
    "course_details",
    "assessment_methods",
    "disciplinary_rules",
    "graduation_requirements",
    "fee_structure",
    "facilities_rules",
)


class HandbookExtraction(BaseModel):
    """Structured data pulled out of a handbook. Every category is optional."""
    basic_info: dict[str, Any] | None = Field(
        default=None, description="Institution name, programme, edition year, issuing office")
    semester_structure: dict[str, Any] | None = Field(
        default=None, description="Number of semesters, credit load per semester, terms")
    examination_rules: dict[str, Any] | None = Field(
        default=None, description="Exam eligibility, conduct, re-examination rules")
    evaluation_criteria: dict[str, Any] | None = Field(
        default=None, description="Grading scale, GPA/CGPA computation, pass marks")
    attendance_policies: dict[str, Any] | None = Field(
        default=None, description="Minimum attendance, condonation, leave rules")
    academic_calendar: dict[str, Any] | None = Field(
        default=None, description="Key dates: term start/end, exams, holidays")
    course_details: dict[str, Any] | None = Field(
        default=None, description="Course codes, titles, credits, categories")
    assessment_methods: dict[str, Any] | None = Field(
        default=None, description="Internal assessments, assignments, labs, weightage")
    disciplinary_rules: dict[str, Any] | None = Field(
        default=None, description="Code of conduct, malpractice, penalties")
    graduation_requirements: dict[str, Any] | None = Field(
        default=None, description="Total credits, mandatory courses, degree conditions")
    fee_structure: dict[str, Any] | None = Field(
        default=None, description="Tuition and other fees, deadlines, fines")
    facilities_rules: dict[str, Any] | None = Field(
        default=None, description="Library, hostel, lab and campus facility rules")

    def populated(self) -> dict[str, dict[str, Any]]:
        """Only the categories that were actually found."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class HandbookLease(BaseModel):
    """A worker's claim on one handbook.

    ``processing_started_at`` is the value written by the claim; commits
    match on it so a result from a reclaimed lease cannot land on a newer one.
    """
    handbook_id: str
    user_id: str
    academic_id: str
    storage_path: str
    original_filename: str
    processing_started_at: str


class HandbookRecord(BaseModel):
    """Row of `user_handbooks` as returned to clients."""
    handbook_id: str
    user_id: str
    academic_id: str
    storage_path: str
    original_filename: str
    file_size_bytes: int | None = None
    processing_status: HandbookStatus
    upload_date: datetime
    processing_started_at: datetime | None = None
    processed_date: datetime | None = None
    error_message: str | None = None

    basic_info: dict[str, Any] | None = None
    semester_structure: dict[str, Any] | None = None
    examination_rules: dict[str, Any] | None = None
    evaluation_criteria: dict[str, Any] | None = None
    attendance_policies: dict[str, Any] | None = None
    academic_calendar: dict[str, Any] | None = None
    course_details: dict[str, Any] | None = None
    assessment_methods: dict[str, Any] | None = None
    disciplinary_rules: dict[str, Any] | None = None
    graduation_requirements: dict[str, Any] | None = None
    fee_structure: dict[str, Any] | None = None
    facilities_rules: dict[str, Any] | None = None

    model_config = {"extra": "ignore"}


class HandbookUploadResponse(BaseModel):
    """Response after a successful upload."""
    handbook_id: str
    processing_status: HandbookStatus = HandbookStatus.UPLOADED
    original_filename: str
    file_size_bytes: int
