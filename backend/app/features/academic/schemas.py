"""
Academic feature: Schemas for the user → enrollment → college chain.
"""

from pydantic import BaseModel
from datetime import datetime


class UserProfile(BaseModel):
    """Row of `users` (only the columns the chain needs)."""
    user_id: str
    name: str | None = None
    email: str | None = None
    academic_id: str | None = None   # pointer to the current enrollment

    model_config = {"extra": "ignore"}


class EnrollmentRecord(BaseModel):
    """Row of `user_academic_details`."""
    academic_id: str
    user_id: str
    college_id: str | None = None
    department_name: str | None = None
    branch_name: str | None = None
    admission_year: int | None = None
    graduation_year: int | None = None
    roll_number: str | None = None
    latest_semester_id: str | None = None
    created_at: datetime | None = None

    model_config = {"extra": "ignore"}


class College(BaseModel):
    """Row of `colleges`."""
    college_id: str
    name: str
    city: str | None = None
    state: str | None = None
    university_name: str | None = None
    college_website_url: str | None = None

    model_config = {"extra": "ignore"}


class AcademicContext(BaseModel):
    """Resolved chain for one user."""
    user: UserProfile
    enrollment: EnrollmentRecord
    college: College
