"""
Academic feature: resolves a user to their enrollment record and college.

Both the handbook gateway and the campus content routes go through this one
resolver instead of repeating the ownership joins. A resolver lives for one
request; every lookup is memoized on the instance.
"""

import logging

from supabase import Client

from app.core.exceptions import AuthorizationError, NotFoundCause, NotFoundError
from app.features.academic.schemas import (
    AcademicContext,
    College,
    EnrollmentRecord,
    UserProfile,
)

logger = logging.getLogger(__name__)


class AcademicContextResolver:
    """Three-hop lookup: users → user_academic_details → colleges."""

    def __init__(self, db: Client):
        self.db = db
        self._contexts: dict[str, AcademicContext] = {}
        self._enrollments: dict[str, EnrollmentRecord | None] = {}
        self._colleges: dict[str, College | None] = {}

    # ── Public API ───────────────────────────────────────

    def resolve(self, user_id: str) -> AcademicContext:
        """Resolve the full academic context for a user.

        Raises:
            NotFoundError(ENROLLMENT_MISSING): user has no profile or no enrollment.
            NotFoundError(COLLEGE_MISSING): enrollment points at no existing college.
        """
        if user_id in self._contexts:
            return self._contexts[user_id]

        user = self._get_user(user_id)
        if user is None:
            raise NotFoundError("User profile not found", cause=NotFoundCause.ENROLLMENT_MISSING)

        enrollment = self._find_enrollment_for(user)
        if enrollment is None:
            raise NotFoundError(
                "No academic enrollment on file for this user",
                cause=NotFoundCause.ENROLLMENT_MISSING,
            )

        college = self._get_college(enrollment.college_id) if enrollment.college_id else None
        if college is None:
            logger.error(
                f"❌ Enrollment {enrollment.academic_id} of user {user_id} "
                f"references missing college {enrollment.college_id}"
            )
            raise NotFoundError(
                "College missing for an existing enrollment",
                cause=NotFoundCause.COLLEGE_MISSING,
            )

        context = AcademicContext(user=user, enrollment=enrollment, college=college)
        self._contexts[user_id] = context
        return context

    def require_enrollment(self, user_id: str, academic_id: str) -> EnrollmentRecord:
        """Return the enrollment if it belongs to ``user_id`` and has a college.

        Call resolve(user_id) first when the user may have no enrollment at
        all: here an unknown id and someone else's id get the same
        AuthorizationError, so ids of other users cannot be guessed.

        Raises:
            AuthorizationError: enrollment missing or owned by another user.
            NotFoundError(COLLEGE_MISSING): owned enrollment without a college.
        """
        enrollment = self._get_enrollment(academic_id)
        if enrollment is None or enrollment.user_id != user_id:
            logger.warning(f"🚫 User {user_id} referenced enrollment {academic_id} it does not own")
            raise AuthorizationError()

        if not enrollment.college_id or self._get_college(enrollment.college_id) is None:
            logger.error(f"❌ Enrollment {academic_id} references missing college {enrollment.college_id}")
            raise NotFoundError(
                "College missing for an existing enrollment",
                cause=NotFoundCause.COLLEGE_MISSING,
            )
        return enrollment

    # ── Lookups ──────────────────────────────────────────

    def _get_user(self, user_id: str) -> UserProfile | None:
        result = (
            self.db.table("users")
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return UserProfile(**result.data[0]) if result.data else None

    def _find_enrollment_for(self, user: UserProfile) -> EnrollmentRecord | None:
        if user.academic_id:
            enrollment = self._get_enrollment(user.academic_id)
            if enrollment is not None and enrollment.user_id == user.user_id:
                return enrollment

        # Pointer not set yet (profile form saved enrollment first): newest record wins
        result = (
            self.db.table("user_academic_details")
            .select("*")
            .eq("user_id", user.user_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        enrollment = EnrollmentRecord(**result.data[0])
        self._enrollments[enrollment.academic_id] = enrollment
        return enrollment

    def _get_enrollment(self, academic_id: str) -> EnrollmentRecord | None:
        if academic_id not in self._enrollments:
            result = (
                self.db.table("user_academic_details")
                .select("*")
                .eq("academic_id", academic_id)
                .limit(1)
                .execute()
            )
            self._enrollments[academic_id] = EnrollmentRecord(**result.data[0]) if result.data else None
        return self._enrollments[academic_id]

    def _get_college(self, college_id: str) -> College | None:
        if college_id not in self._colleges:
            result = (
                self.db.table("colleges")
                .select("*")
                .eq("college_id", college_id)
                .limit(1)
                .execute()
            )
            self._colleges[college_id] = College(**result.data[0]) if result.data else None
        return self._colleges[college_id]
