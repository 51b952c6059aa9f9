"""
Academic feature: API routes for the resolved academic context.
"""

from fastapi import APIRouter, Depends

from app.core.dependencies import get_academic_resolver, get_current_user_id
from app.core.exceptions import NotFoundError, app_error_to_http
from app.features.academic.resolver import AcademicContextResolver

router = APIRouter()


@router.get("/context")
async def get_academic_context(
    user_id: str = Depends(get_current_user_id),
    resolver: AcademicContextResolver = Depends(get_academic_resolver),
):
    """Return the user's enrollment and college.

    404 with cause `enrollment_missing` tells the UI to send the user to the
    profile form; 500 with `college_missing` is a data problem on our side.
    """
    try:
        context = resolver.resolve(user_id)
    except NotFoundError as e:
        raise app_error_to_http(e)
    return {"data": context.model_dump(mode="json")}
