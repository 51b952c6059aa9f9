"""
Campus feature: API routes for the shared, per-college campus content.
"""

from fastapi import APIRouter, BackgroundTasks, Depends
from supabase import Client

from app.core.dependencies import get_academic_resolver, get_current_user_id, get_db
from app.core.exceptions import NotFoundError, app_error_to_http
from app.features.academic.resolver import AcademicContextResolver
from app.features.campus.service import CampusContentService
from app.background.campus_refresh import generate_campus_content

router = APIRouter()


def _resolve_college(resolver: AcademicContextResolver, user_id: str):
    try:
        return resolver.resolve(user_id).college
    except NotFoundError as e:
        raise app_error_to_http(e)


@router.get("/content")
async def get_campus_content(
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: Client = Depends(get_db),
    resolver: AcademicContextResolver = Depends(get_academic_resolver),
):
    """Active campus content for the user's college.

    On a miss, generation is started in the background and the response says
    `generating`; the client polls again.
    """
    college = _resolve_college(resolver, user_id)
    content = CampusContentService(db).get_active(college.college_id)
    if content is None:
        background_tasks.add_task(generate_campus_content, college)
        return {"status": "generating", "data": None}
    return {"status": "ready", "data": content.model_dump(mode="json")}


@router.get("/content/versions")
async def list_campus_content_versions(
    user_id: str = Depends(get_current_user_id),
    db: Client = Depends(get_db),
    resolver: AcademicContextResolver = Depends(get_academic_resolver),
):
    """All generated versions for the user's college, newest first."""
    college = _resolve_college(resolver, user_id)
    versions = CampusContentService(db).list_versions(college.college_id)
    return {
        "data": [
            {
                "campus_content_id": v.campus_content_id,
                "content_version": v.content_version,
                "is_active": v.is_active,
                "generated_at": v.generated_at.isoformat(),
            }
            for v in versions
        ]
    }


@router.post("/content/refresh")
async def refresh_campus_content(
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    resolver: AcademicContextResolver = Depends(get_academic_resolver),
):
    """Regenerate the college's content. Readers keep the current version until it lands."""
    college = _resolve_college(resolver, user_id)
    background_tasks.add_task(generate_campus_content, college)
    return {"status": "generating", "message": "Campus content refresh started."}
