from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Query, Request
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.dependencies import (
    get_download_resolver,
    get_filter_admin_service,
    get_search_service,
    get_settings,
    get_video_service,
)
from backend.app.models.api_contracts import (
    CategoryToggleRequest,
    DownloadRequestBody,
    FilterActionRequest,
    FilterPatchRequest,
    FilterReplaceRequest,
    KeywordAddRequest,
    WhitelistAddRequest,
)
from backend.app.services.download_resolver import DownloadResolver
from backend.app.services.filter_admin_service import FilterAdminService
from backend.app.services.messages import resolve_locale
from backend.app.services.search_service import SearchService
from backend.app.services.video_service import VideoService

router = APIRouter(prefix="/api")

FilterAdmin = Annotated[FilterAdminService, Depends(get_filter_admin_service)]
PinHeader = Annotated[str | None, Header(alias="X-Filter-Pin")]


def request_locale(request: Request) -> str:
    return resolve_locale(
        request.headers.get("Accept-Language"),
        default=get_settings().default_locale,
    )


@router.get("/filter", tags=["filter"], operation_id="filter_get")
def filter_get(admin: FilterAdmin) -> dict[str, Any]:
    return admin.overview()


@router.patch("/filter", tags=["filter"], operation_id="filter_patch")
def filter_patch(request: FilterPatchRequest, admin: FilterAdmin) -> dict[str, Any]:
    return admin.patch(
        enabled=request.enabled,
        default_deny=request.default_deny,
        pin=request.pin,
    )


@router.put("/filter", tags=["filter"], operation_id="filter_replace")
def filter_replace(request: FilterReplaceRequest, admin: FilterAdmin) -> dict[str, Any]:
    return admin.replace(
        enabled=request.enabled,
        default_deny=request.default_deny,
        allowed_categories=request.allowed_categories,
        pin=request.pin,
    )


@router.post("/filter", tags=["filter"], operation_id="filter_pin_action")
def filter_pin_action(request: FilterActionRequest, admin: FilterAdmin) -> dict[str, Any]:
    context_tokens = bind_contextvars(filter_action=request.action or "-")
    try:
        return admin.pin_action(request.action, pin=request.pin, new_pin=request.new_pin)
    finally:
        reset_contextvars(**context_tokens)


@router.get("/filter/categories", tags=["filter"], operation_id="filter_categories_list")
def filter_categories_list(admin: FilterAdmin) -> dict[str, Any]:
    return admin.categories()


@router.patch("/filter/categories", tags=["filter"], operation_id="filter_categories_toggle")
def filter_categories_toggle(request: CategoryToggleRequest, admin: FilterAdmin) -> dict[str, Any]:
    return admin.set_category(request.category, request.enabled, pin=request.pin)


@router.get("/filter/whitelist", tags=["filter"], operation_id="filter_whitelist_list")
def filter_whitelist_list(admin: FilterAdmin) -> dict[str, Any]:
    return admin.whitelist()


@router.post("/filter/whitelist", tags=["filter"], operation_id="filter_whitelist_add")
def filter_whitelist_add(request: WhitelistAddRequest, admin: FilterAdmin) -> dict[str, Any]:
    return admin.add_whitelist_item(
        youtube_id=request.youtube_id,
        content_type=request.type,
        title=request.title,
        reason=request.reason,
        pin=request.pin,
    )


@router.delete("/filter/whitelist", tags=["filter"], operation_id="filter_whitelist_remove")
def filter_whitelist_remove(
    admin: FilterAdmin,
    youtube_id: Annotated[str, Query(alias="youtubeId", min_length=1)],
    content_type: Annotated[str, Query(alias="type")] = "video",
    pin: PinHeader = None,
) -> dict[str, Any]:
    return admin.remove_whitelist_item(youtube_id=youtube_id, content_type=content_type, pin=pin)


@router.get("/filter/keywords", tags=["filter"], operation_id="filter_keywords_list")
def filter_keywords_list(admin: FilterAdmin) -> dict[str, Any]:
    return admin.keywords()


@router.post("/filter/keywords", tags=["filter"], operation_id="filter_keywords_add")
def filter_keywords_add(request: KeywordAddRequest, admin: FilterAdmin) -> dict[str, Any]:
    return admin.add_keyword(request.keyword, pin=request.pin)


@router.delete("/filter/keywords", tags=["filter"], operation_id="filter_keywords_remove")
def filter_keywords_remove(
    admin: FilterAdmin,
    keyword: Annotated[str, Query(min_length=1)],
    pin: PinHeader = None,
) -> dict[str, Any]:
    return admin.remove_keyword(keyword, pin=pin)


@router.get("/videos/search", tags=["videos"], operation_id="videos_search")
def videos_search(
    service: Annotated[SearchService, Depends(get_search_service)],
    q: str | None = None,
    token: str | None = None,
    location: str | None = None,
    language: str | None = None,
    restricted: bool = False,
    limit: Annotated[int | None, Query(ge=1)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
) -> dict[str, Any]:
    context_tokens = bind_contextvars(search_page=page, search_restricted=restricted)
    try:
        return service.search(
            q,
            token=token,
            location=location,
            language=language,
            restricted=restricted,
            limit=limit,
            page=page,
        ).to_payload()
    finally:
        reset_contextvars(**context_tokens)


@router.get("/videos/{video_id}", tags=["videos"], operation_id="videos_detail")
def videos_detail(
    video_id: str,
    service: Annotated[VideoService, Depends(get_video_service)],
    restricted: bool = False,
) -> dict[str, Any]:
    context_tokens = bind_contextvars(video_id=video_id)
    try:
        return service.get_video(video_id, restricted=restricted).to_payload()
    finally:
        reset_contextvars(**context_tokens)


@router.post("/download", tags=["download"], operation_id="download_resolve")
def download_resolve(
    body: DownloadRequestBody,
    request: Request,
    resolver: Annotated[DownloadResolver, Depends(get_download_resolver)],
) -> dict[str, Any]:
    link = resolver.resolve(
        body.video_id,
        body.type,
        body.quality,
        locale=request_locale(request),
    )
    return link.to_payload()


@router.get("/download", tags=["download"], operation_id="download_formats")
def download_formats(
    resolver: Annotated[DownloadResolver, Depends(get_download_resolver)],
    video_id: Annotated[str | None, Query(alias="videoId")] = None,
) -> dict[str, Any]:
    return resolver.list_formats(video_id).to_payload()


@router.get("/youtube/autocomplete", tags=["videos"], operation_id="youtube_autocomplete")
def youtube_autocomplete(
    service: Annotated[VideoService, Depends(get_video_service)],
    q: str | None = None,
    language: str | None = None,
) -> list[str]:
    return service.suggestions(q, language=language)
