"""
Admin source management API endpoints.

Routes:
    POST /admin/sources - Create and ingest a source
    GET /admin/sources - List sources
    POST /admin/sources/reprocess - Re-chunk every active source
    GET /admin/sources/{id} - Get a source
    PATCH /admin/sources/{id} - Update a source (re-ingests on text change)
    DELETE /admin/sources/{id} - Delete a source and its chunks

Dependencies: fluxo.application.services.source_service, fluxo.models.source
System role: Knowledge-base administration HTTP API
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from fluxo.api.deps import get_source_service
from fluxo.api.routers.router_utils import handle_service_errors
from fluxo.application.services.source_service import SourceService
from fluxo.models.source import (
    CreateSourceRequest,
    ReprocessResponse,
    SourceDetailResponse,
    SourceResponse,
    UpdateSourceRequest,
)

router = APIRouter(prefix="/admin/sources", tags=["admin"])


@router.post("", response_model=SourceDetailResponse, status_code=status.HTTP_201_CREATED)
@handle_service_errors
async def create_source(
    request: CreateSourceRequest,
    source_service: SourceService = Depends(get_source_service),
) -> SourceDetailResponse:
    """
    Create a source and chunk its text.

    Args:
        request: Title, text and tags
        source_service: Injected SourceService

    Returns:
        SourceDetailResponse: Created source with chunk count
    """
    result = await source_service.create_source(
        title=request.title,
        raw_text=request.raw_text,
        tags=request.tags,
    )
    return SourceDetailResponse(**result)


@router.get("", response_model=list[SourceResponse])
@handle_service_errors
async def list_sources(
    limit: int | None = Query(None, ge=1, le=200),
    offset: int = Query(0, ge=0),
    active_only: bool = Query(False),
    source_service: SourceService = Depends(get_source_service),
) -> list[SourceResponse]:
    """List sources, newest first."""
    sources = await source_service.list_sources(
        limit=limit, offset=offset, active_only=active_only
    )
    return [SourceResponse(**s) for s in sources]


@router.post("/reprocess", response_model=ReprocessResponse)
@handle_service_errors
async def reprocess_sources(
    source_service: SourceService = Depends(get_source_service),
) -> ReprocessResponse:
    """Re-chunk every active source with the current chunking settings."""
    result = await source_service.reprocess_all_sources()
    return ReprocessResponse(**result)


@router.get("/{source_id}", response_model=SourceDetailResponse)
@handle_service_errors
async def get_source(
    source_id: UUID,
    source_service: SourceService = Depends(get_source_service),
) -> SourceDetailResponse:
    """Get a source with its text (404 if missing)."""
    result = await source_service.get_source(source_id)
    return SourceDetailResponse(**result)


@router.patch("/{source_id}", response_model=SourceDetailResponse)
@handle_service_errors
async def update_source(
    source_id: UUID,
    request: UpdateSourceRequest,
    source_service: SourceService = Depends(get_source_service),
) -> SourceDetailResponse:
    """
    Partially update a source.

    Changing raw_text rebuilds the source's chunks.
    """
    result = await source_service.update_source(
        source_id,
        **request.model_dump(exclude_unset=True),
    )
    return SourceDetailResponse(**result)


@router.delete("/{source_id}", status_code=status.HTTP_204_NO_CONTENT)
@handle_service_errors
async def delete_source(
    source_id: UUID,
    source_service: SourceService = Depends(get_source_service),
) -> None:
    """Delete a source and its chunks."""
    await source_service.delete_source(source_id)
