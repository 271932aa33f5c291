from fastapi import APIRouter, HTTPException, Body
from typing import List, Optional
from pydantic import BaseModel, Field
from ..config import settings
from ..schemas.errors import SnapshotError
from ..schemas.filter import (
    FieldMetadata,
    FilterGroup,
    FilterRule,
    PageRequest,
    QueryResult,
    SortRule,
)
from ..services.catalog import CONTACT_CATALOG
from ..services.filter_service import FilterService
from ..services.snapshot_service import SnapshotService

router = APIRouter()
filter_service = FilterService()
snapshot_service = SnapshotService()

class ContactQueryRequest(BaseModel):
    file_path: str
    text_query: str = ""
    filters: List[FilterRule] = Field(default_factory=list)
    groups: List[FilterGroup] = Field(default_factory=list)
    sorts: List[SortRule] = Field(default_factory=list)
    page: int = 1
    page_size: int = Field(default=settings.query.DEFAULT_PAGE_SIZE, ge=1, le=settings.query.MAX_PAGE_SIZE)

class SnapshotRefreshRequest(BaseModel):
    file_path: Optional[str] = None

@router.get("/contacts/fields", response_model=List[FieldMetadata])
async def get_contact_fields() -> List[FieldMetadata]:
    """Filterable and sortable contact fields with their operators"""
    return filter_service.get_fields_metadata(CONTACT_CATALOG)

@router.post("/contacts/query", response_model=QueryResult)
def query_contacts(request: ContactQueryRequest = Body(...)) -> QueryResult:
    try:
        records = snapshot_service.load(request.file_path)
    except SnapshotError as e:
        raise HTTPException(
            status_code=400,
            detail=f"Error loading contacts: {e.message}"
        )

    return filter_service.evaluate(
        records,
        CONTACT_CATALOG,
        text_query=request.text_query,
        filters=request.filters,
        groups=request.groups,
        sorts=request.sorts,
        page=PageRequest(page=request.page, page_size=request.page_size),
    )

@router.post("/contacts/refresh")
def refresh_contacts(request: SnapshotRefreshRequest = Body(...)):
    """Drop cached snapshots so the next query re-reads the file"""
    try:
        removed = snapshot_service.invalidate(request.file_path)
    except SnapshotError as e:
        raise HTTPException(
            status_code=400,
            detail=f"Error refreshing contacts: {e.message}"
        )
    return {"invalidated": removed}
