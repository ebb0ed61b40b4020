"""API routes for vehicle CSV import/export and file matching.

Import and export are limited to collections the caller can edit.
"""

import logging

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from sqlalchemy.orm import Session

from collectors.api.middleware.auth import require_user
from collectors.api.schemas_vehicles import (
    FileMatchSuggestionResponse,
    ImportResponse,
    ImportRowResult,
    MatchFilesRequest,
    MatchFilesResponse,
)
from collectors.db.connection import get_db
from collectors.errors import ValidationError
from collectors.services.collection_service import CollectionService
from collectors.services.vehicle_csv import (
    generate_vehicles_csv,
    get_export_filename,
    import_vehicles,
    parse_vehicles_csv,
)
from collectors.utils.import_file_matcher import match_files_to_records

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vehicles", tags=["vehicles"])

MAX_IMPORT_BYTES = 5 * 1024 * 1024


def _get_service(db: Session = Depends(get_db)) -> CollectionService:
    """Dependency injector for CollectionService."""
    return CollectionService(db)


@router.get("/export.csv")
def export_vehicles(
    collection_id: str = Query(..., alias="collectionId"),
    include_inactive: bool = Query(default=False, alias="includeInactive"),
    user_id: str = Depends(require_user),
    service: CollectionService = Depends(_get_service),
) -> Response:
    """Download a collection as CSV.

    Args:
        collection_id: Collection to export.
        include_inactive: Also export stored, sold and traded vehicles.
        user_id: Authenticated caller (injected).
        service: CollectionService (injected).

    Returns:
        text/csv attachment named vehicles-export-YYYY-MM-DD.csv.

    Raises:
        NotFoundError: No access to the collection (404).
        PermissionDeniedError: Viewer role (403).
    """
    service.require_editor(collection_id, user_id)
    vehicles = service.list_vehicles(user_id, collection_id)
    content = generate_vehicles_csv(vehicles, include_inactive=include_inactive)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{get_export_filename()}"'
        },
    )


@router.post("/import", response_model=ImportResponse)
async def import_vehicles_csv(
    collection_id: str = Query(..., alias="collectionId"),
    dry_run: bool = Query(default=False, alias="dryRun"),
    file: UploadFile = File(...),
    user_id: str = Depends(require_user),
    service: CollectionService = Depends(_get_service),
    db: Session = Depends(get_db),
) -> ImportResponse:
    """Import vehicles from an uploaded CSV.

    With ``dryRun`` the parsed rows are returned without inserting, for a
    preview step.

    Raises:
        ValidationError: Empty, oversized or non-UTF-8 upload (400).
        NotFoundError: No access to the collection (404).
        PermissionDeniedError: Viewer role (403).
    """
    service.require_editor(collection_id, user_id)

    raw = await file.read()
    if not raw:
        raise ValidationError("Uploaded file is empty")
    if len(raw) > MAX_IMPORT_BYTES:
        raise ValidationError("Uploaded file is larger than 5 MB")
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV must be UTF-8 encoded") from None

    rows, mapping = parse_vehicles_csv(text)
    if "name" not in mapping:
        raise ValidationError("Could not find a name column in the CSV header")

    imported = 0 if dry_run else import_vehicles(db, collection_id, rows, user_id)
    logger.info(
        "CSV import for collection %s: %d rows parsed, %d imported (dry_run=%s)",
        collection_id,
        len(rows),
        imported,
        dry_run,
    )
    return ImportResponse(
        imported=imported,
        skipped=sum(1 for r in rows if not r.valid),
        mapping=mapping,
        rows=[
            ImportRowResult(
                line=r.line,
                name=r.name,
                status=r.status,
                valid=r.valid,
                error=r.error,
                warnings=r.warnings,
            )
            for r in rows
        ],
    )


@router.post("/match-files", response_model=MatchFilesResponse)
def match_files(
    payload: MatchFilesRequest,
    user_id: str = Depends(require_user),
) -> MatchFilesResponse:
    """Suggest which existing record each uploaded filename belongs to."""
    suggestions = match_files_to_records(payload.filenames, payload.record_titles)
    return MatchFilesResponse(
        suggestions=[
            FileMatchSuggestionResponse.model_validate(s) for s in suggestions
        ]
    )
