"""
Batch import endpoints: preview input, start runs, control them, and read progress.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.dependencies import ImporterRegistry, get_importer_registry
from app.api.schemas.imports import (
    ImporterProfileInfo,
    ImporterProfileListResponse,
    ImportProgressInfo,
    ImportProgressResponse,
    PreviewImportRequest,
    PreviewImportResponse,
    StartImportRequest,
)
from app.core.config import settings
from app.domain.imports.errors import ImportAlreadyRunningError, ImportPreflightError
from app.domain.imports.normalizer import header_detector_for, preview_input
from app.domain.imports.profiles import ImporterProfile, get_profile, list_profiles
from app.domain.imports.scheduler import BatchImporter

router = APIRouter(tags=["imports"])

logger = logging.getLogger(__name__)


def _require_profile(profile_name: str) -> ImporterProfile:
    profile = get_profile(profile_name)
    if not profile:
        raise HTTPException(status_code=404, detail=f"Importer '{profile_name}' not found")
    return profile


def _require_importer(registry: ImporterRegistry, profile_name: str, tenant_id: str) -> BatchImporter:
    _require_profile(profile_name)
    importer = registry.get(profile_name, tenant_id)
    if not importer:
        raise HTTPException(status_code=404, detail=f"No import run for '{tenant_id}' on '{profile_name}'")
    return importer


def _progress_response(profile_name: str, importer: BatchImporter) -> ImportProgressResponse:
    return ImportProgressResponse(
        success=True,
        importer=profile_name,
        progress=ImportProgressInfo.from_snapshot(importer.snapshot()),
    )


@router.get("/importers", response_model=ImporterProfileListResponse)
async def list_importers_endpoint():
    return ImporterProfileListResponse(
        success=True,
        importers=[ImporterProfileInfo.from_profile(profile) for profile in list_profiles()],
    )


@router.post("/importers/{profile_name}/preview", response_model=PreviewImportResponse)
async def preview_import_endpoint(profile_name: str, request: PreviewImportRequest):
    """
    Report how the posted text would be imported without sending anything.

    Returns the record count, whether a header line was detected, the number
    of batches the run would take, and the first rows split into cells.
    """
    profile = _require_profile(profile_name)
    batch_size = request.batch_size or settings.default_batch_size
    try:
        detector = header_detector_for(request.header_mode or profile.header_mode)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    preview = preview_input(request.csv_data, batch_size, detector)
    return PreviewImportResponse.from_preview(preview, batch_size)


@router.post("/importers/{profile_name}/runs", response_model=ImportProgressResponse, status_code=202)
async def start_import_endpoint(
    profile_name: str,
    request: StartImportRequest,
    registry: ImporterRegistry = Depends(get_importer_registry),
):
    """
    Start a batch import for one tenant.

    The run continues in the background; poll the progress endpoint or use the
    pause / resume / stop endpoints to control it. Only one run per importer
    and tenant may be active at a time.
    """
    profile = _require_profile(profile_name)
    logger.info("Received import start for '%s' (tenant '%s')", profile_name, request.tenant_id)

    try:
        importer = registry.launch(
            profile,
            request.tenant_id,
            request.csv_data,
            batch_size=request.batch_size,
            header_mode=request.header_mode,
        )
    except ImportAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ImportPreflightError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _progress_response(profile_name, importer)


@router.get("/importers/{profile_name}/runs/{tenant_id}", response_model=ImportProgressResponse)
async def get_import_progress_endpoint(
    profile_name: str,
    tenant_id: str,
    registry: ImporterRegistry = Depends(get_importer_registry),
):
    importer = _require_importer(registry, profile_name, tenant_id)
    return _progress_response(profile_name, importer)


@router.post("/importers/{profile_name}/runs/{tenant_id}/pause", response_model=ImportProgressResponse)
async def pause_import_endpoint(
    profile_name: str,
    tenant_id: str,
    registry: ImporterRegistry = Depends(get_importer_registry),
):
    importer = _require_importer(registry, profile_name, tenant_id)
    importer.pause()
    return _progress_response(profile_name, importer)


@router.post("/importers/{profile_name}/runs/{tenant_id}/resume", response_model=ImportProgressResponse)
async def resume_import_endpoint(
    profile_name: str,
    tenant_id: str,
    registry: ImporterRegistry = Depends(get_importer_registry),
):
    importer = _require_importer(registry, profile_name, tenant_id)
    importer.resume()
    return _progress_response(profile_name, importer)


@router.post("/importers/{profile_name}/runs/{tenant_id}/stop", response_model=ImportProgressResponse)
async def stop_import_endpoint(
    profile_name: str,
    tenant_id: str,
    registry: ImporterRegistry = Depends(get_importer_registry),
):
    """Request a soft stop: the batch in flight finishes, no further batch is sent."""
    importer = _require_importer(registry, profile_name, tenant_id)
    importer.stop()
    return _progress_response(profile_name, importer)
