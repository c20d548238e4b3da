"""
Request and response models for the batch import endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.domain.imports.normalizer import InputPreview
from app.domain.imports.profiles import ImporterProfile
from app.domain.imports.progress import ImportStatus, ProgressSnapshot


class ImporterProfileInfo(BaseModel):
    """Operator-facing description of an importer."""
    name: str
    title: str
    description: str
    required_columns: List[str] = []
    optional_columns: List[str] = []
    notes: List[str] = []
    header_mode: str
    placeholder: str = ""

    @classmethod
    def from_profile(cls, profile: ImporterProfile) -> "ImporterProfileInfo":
        return cls(
            name=profile.name,
            title=profile.title,
            description=profile.description,
            required_columns=list(profile.required_columns),
            optional_columns=list(profile.optional_columns),
            notes=list(profile.notes),
            header_mode=profile.header_mode,
            placeholder=profile.placeholder,
        )


class ImporterProfileListResponse(BaseModel):
    success: bool
    importers: List[ImporterProfileInfo]


class PreviewImportRequest(BaseModel):
    csv_data: str
    batch_size: Optional[int] = Field(default=None, ge=1)
    header_mode: Optional[str] = None  # markers, typed, present, absent; defaults to the profile's


class PreviewImportResponse(BaseModel):
    success: bool
    total_records: int
    has_header: bool
    header_line: Optional[str] = None
    batch_size: int
    estimated_batches: int
    rows: List[List[str]] = []

    @classmethod
    def from_preview(cls, preview: InputPreview, batch_size: int) -> "PreviewImportResponse":
        return cls(
            success=True,
            total_records=preview.total_records,
            has_header=preview.has_header,
            header_line=preview.header_line,
            batch_size=batch_size,
            estimated_batches=preview.estimated_batches,
            rows=preview.rows,
        )


class StartImportRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    csv_data: str
    batch_size: Optional[int] = Field(default=None, ge=1)
    header_mode: Optional[str] = None


class ImportProgressInfo(BaseModel):
    """Point-in-time progress of an import run."""
    status: ImportStatus
    target_id: Optional[str] = None
    current_batch: int
    total_batches: int
    processed_records: int
    total_records: int
    progress_percent: float
    has_header: bool = False
    inserted: int = 0
    skipped: int = 0
    counters: Dict[str, int] = {}
    error_count: int = 0
    recent_errors: List[str] = []
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, snapshot: ProgressSnapshot) -> "ImportProgressInfo":
        return cls(
            status=snapshot.status,
            target_id=snapshot.target_id,
            current_batch=snapshot.current_batch,
            total_batches=snapshot.total_batches,
            processed_records=snapshot.processed_records,
            total_records=snapshot.total_records,
            progress_percent=snapshot.progress_percent,
            has_header=snapshot.has_header,
            inserted=snapshot.inserted,
            skipped=snapshot.skipped,
            counters=dict(snapshot.counters),
            error_count=snapshot.error_count,
            recent_errors=list(snapshot.recent_errors),
            started_at=snapshot.started_at,
            finished_at=snapshot.finished_at,
        )


class ImportProgressResponse(BaseModel):
    success: bool
    importer: str
    progress: ImportProgressInfo
