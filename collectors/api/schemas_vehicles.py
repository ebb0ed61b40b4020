"""Pydantic schemas for vehicle import/export endpoints."""

from pydantic import Field

from collectors.orchestrator.models import CamelModel


class ImportRowResult(CamelModel):
    """Outcome for one CSV line."""

    line: int
    name: str
    status: str
    valid: bool
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)


class ImportResponse(CamelModel):
    """Result of POST /api/vehicles/import."""

    imported: int
    skipped: int
    mapping: dict[str, str]
    rows: list[ImportRowResult]


class MatchFilesRequest(CamelModel):
    """Filenames to pair with existing document or service record titles."""

    filenames: list[str] = Field(..., min_length=1)
    record_titles: list[str] = Field(default_factory=list)


class FileMatchResult(CamelModel):
    title: str
    index: int
    confidence: int


class FileMatchSuggestionResponse(CamelModel):
    filename: str
    match: FileMatchResult | None = None


class MatchFilesResponse(CamelModel):
    suggestions: list[FileMatchSuggestionResponse]
