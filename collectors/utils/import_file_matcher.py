"""Match bulk-uploaded filenames to existing document/service-record titles.

Two filename layouts are understood:
    2019-Honda-CBR650F-Registration.pdf   (vehicle prefix + title)
    Registration.pdf                      (title only)

A trailing ``-N`` (N < 100) is treated as a duplicate counter, so
``Registration-2.pdf`` matches "Registration". Larger numbers are kept as
part of the title so a trailing year is not swallowed.

Matches are suggestions. Callers show them to the user for confirmation
instead of applying them silently.
"""

import math
import re
from dataclasses import dataclass

_SUFFIX_PATTERN = re.compile(r"^(.+)-(\d+)$")
_VEHICLE_PREFIX_PATTERN = re.compile(
    r"^((?:19|20)\d{2})[-\s]+([^-\s]+)[-\s]+([^-\s]+)[-\s]+(.+)$"
)
_SEPARATORS = re.compile(r"[-_\s]+")
_TITLE_SEPARATORS = re.compile(r"[-_]")

MAX_SUFFIX = 100
MIN_CONFIDENCE = 50

EXACT_CONFIDENCE = 100
FILENAME_CONTAINS_TITLE_CONFIDENCE = 85
TITLE_CONTAINS_FILENAME_CONFIDENCE = 80
WORD_OVERLAP_BASE = 15
WORD_OVERLAP_SPAN = 60


@dataclass(frozen=True)
class VehicleParts:
    year: str
    make: str
    model: str


@dataclass(frozen=True)
class ParsedImportFileName:
    """Components of an uploaded filename."""

    vehicle_parts: VehicleParts | None
    title: str
    suffix: int | None
    extension: str


@dataclass(frozen=True)
class FileMatch:
    """Best candidate title for a file, with a 0-100 confidence."""

    title: str
    index: int
    confidence: int


@dataclass(frozen=True)
class FileMatchSuggestion:
    filename: str
    match: FileMatch | None


def parse_import_file_name(filename: str) -> ParsedImportFileName:
    """Split a filename into vehicle prefix, title, duplicate suffix and extension."""
    base_name, dot, extension = filename.rpartition(".")
    if not dot:
        base_name, extension = filename, ""
    extension = extension.lower()

    suffix: int | None = None
    title_part = base_name
    suffix_match = _SUFFIX_PATTERN.match(base_name)
    if suffix_match:
        number = int(suffix_match.group(2))
        if number < MAX_SUFFIX:
            suffix = number
            title_part = suffix_match.group(1)

    prefix_match = _VEHICLE_PREFIX_PATTERN.match(title_part)
    if prefix_match:
        return ParsedImportFileName(
            vehicle_parts=VehicleParts(
                year=prefix_match.group(1),
                make=prefix_match.group(2),
                model=prefix_match.group(3),
            ),
            title=_TITLE_SEPARATORS.sub(" ", prefix_match.group(4)).strip(),
            suffix=suffix,
            extension=extension,
        )

    return ParsedImportFileName(
        vehicle_parts=None,
        title=_TITLE_SEPARATORS.sub(" ", title_part).strip(),
        suffix=suffix,
        extension=extension,
    )


def normalize_for_match(value: str) -> str:
    """Lowercase and collapse whitespace, hyphens and underscores."""
    return _SEPARATORS.sub(" ", value.lower()).strip()


def _score(file_title: str, record_title: str) -> int:
    if file_title == record_title:
        return EXACT_CONFIDENCE
    if record_title in file_title:
        return FILENAME_CONTAINS_TITLE_CONFIDENCE
    if file_title in record_title:
        return TITLE_CONTAINS_FILENAME_CONFIDENCE

    file_words = set(file_title.split())
    record_words = set(record_title.split())
    overlap = len(file_words & record_words)
    if not overlap:
        return 0
    total = max(len(file_words), len(record_words))
    # Round half up.
    return math.floor(overlap / total * WORD_OVERLAP_SPAN + 0.5) + WORD_OVERLAP_BASE


def match_file_to_record(filename: str, record_titles: list[str]) -> FileMatch | None:
    """Find the record title that best matches an uploaded filename.

    Args:
        filename: Uploaded file name, with extension.
        record_titles: Titles of the vehicle's existing records.

    Returns:
        The highest-confidence match (first wins on ties), or None when the
        best confidence is below MIN_CONFIDENCE.
    """
    file_title = normalize_for_match(parse_import_file_name(filename).title)
    if not file_title:
        return None

    best: FileMatch | None = None
    for index, record_title in enumerate(record_titles):
        normalized = normalize_for_match(record_title)
        if not normalized:
            continue
        confidence = _score(file_title, normalized)
        if confidence > 0 and (best is None or confidence > best.confidence):
            best = FileMatch(title=record_title, index=index, confidence=confidence)

    if best is None or best.confidence < MIN_CONFIDENCE:
        return None
    return best


def match_files_to_records(
    filenames: list[str],
    record_titles: list[str],
) -> list[FileMatchSuggestion]:
    """Suggest a record for each uploaded file, preserving upload order."""
    return [
        FileMatchSuggestion(filename=name, match=match_file_to_record(name, record_titles))
        for name in filenames
    ]
