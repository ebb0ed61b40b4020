"""Tests for bulk-upload filename matching."""

from collectors.utils.import_file_matcher import (
    FileMatch,
    VehicleParts,
    match_file_to_record,
    match_files_to_records,
    normalize_for_match,
    parse_import_file_name,
)


class TestParseImportFileName:
    def test_vehicle_prefixed_name(self):
        parsed = parse_import_file_name("2019-Honda-CBR650F-Registration.pdf")

        assert parsed.vehicle_parts == VehicleParts(year="2019", make="Honda", model="CBR650F")
        assert parsed.title == "Registration"
        assert parsed.suffix is None
        assert parsed.extension == "pdf"

    def test_multi_word_title_after_prefix(self):
        parsed = parse_import_file_name("2023-BMW-R1250GS-Oil-Change_Receipt.JPG")

        assert parsed.vehicle_parts.model == "R1250GS"
        assert parsed.title == "Oil Change Receipt"
        assert parsed.extension == "jpg"

    def test_duplicate_counter_is_stripped(self):
        parsed = parse_import_file_name("Registration-2.pdf")

        assert parsed.vehicle_parts is None
        assert parsed.title == "Registration"
        assert parsed.suffix == 2

    def test_large_trailing_number_is_part_of_title(self):
        parsed = parse_import_file_name("Insurance-2024.pdf")

        assert parsed.suffix is None
        assert parsed.title == "Insurance 2024"

    def test_no_extension(self):
        parsed = parse_import_file_name("Registration")
        assert parsed.extension == ""
        assert parsed.title == "Registration"


class TestNormalizeForMatch:
    def test_collapses_separators(self):
        assert normalize_for_match("  Oil_Change -- Receipt ") == "oil change receipt"


class TestMatchFileToRecord:
    def test_exact_match(self):
        match = match_file_to_record("Registration.pdf", ["Insurance", "Registration"])
        assert match == FileMatch(title="Registration", index=1, confidence=100)

    def test_exact_match_ignores_vehicle_prefix_and_counter(self):
        match = match_file_to_record(
            "2019-Honda-CBR650F-Registration-3.pdf", ["Registration"]
        )
        assert match.confidence == 100

    def test_filename_contains_title(self):
        match = match_file_to_record("Oil-Change-Receipt.pdf", ["Oil Change"])
        assert match.confidence == 85

    def test_title_contains_filename(self):
        match = match_file_to_record("Oil.pdf", ["Oil Change"])
        assert match.confidence == 80

    def test_word_overlap_score(self):
        match = match_file_to_record("front-brake-pads.pdf", ["rear brake pads"])
        # 2 of 3 words: round(2/3 * 60) + 15
        assert match.confidence == 55

    def test_weak_overlap_is_rejected(self):
        assert match_file_to_record("Chain-Service-Log.pdf", ["Chain lube"]) is None

    def test_no_overlap(self):
        assert match_file_to_record("title.pdf", ["insurance card"]) is None

    def test_first_record_wins_ties(self):
        match = match_file_to_record("Registration.pdf", ["Registration", "registration"])
        assert match.index == 0

    def test_best_score_wins(self):
        match = match_file_to_record(
            "Oil-Change.pdf", ["Oil Change Receipt", "Oil Change", "Tires"]
        )
        assert match.index == 1
        assert match.confidence == 100

    def test_empty_inputs(self):
        assert match_file_to_record("Registration.pdf", []) is None
        assert match_file_to_record(".pdf", ["Registration"]) is None


class TestMatchFilesToRecords:
    def test_preserves_upload_order(self):
        suggestions = match_files_to_records(
            ["Tires.pdf", "Unknown.pdf", "Registration.pdf"],
            ["Registration", "Tires"],
        )

        assert [s.filename for s in suggestions] == [
            "Tires.pdf",
            "Unknown.pdf",
            "Registration.pdf",
        ]
        assert suggestions[0].match.index == 1
        assert suggestions[1].match is None
        assert suggestions[2].match.index == 0
