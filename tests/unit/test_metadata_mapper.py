"""Unit tests for source record normalization."""

import pytest

from libris.core.ingestion.metadata_mapper import (
    UNKNOWN_AUTHOR,
    UNTITLED,
    MetadataMapper,
)


@pytest.fixture
def mapper() -> MetadataMapper:
    return MetadataMapper()


class TestExtractYear:
    """Test year extraction from assorted date shapes."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("1850", 1850),
            ("1850-03-01", 1850),
            ("1850/03/01", 1850),
            ("circa 1850", 1850),
            ("c. 1850", 1850),
            ("[1850]", 1850),
            ("printed in the year 1722 at London", 1722),
            (1899, 1899),
        ],
    )
    def test_recognized_shapes(self, mapper: MetadataMapper, value, expected):
        assert mapper.extract_year(value) == expected

    @pytest.mark.parametrize("value", [None, "", "no-date-here", "0999", 999, 3000, True])
    def test_unrecognized_or_out_of_range(self, mapper: MetadataMapper, value):
        assert mapper.extract_year(value) is None


class TestFieldNormalization:
    def test_author_variants(self, mapper: MetadataMapper):
        assert mapper.normalize_author(["  Plato ", "", "Jowett"]) == "Plato, Jowett"
        assert mapper.normalize_author({"name": "Homer"}) == "Homer"
        assert mapper.normalize_author("   ") == UNKNOWN_AUTHOR
        assert mapper.normalize_author(None) == UNKNOWN_AUTHOR
        assert mapper.normalize_author([]) == UNKNOWN_AUTHOR

    def test_title(self, mapper: MetadataMapper):
        assert mapper.normalize_title("  The Republic ") == "The Republic"
        assert mapper.normalize_title(["not", "a", "string"]) == UNTITLED
        assert mapper.normalize_title("") == UNTITLED

    def test_language(self, mapper: MetadataMapper):
        assert mapper.normalize_language("English") == "eng"
        assert mapper.normalize_language(["fr", "en"]) == "fre"
        assert mapper.normalize_language("lat") == "lat"
        assert mapper.normalize_language([]) is None
        assert mapper.normalize_language(7) is None

    def test_description_joins_lists(self, mapper: MetadataMapper):
        assert mapper.normalize_description(["Part one.", "Part two."]) == "Part one. Part two."
        assert mapper.normalize_description("   ") is None

    def test_missing_identifier_is_synthesized(self, mapper: MetadataMapper):
        identifier = mapper.normalize_identifier(None, "internet_archive")
        assert identifier.startswith("internet_archive_unknown_")


class TestNormalize:
    def test_internet_archive_record(self, mapper: MetadataMapper):
        """Test a typical Internet Archive record maps onto the canonical schema."""
        book = mapper.normalize(
            {
                "identifier": "republicofplato00plat",
                "title": "The Republic",
                "creator": ["Plato"],
                "date": "circa 1850",
                "language": "English",
                "subject": ["Philosophy", "Greek", "ethics"],
                "download_url": "https://archive.org/download/x/x.pdf",
            },
            "internet_archive",
        )

        assert book.title == "The Republic"
        assert book.author == "Plato"
        assert book.year == 1850
        assert book.language == "eng"
        assert book.source == "internet_archive"
        assert book.source_identifier == "republicofplato00plat"
        assert book.pdf_url == "https://archive.org/download/x/x.pdf"
        assert book.genres == ["Philosophy", "Ethics"]

    def test_open_library_field_names(self, mapper: MetadataMapper):
        book = mapper.normalize(
            {
                "key": "/works/OL1W",
                "title": "Walden",
                "author_name": ["Henry David Thoreau"],
                "first_publish_year": 1854,
            },
            "open_library",
        )
        assert book.source_identifier == "/works/OL1W"
        assert book.author == "Henry David Thoreau"
        assert book.year == 1854

    def test_gutenberg_field_names(self, mapper: MetadataMapper):
        book = mapper.normalize(
            {"id": "1342", "title": "Pride and Prejudice", "author": ["Austen, Jane"], "language": ["en"]},
            "project_gutenberg",
        )
        assert book.source_identifier == "1342"
        assert book.author == "Austen, Jane"
        assert book.language == "eng"

    def test_unknown_source_uses_canonical_names(self, mapper: MetadataMapper):
        book = mapper.normalize(
            {"identifier": "x1", "title": "T", "creator": "A", "genres": ["Poetry"], "subgenre": "ancient"},
            "some_new_source",
        )
        assert book.source_identifier == "x1"
        assert book.genres == ["Poetry"]
        assert book.subgenre == "Ancient"

    def test_malformed_fields_degrade_to_defaults(self, mapper: MetadataMapper):
        book = mapper.normalize({"identifier": "x2", "title": 12, "creator": 5, "date": "n.d."}, "internet_archive")
        assert book.title == UNTITLED
        assert book.author == UNKNOWN_AUTHOR
        assert book.year is None

    def test_missing_source_id_rejected(self, mapper: MetadataMapper):
        with pytest.raises(ValueError):
            mapper.normalize({"identifier": "x"}, "")

    def test_normalize_all_skips_bad_records(self, mapper: MetadataMapper):
        books = mapper.normalize_all([{"identifier": "a", "title": "A"}, None], "internet_archive")
        assert [b.source_identifier for b in books] == ["a"]

    def test_non_mapping_record_rejected(self, mapper: MetadataMapper):
        with pytest.raises(TypeError):
            mapper.normalize(42, "internet_archive")

    def test_normalize_all_drops_non_mapping_records(self, mapper: MetadataMapper):
        books = mapper.normalize_all(
            [{"identifier": "a"}, 42, ["identifier", "b"], {"identifier": "c"}],
            "internet_archive",
        )
        assert [b.source_identifier for b in books] == ["a", "c"]

    def test_synthesized_identifier_is_recognized(self, mapper: MetadataMapper):
        book = mapper.normalize({"title": "No id"}, "internet_archive")
        assert mapper.is_synthesized_identifier(book.source_identifier, "internet_archive")
        assert not mapper.is_synthesized_identifier("republic00plat", "internet_archive")
        assert book.metadata == {}
