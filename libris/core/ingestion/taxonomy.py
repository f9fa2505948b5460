"""Controlled genre vocabulary used to tag ingested books."""

from collections.abc import Iterable

MAX_GENRES_PER_BOOK = 3

PRIMARY_GENRES: tuple[str, ...] = (
    "Philosophy",
    "Religion",
    "Theology",
    "Sacred Texts",
    "History",
    "Biography",
    "Science",
    "Mathematics",
    "Medicine",
    "Law",
    "Politics",
    "Economics",
    "Literature",
    "Poetry",
    "Drama",
    "Mythology",
    "Military & Strategy",
    "Education",
    "Linguistics",
    "Ethics",
    "Anthropology",
    "Sociology",
    "Psychology",
    "Geography",
    "Astronomy",
    "Alchemy & Esoterica",
    "Art & Architecture",
)

SUB_GENRES: tuple[str, ...] = (
    "Ancient",
    "Medieval",
    "Classical",
    "Early Modern",
    "Commentary",
    "Translation",
    "Manuscript",
    "Legal Code",
    "Canonical Text",
)

_GENRE_LOOKUP = {genre.lower(): genre for genre in PRIMARY_GENRES}
_SUBGENRE_LOOKUP = {subgenre.lower(): subgenre for subgenre in SUB_GENRES}


def validate_genre(genre: object) -> str | None:
    """
    Resolve a genre name to its canonical taxonomy spelling.

    Args:
        genre: Candidate genre name (any case, surrounding whitespace ignored)

    Returns:
        Canonical genre name, or None if it is not in the taxonomy
    """
    if not isinstance(genre, str):
        return None
    return _GENRE_LOOKUP.get(genre.strip().lower())


def validate_genres(genres: Iterable[object] | None) -> list[str]:
    """
    Filter a list of genre names down to valid taxonomy genres.

    Input order is preserved, duplicates are dropped case-insensitively and at
    most MAX_GENRES_PER_BOOK entries are returned.

    Args:
        genres: Candidate genre names

    Returns:
        Canonical genre names

    Example:
        >>> validate_genres(["poetry", "Cooking", "POETRY", "History"])
        ['Poetry', 'History']
    """
    if not genres or isinstance(genres, str):
        return []

    result: list[str] = []
    for candidate in genres:
        canonical = validate_genre(candidate)
        if canonical and canonical not in result:
            result.append(canonical)
            if len(result) == MAX_GENRES_PER_BOOK:
                break
    return result


def validate_subgenre(subgenre: object) -> str | None:
    """Resolve a sub-genre name to its canonical spelling, or None."""
    if not isinstance(subgenre, str):
        return None
    return _SUBGENRE_LOOKUP.get(subgenre.strip().lower())


def is_valid_genre(genre: object) -> bool:
    return validate_genre(genre) is not None


def validate_genre_names(names: Iterable[str]) -> list[str]:
    """
    Check admin-supplied genre names against the taxonomy.

    Args:
        names: Genre names to check

    Returns:
        The names that are NOT valid genres (empty list when all are valid)
    """
    return [name for name in names if not is_valid_genre(name)]


def get_all_genres() -> dict[str, list[str]]:
    """Return the full taxonomy for display."""
    return {"primary": list(PRIMARY_GENRES), "subgenres": list(SUB_GENRES)}
