"""Tests for label splitting functions."""
from bookcatalog.parse import split_labels, clean_labels, deduplicate_labels


def test_split_labels_mixed_delimiters():
    """Test splitting on commas, semicolons and spaces, keeping order."""
    labels = split_labels("Fantasy, Adventure; Sci-Fi")

    assert labels == ["Fantasy", "Adventure", "Sci-Fi"]


def test_split_labels_keeps_hyphens_and_underscores():
    """Test that hyphens and word characters never split a label."""
    labels = split_labels("young-adult science_fiction")

    assert labels == ["young-adult", "science_fiction"]


def test_split_labels_edge_delimiters():
    """Test empty strings from leading and trailing delimiters."""
    labels = split_labels(", Fantasy;")

    assert labels == ["", "Fantasy", ""]


def test_split_labels_none():
    """Test that missing text means nothing to link."""
    assert split_labels(None) == []


def test_split_labels_empty_string():
    """Test that an empty string yields a single empty label."""
    assert split_labels("") == [""]


def test_split_labels_unicode_words():
    """Test that non-ASCII letters are word characters."""
    assert split_labels("Роман, Ciencia-ficción") == ["Роман", "Ciencia-ficción"]


def test_split_is_idempotent_on_rejoined_labels():
    """Test that rejoining with one delimiter and splitting again is stable."""
    text = ",,Fantasy;  Adventure//Sci-Fi,"

    once = clean_labels(split_labels(text))
    twice = clean_labels(split_labels(" ".join(once)))

    assert once == twice == ["Fantasy", "Adventure", "Sci-Fi"]


def test_clean_labels():
    """Test dropping empty labels."""
    assert clean_labels(["", "Fantasy", " ", "Horror", ""]) == ["Fantasy", "Horror"]


def test_deduplicate_labels():
    """Test deduplication keeps first occurrence and is case-sensitive."""
    labels = ["Fantasy", "Horror", "Fantasy", "fantasy"]

    unique = deduplicate_labels(labels)

    assert unique == ["Fantasy", "Horror", "fantasy"]


if __name__ == "__main__":
    # Run tests
    test_split_labels_mixed_delimiters()
    test_split_labels_keeps_hyphens_and_underscores()
    test_split_labels_edge_delimiters()
    test_split_labels_none()
    test_split_labels_empty_string()
    test_split_labels_unicode_words()
    test_split_is_idempotent_on_rejoined_labels()
    test_clean_labels()
    test_deduplicate_labels()
    print("✅ All tests passed!")
