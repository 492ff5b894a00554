import pytest

from mailsift.filtering.subject_normalizer import normalize_subject, strip_prefixes, subject_hash


@pytest.mark.parametrize(
    "subject, expected",
    [
        ("Re: Weekly digest", "Weekly digest"),
        ("FWD: Weekly digest", "Weekly digest"),
        ("[Newsletter] Weekly digest", "Weekly digest"),
        ("【推广】 Weekly digest", "Weekly digest"),
        ("Don't miss! Weekly digest", "Weekly digest"),
        ("Urgent: Weekly digest", "Weekly digest"),
    ],
)
def test_strip_single_prefix(subject, expected):
    assert strip_prefixes(subject) == expected


def test_strip_chained_prefixes():
    assert strip_prefixes("RE: Don't miss out! [Promo] Spring collection") == "Spring collection"


def test_prefix_words_inside_subject_are_kept():
    assert strip_prefixes("Your new invoice") == "Your new invoice"


def test_normalize_case_folds_and_collapses_whitespace():
    assert normalize_subject("  Re:   Spring\tCOLLECTION  ") == "spring collection"


def test_near_duplicates_share_a_hash():
    assert subject_hash("Spring collection") == subject_hash("re: SPRING   collection")
    assert subject_hash("Spring collection") != subject_hash("Autumn collection")


def test_hash_is_sha1_hex():
    digest = subject_hash("anything")
    assert len(digest) == 40
    int(digest, 16)


def test_empty_subjects_normalize_to_empty():
    assert normalize_subject("") == ""
    assert normalize_subject("Re: ") == ""


@pytest.mark.parametrize("subject", ["Hotel deals near you", "Newsletter roundup", "Salesforce summit"])
def test_prefix_words_must_be_whole_words(subject):
    assert strip_prefixes(subject) == subject
