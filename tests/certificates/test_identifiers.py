"""Tests for certificate grades and identifiers."""

import re
from datetime import UTC, datetime

import pytest

from src.certificates.models import calculate_grade
from src.certificates.security import (
    CODE_ALPHABET,
    CODE_LENGTH,
    generate_certificate_id,
    generate_verification_code,
    normalize_code,
)


@pytest.mark.parametrize(
    "score,grade",
    [
        (100, "A+"),
        (97, "A+"),
        (96, "A"),
        (90, "A-"),
        (85, "B"),
        (80, "B-"),
        (77, "C+"),
        (70, "C-"),
        (69, "D"),
        (60, "D"),
        (59, "F"),
        (0, "F"),
    ],
)
def test_calculate_grade(score: int, grade: str) -> None:
    assert calculate_grade(score) == grade


class TestVerificationCode:
    def test_alphabet_excludes_ambiguous_characters(self) -> None:
        assert len(CODE_ALPHABET) == 32
        for char in "0O1I":
            assert char not in CODE_ALPHABET

    def test_code_shape(self) -> None:
        code = generate_verification_code()
        assert len(code) == CODE_LENGTH
        assert set(code) <= set(CODE_ALPHABET)

    def test_custom_length(self) -> None:
        assert len(generate_verification_code(12)) == 12

    def test_normalize(self) -> None:
        assert normalize_code("  k7qf2m9a ") == "K7QF2M9A"


class TestCertificateId:
    def test_format(self) -> None:
        certificate_id = generate_certificate_id(datetime(2026, 3, 2, tzinfo=UTC))
        assert re.fullmatch(r"CERT-[0-9A-Z]+-[0-9A-Z]{8}", certificate_id)

    def test_ids_differ_within_same_millisecond(self) -> None:
        now = datetime(2026, 3, 2, tzinfo=UTC)
        ids = {generate_certificate_id(now) for _ in range(50)}
        assert len(ids) == 50

    def test_prefix_is_time_ordered(self) -> None:
        earlier = generate_certificate_id(datetime(2026, 1, 1, tzinfo=UTC))
        later = generate_certificate_id(datetime(2026, 6, 1, tzinfo=UTC))
        assert int(earlier.split("-")[1], 36) < int(later.split("-")[1], 36)
