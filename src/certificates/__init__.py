"""Completion certificates: issuance, verification and downloads."""

from .models import CERTIFICATES_TABLES_CQL, Certificate, calculate_grade


__all__ = [
    "CERTIFICATES_TABLES_CQL",
    "Certificate",
    "calculate_grade",
]
