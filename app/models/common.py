"""Shared school vocabulary: subjects, grade levels and sections."""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator


class Subject(str, Enum):
    MATEMATIK = "Matematik"
    FIZIK = "Fizik"
    KIMYA = "Kimya"
    BIYOLOJI = "Biyoloji"
    INGILIZCE = "İngilizce"
    TURKCE = "Türkçe"
    TARIH = "Tarih"
    COGRAFYA = "Coğrafya"
    DIN_KULTURU = "Din Kültürü"
    BEDEN_EGITIMI = "Beden Eğitimi"
    MUZIK = "Müzik"
    GORSEL_SANATLAR = "Görsel Sanatlar"
    TEKNOLOJI_TASARIM = "Teknoloji ve Tasarım"
    BILISIM = "Bilişim Teknolojileri"


SUBJECTS: list[str] = [s.value for s in Subject]

GRADE_LEVELS = ("9", "10", "11", "12")
SECTIONS = ("A", "B", "C", "D", "E", "F")


def _check_grade_level(value: str) -> str:
    value = value.strip()
    if value not in GRADE_LEVELS:
        raise ValueError("Sınıf 9, 10, 11 veya 12 olmalıdır")
    return value


def _check_section(value: str) -> str:
    value = value.strip().upper()
    if value not in SECTIONS:
        raise ValueError("Şube A-F arasında olmalıdır")
    return value


GradeLevel = Annotated[str, AfterValidator(_check_grade_level)]
Section = Annotated[str, AfterValidator(_check_section)]


def to_naive_utc(value: datetime) -> datetime:
    """Stored datetimes are naive UTC, like ``datetime.utcnow()``."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def reject_null(value):
    """Partial updates may leave a required field out, but not set it to null."""
    if value is None:
        raise ValueError("Bu alan boş bırakılamaz")
    return value
