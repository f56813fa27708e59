"""Grades: CRUD, statistics, search, bulk edits and spreadsheet import/export."""
import io
import logging
import re
from datetime import datetime
from typing import Optional

import pandas as pd
from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse

from app.api.deps import AdminOnly, CurrentUser, TeacherOrAdmin
from app.models.common import SUBJECTS
from app.models.note import (
    GRADE_FIELDS,
    Note,
    NoteBackupRequest,
    NoteBulkUpdate,
    NoteCreate,
    NoteSource,
    NoteUpdate,
    Semester,
    current_academic_year,
    serialize_note,
)
from app.services.access import ensure_can_view_student, safe_object_id, visible_student_ids

logger = logging.getLogger(__name__)

router = APIRouter()

IMPORT_COLUMNS = ("student_id", "student_name", "lesson")
EXPORT_COLUMNS = {
    "student_id": "Öğrenci No",
    "student_name": "Öğrenci",
    "lesson": "Ders",
    "exam1": "1. Sınav",
    "exam2": "2. Sınav",
    "exam3": "3. Sınav",
    "oral": "Sözlü",
    "project": "Proje",
    "average": "Ortalama",
    "semester": "Dönem",
    "academic_year": "Eğitim Yılı",
}


def _apply_scores(note: Note, values: dict) -> None:
    supplied_average = values.pop("average", None)
    for key, value in values.items():
        setattr(note, key, value)
    if supplied_average is not None and all(getattr(note, f) is None for f in GRADE_FIELDS):
        note.average = supplied_average
    note.recalculate()


def _filter_query(
    user,
    student_id: Optional[str] = None,
    lesson: Optional[str] = None,
    semester: Optional[str] = None,
    academic_year: Optional[str] = None,
    source: Optional[str] = None,
    grade_level: Optional[str] = None,
    section: Optional[str] = None,
) -> dict:
    query: dict = {"is_active": True}
    allowed = visible_student_ids(user)
    if student_id:
        ensure_can_view_student(user, student_id)
        query["student_id"] = student_id
    elif allowed is not None:
        query["student_id"] = {"$in": allowed}
    for key, value in (
        ("lesson", lesson),
        ("semester", semester),
        ("academic_year", academic_year),
        ("source", source),
        ("grade_level", grade_level),
        ("section", section.upper() if section else None),
    ):
        if value:
            query[key] = value
    return query


async def _get_note(note_id: str) -> Note:
    oid = safe_object_id(note_id)
    note = await Note.get(oid) if oid else None
    if not note or not note.is_active:
        raise HTTPException(status_code=404, detail="Not bulunamadı")
    return note


@router.get("/")
async def list_notes(
    user: CurrentUser,
    student_id: Optional[str] = None,
    lesson: Optional[str] = None,
    semester: Optional[Semester] = None,
    academic_year: Optional[str] = None,
    source: Optional[NoteSource] = None,
    grade_level: Optional[str] = None,
    section: Optional[str] = None,
):
    query = _filter_query(
        user,
        student_id,
        lesson,
        semester.value if semester else None,
        academic_year,
        source.value if source else None,
        grade_level,
        section,
    )
    notes = await Note.find(query).sort("-last_updated").to_list()
    return [serialize_note(n) for n in notes]


@router.get("/stats")
async def note_stats(
    user: TeacherOrAdmin,
    academic_year: Optional[str] = None,
    grade_level: Optional[str] = None,
):
    query = _filter_query(user, academic_year=academic_year, grade_level=grade_level)
    notes = await Note.find(query).to_list()
    if not notes:
        return {"total": 0, "groups": []}
    df = pd.DataFrame(
        [
            {
                "lesson": n.lesson.value,
                "semester": n.semester.value,
                "academic_year": n.academic_year,
                "average": n.average,
            }
            for n in notes
        ]
    )
    grouped = (
        df.groupby(["lesson", "semester", "academic_year"])["average"]
        .agg(count="count", mean="mean", low="min", high="max")
        .reset_index()
        .sort_values(["academic_year", "semester", "lesson"])
    )
    groups = [
        {
            "lesson": row["lesson"],
            "semester": row["semester"],
            "academic_year": row["academic_year"],
            "count": int(row["count"]),
            "average": round(float(row["mean"]), 1),
            "min": float(row["low"]),
            "max": float(row["high"]),
        }
        for row in grouped.to_dict(orient="records")
    ]
    return {"total": len(notes), "groups": groups}


@router.get("/templates")
async def note_templates(user: CurrentUser):
    lessons = await Note.distinct("lesson", {"is_active": True})
    return {"lessons_in_use": sorted(getattr(l, "value", l) for l in lessons), "subjects": SUBJECTS}


@router.get("/search")
async def search_notes(user: TeacherOrAdmin, q: str = Query(..., min_length=1, max_length=100)):
    pattern = re.escape(q.strip())
    notes = (
        await Note.find(
            {
                "is_active": True,
                "$or": [
                    {"student_id": {"$regex": pattern, "$options": "i"}},
                    {"student_name": {"$regex": pattern, "$options": "i"}},
                    {"lesson": {"$regex": pattern, "$options": "i"}},
                ],
            }
        )
        .sort("-last_updated")
        .limit(50)
        .to_list()
    )
    return [serialize_note(n) for n in notes]


@router.get("/export")
async def export_notes(
    user: TeacherOrAdmin,
    format: str = Query("xlsx", pattern="^(csv|xlsx)$"),
    lesson: Optional[str] = None,
    semester: Optional[Semester] = None,
    academic_year: Optional[str] = None,
    grade_level: Optional[str] = None,
    section: Optional[str] = None,
):
    query = _filter_query(
        user,
        lesson=lesson,
        semester=semester.value if semester else None,
        academic_year=academic_year,
        grade_level=grade_level,
        section=section,
    )
    notes = await Note.find(query).sort("student_id").to_list()
    if not notes:
        raise HTTPException(status_code=404, detail="Belirtilen kriterlere uygun not bulunamadı")

    rows = []
    for n in notes:
        data = serialize_note(n)
        rows.append({label: data[key] for key, label in EXPORT_COLUMNS.items()})
    df = pd.DataFrame(rows)
    stamp = datetime.utcnow().strftime("%Y%m%d")

    if format == "csv":
        stream = io.StringIO()
        df.to_csv(stream, index=False)
        return StreamingResponse(
            iter([stream.getvalue()]),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=notlar_{stamp}.csv"},
        )
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Notlar")
    output.seek(0)
    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename=notlar_{stamp}.xlsx"},
    )


def _read_sheet(filename: str, content: bytes) -> pd.DataFrame:
    if filename.endswith(".csv"):
        return pd.read_csv(io.BytesIO(content), dtype={"student_id": str})
    if filename.endswith((".xlsx", ".xls")):
        return pd.read_excel(io.BytesIO(content), dtype={"student_id": str})
    raise HTTPException(status_code=400, detail="Yalnızca .xlsx veya .csv dosyaları yüklenebilir")


def _cell(value):
    if pd.isna(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


@router.post("/import")
async def import_notes(user: TeacherOrAdmin, file: UploadFile = File(...)):
    filename = (file.filename or "").lower()
    content = await file.read()
    try:
        df = _read_sheet(filename, content)
    except (ValueError, KeyError) as e:
        raise HTTPException(status_code=400, detail=f"Dosya okunamadı: {e}")
    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in IMPORT_COLUMNS if c not in df.columns]
    if missing:
        raise HTTPException(status_code=400, detail=f"Eksik sütunlar: {', '.join(missing)}")

    imported = updated = 0
    errors: list[dict] = []
    for index, row in enumerate(df.to_dict(orient="records"), start=2):
        values = {k: _cell(v) for k, v in row.items()}
        for key in ("student_id", "student_name", "academic_year"):
            if values.get(key) is not None:
                values[key] = str(values[key]).strip()
        values.setdefault("semester", Semester.CURRENT.value)
        values["semester"] = str(values["semester"] or Semester.CURRENT.value)
        values["academic_year"] = values.get("academic_year") or current_academic_year()
        try:
            data = NoteCreate.model_validate(
                {k: v for k, v in values.items() if k in NoteCreate.model_fields}
            )
        except ValueError as e:
            errors.append({"row": index, "error": str(e).splitlines()[0]})
            continue

        existing = await Note.find_one(
            {
                "student_id": data.student_id,
                "lesson": data.lesson.value,
                "semester": data.semester.value,
                "academic_year": data.academic_year,
                "is_active": True,
            }
        )
        fields = data.model_dump(exclude={"student_id", "lesson", "semester", "academic_year"}, exclude_none=True)
        if existing:
            existing.source = NoteSource.IMPORTED
            _apply_scores(existing, fields)
            await existing.save()
            updated += 1
        else:
            note = Note(
                student_id=data.student_id,
                student_name=data.student_name,
                lesson=data.lesson,
                semester=data.semester,
                academic_year=data.academic_year,
                source=NoteSource.IMPORTED,
                teacher_name=data.teacher_name or user.full_name,
            )
            _apply_scores(note, fields)
            await note.insert()
            imported += 1

    logger.info("Note import by %s: %d new, %d updated, %d errors", user.username, imported, updated, len(errors))
    return {"imported": imported, "updated": updated, "errors": errors}


@router.post("/backup")
async def backup_notes(data: NoteBackupRequest, admin: AdminOnly):
    if not data.semester or not data.academic_year:
        raise HTTPException(status_code=400, detail="Dönem ve eğitim yılı gerekli")
    notes = await Note.find(
        {"semester": data.semester.value, "academic_year": data.academic_year, "is_active": True}
    ).to_list()
    return {
        "semester": data.semester.value,
        "academic_year": data.academic_year,
        "count": len(notes),
        "created_at": datetime.utcnow(),
        "notes": [serialize_note(n) for n in notes],
    }


@router.put("/bulk-update")
async def bulk_update_notes(data: NoteBulkUpdate, user: TeacherOrAdmin):
    updated = 0
    not_found: list[str] = []
    for item in data.updates:
        oid = safe_object_id(item.id)
        note = await Note.get(oid) if oid else None
        if not note or not note.is_active:
            not_found.append(item.id)
            continue
        _apply_scores(note, item.model_dump(exclude_unset=True, exclude={"id"}))
        await note.save()
        updated += 1
    return {"updated": updated, "not_found": not_found}


@router.get("/student/{student_id}")
async def notes_for_student(student_id: str, user: CurrentUser, semester: Optional[Semester] = None):
    query = _filter_query(user, student_id=student_id, semester=semester.value if semester else None)
    notes = await Note.find(query).sort("lesson").to_list()
    return [serialize_note(n) for n in notes]


@router.post("/", status_code=201)
async def create_note(data: NoteCreate, user: TeacherOrAdmin):
    values = data.model_dump(exclude_none=True)
    note = Note(
        student_id=values.pop("student_id"),
        student_name=values.pop("student_name"),
        lesson=values.pop("lesson"),
        academic_year=values.pop("academic_year", None) or current_academic_year(),
        teacher_name=values.pop("teacher_name", None) or user.full_name,
        source=NoteSource.MANUAL,
    )
    _apply_scores(note, values)
    await note.insert()
    return serialize_note(note)


@router.put("/{note_id}")
async def update_note(note_id: str, data: NoteUpdate, user: TeacherOrAdmin):
    note = await _get_note(note_id)
    _apply_scores(note, data.model_dump(exclude_unset=True))
    await note.save()
    return serialize_note(note)


@router.delete("/{note_id}")
async def delete_note(note_id: str, user: TeacherOrAdmin):
    note = await _get_note(note_id)
    note.is_active = False
    note.updated_at = datetime.utcnow()
    await note.save()
    return {"success": True, "message": "Not silindi"}
