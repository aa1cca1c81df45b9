import re
from datetime import datetime

from sqlalchemy import func

from pesantren.models import Student, User

# Format NIS: YYNNN (2 digit tahun + 3 digit nomor urut), contoh 25001
NIS_PATTERN = re.compile(r'^\d{5}$')
MAX_SEQUENCE = 999


def generate_nis(year=None):
    target_year = year or datetime.now().year
    prefix = f"{target_year % 100:02d}"
    last_student = Student.query.filter(
        Student.nis.like(f"{prefix}%"), func.length(Student.nis) == 5
    ).order_by(Student.nis.desc()).first()

    sequence = 1
    if last_student and last_student.nis[2:].isdigit():
        sequence = int(last_student.nis[2:]) + 1

    while sequence <= MAX_SEQUENCE:
        nis = f"{prefix}{sequence:03d}"
        taken = Student.query.filter_by(nis=nis).first() or User.query.filter_by(username=nis).first()
        if not taken:
            return nis
        sequence += 1

    raise ValueError(f"Nomor urut NIS untuk tahun {target_year} sudah habis")


def validate_nis_format(nis):
    return bool(nis) and bool(NIS_PATTERN.match(nis))


def extract_year_from_nis(nis):
    if not validate_nis_format(nis):
        raise ValueError(f"Format NIS tidak valid: {nis}")
    return 2000 + int(nis[:2])
