"""
Aturan naik kelas yang murni (tanpa query).

Dipakai dua kali: oleh endpoint daftar kelas tujuan (dihitung ulang setiap
kali kelas lama / pilihan santri berubah) dan oleh orkestrator sebelum
mutasi apa pun. Server tetap otoritas akhir.
"""


class PromotionError(Exception):
    """Dasar semua error naik kelas."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class PromotionValidationError(PromotionError):
    status_code = 400

    def __init__(self, message, students=None):
        super().__init__(message)
        self.students = students or []


def _history_destinations(student):
    return [entry.new_class_id for entry in (getattr(student, 'class_history', None) or [])]


def _index_students(students):
    if isinstance(students, dict):
        return students
    return {student.id: student for student in students}


def occupied_class_ids(selected_ids, students):
    """Kelas yang sedang atau pernah dijalani oleh santri terpilih."""
    by_id = _index_students(students)
    occupied = set()
    for student_id in selected_ids:
        student = by_id.get(student_id)
        if student is None:
            continue
        occupied.add(student.current_class_id)
        occupied.update(_history_destinations(student))
    return occupied


def filter_destination_classes(classes, source_class_id, selected_ids, students):
    classes = list(classes)
    if not source_class_id or not selected_ids:
        return classes

    source = next((c for c in classes if c.id == source_class_id), None)
    if source is None:
        return classes

    occupied = occupied_class_ids(selected_ids, students)

    def level_ok(candidate):
        # Level kosong di salah satu sisi = tidak dibatasi
        if source.grade_level is None or candidate.grade_level is None:
            return True
        return candidate.grade_level >= source.grade_level

    return [
        c for c in classes
        if c.id != source_class_id and c.id not in occupied and level_ok(c)
    ]


def validate_promotion(source_class_id, destination_class_id, selected_ids, students):
    """Raise PromotionValidationError pada aturan pertama yang gagal."""
    if not source_class_id:
        raise PromotionValidationError("Pilih kelas lama terlebih dahulu")

    if not destination_class_id:
        raise PromotionValidationError("Pilih kelas baru")

    if source_class_id == destination_class_id:
        raise PromotionValidationError("Kelas lama dan kelas baru harus berbeda")

    if not selected_ids:
        raise PromotionValidationError("Pilih minimal satu santri")

    by_id = _index_students(students)
    offenders = []
    for student_id in selected_ids:
        student = by_id.get(student_id)
        if student is None:
            continue
        if destination_class_id in _history_destinations(student) \
                or student.current_class_id == destination_class_id:
            offenders.append(student)

    if offenders:
        names = ', '.join(s.full_name for s in offenders)
        raise PromotionValidationError(
            f"Santri berikut tidak bisa mundur ke kelas yang sudah pernah dijalani: {names}",
            students=[{'id': s.id, 'name': s.full_name} for s in offenders],
        )

    return True
