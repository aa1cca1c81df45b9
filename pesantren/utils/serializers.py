def _iso(value):
    return value.isoformat() if value else None


def serialize_academic_year(year):
    if year is None:
        return None
    return {
        'id': year.id,
        'name': year.name,
        'semester': year.semester,
        'aktif': bool(year.is_active),
    }


def serialize_class(class_room):
    if class_room is None:
        return None
    return {
        'id': class_room.id,
        'name': class_room.name,
        'level': class_room.grade_level,
        'tahunAjaran': serialize_academic_year(class_room.academic_year),
    }


def serialize_history_entry(entry):
    return {
        'id': entry.id,
        'studentId': entry.student_id,
        'studentName': entry.student.full_name if entry.student else None,
        'kelasLamaId': entry.previous_class_id,
        'kelasLama': serialize_class(entry.previous_class),
        'kelasBaruId': entry.new_class_id,
        'kelasBaru': serialize_class(entry.new_class),
        'tanggal': _iso(entry.promoted_at),
    }


def serialize_candidate(student, balance=None):
    data = {
        'id': student.id,
        'name': student.full_name,
        'nis': student.nis,
        'hasAccount': student.has_account,
        'kelas': serialize_class(student.current_class),
        'riwayatKelas': [
            {
                'kelasBaruId': entry.new_class_id,
                'kelasLamaId': entry.previous_class_id,
                'kelasBaru': serialize_class(entry.new_class),
                'tanggal': _iso(entry.promoted_at),
            }
            for entry in student.class_history
        ],
    }
    if balance is not None:
        data['totalTagihan'] = balance
        # Sementara identik dengan totalTagihan: jumlah semua tagihan yang belum lunas
        data['tagihanBelumLunas'] = balance
    return data
