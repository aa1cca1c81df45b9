import argparse
from typing import List

from pesantren import create_app
from pesantren.extensions import db
from pesantren.models import ClassRoom, Student
from pesantren.services.promotion_rules import PromotionError
from pesantren.services.promotion_service import PromotionService


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Naik kelas massal dari terminal (tanpa transaksi atomik, proses per batch)."
    )
    parser.add_argument("--from-class", type=int, required=True, help="ID kelas lama")
    parser.add_argument("--to-class", type=int, required=True, help="ID kelas baru")
    parser.add_argument(
        "--student-id",
        type=int,
        action="append",
        dest="student_ids",
        help="ID santri (boleh diulang). Kosong = semua santri di kelas lama.",
    )
    parser.add_argument("--batch-size", type=int, default=None, help="Override PROMOTION_BATCH_SIZE")
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Eksekusi naik kelas. Tanpa ini hanya preview.",
    )
    return parser.parse_args()


def get_target_students(class_id: int, student_ids: List[int] = None) -> List[Student]:
    query = Student.query.filter(Student.current_class_id == class_id)
    if student_ids:
        query = query.filter(Student.id.in_(student_ids))
    return query.order_by(Student.full_name.asc()).all()


def print_preview(source: ClassRoom, destination: ClassRoom, students: List[Student]) -> None:
    print(f"Kelas lama : {source.name if source else '-'} (level {source.grade_level if source else '-'})")
    print(f"Kelas baru : {destination.name if destination else '-'} (level {destination.grade_level if destination else '-'})")
    print(f"Total santri: {len(students)}")
    for s in students:
        account = s.user_id if s.user_id is not None else "-"
        print(f"- id={s.id} nis={s.nis} nama={s.full_name} user_id={account}")


def main() -> int:
    args = parse_args()
    app = create_app()

    with app.app_context():
        source = db.session.get(ClassRoom, args.from_class)
        destination = db.session.get(ClassRoom, args.to_class)
        students = get_target_students(args.from_class, args.student_ids)
        print_preview(source, destination, students)

        if not students:
            print("Tidak ada santri pada kelas tersebut.")
            return 0

        if not args.yes:
            print("Mode preview. Tambahkan --yes untuk eksekusi naik kelas.")
            return 0

        service = PromotionService(batch_size=args.batch_size)
        try:
            result = service.promote([s.id for s in students], args.from_class, args.to_class)
        except PromotionError as exc:
            print(f"Gagal naik kelas: {exc.message}")
            return 1

        print(
            f"Naik kelas selesai: {result.promoted_count} santri, "
            f"{result.bills_migrated} tagihan dipindah ke {result.destination_academic_year or '-'}."
        )
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
