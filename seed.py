from pesantren import create_app
from pesantren.extensions import db
from werkzeug.security import generate_password_hash
from datetime import date
from pesantren.models import (
    User, UserRole, Student, ClassRoom, FeeType, AcademicYear,
    Invoice, Transaction, PaymentStatus, TransactionStatus
)
from pesantren.utils.nis import generate_nis

app = create_app()

with app.app_context():
    print("🧹 Menghapus database lama...")
    db.drop_all()

    print("🏗️ Membuat tabel database baru...")
    db.create_all()

    # ============================================
    # 1. TAHUN AJARAN
    # ============================================
    print("📅 Creating Academic Years...")

    # Hanya satu yang aktif (dijaga guard sebelum flush)
    ta_old = AcademicYear(name='2024/2025', semester='Genap', is_active=False)
    ta_now = AcademicYear(name='2025/2026', semester='Ganjil', is_active=True)
    db.session.add_all([ta_old, ta_now])
    db.session.commit()  # Commit dulu biar dpt ID untuk relasi

    # ============================================
    # 2. KELAS
    # ============================================
    print("📚 Creating Classes...")

    cls7a = ClassRoom(name="VII-Abu Bakar", grade_level=7, academic_year_id=ta_old.id)
    cls7b = ClassRoom(name="VII-Umar", grade_level=7, academic_year_id=ta_old.id)
    cls8a = ClassRoom(name="VIII-Abu Bakar", grade_level=8, academic_year_id=ta_now.id)
    cls8b = ClassRoom(name="VIII-Umar", grade_level=8, academic_year_id=ta_now.id)
    tahsin = ClassRoom(name="Tahsin Dasar", grade_level=None, academic_year_id=ta_now.id)
    db.session.add_all([cls7a, cls7b, cls8a, cls8b, tahsin])
    db.session.commit()

    # ============================================
    # 3. USERS (ADMIN, TU)
    # ============================================
    print("👤 Creating Users (Admin, TU)...")

    admin_user = User(
        username='admin',
        email='admin@pesantren.id',
        password_hash=generate_password_hash('admin123'),
        role=UserRole.ADMIN,
    )
    tu_user = User(
        username='tu01',
        email='tu@pesantren.id',
        password_hash=generate_password_hash('tu123'),
        role=UserRole.TU,
        receive_app_notifications=False,
    )
    db.session.add_all([admin_user, tu_user])
    db.session.flush()

    # ============================================
    # 4. SANTRI (sebagian tanpa akun)
    # ============================================
    print("👤 Creating Students...")

    santri_data = [
        ("Shafiya Zakiya", cls7a, True),
        ("Muhammad Arsyad", cls7a, True),
        ("Aisyah Humaira", cls7a, False),
        ("Fathan Alfarizi", cls7b, True),
        ("Zaid Abdullah", cls7b, False),
    ]

    students = []
    for name, kelas, has_account in santri_data:
        nis = generate_nis(2025)
        user_id = None
        if has_account:
            santri_user = User(
                username=nis,  # Login pakai NIS
                email=f"{nis}@santri.pesantren.id",
                password_hash=generate_password_hash(nis),
                role=UserRole.SANTRI,
            )
            db.session.add(santri_user)
            db.session.flush()
            user_id = santri_user.id

        student = Student(user_id=user_id, current_class_id=kelas.id, nis=nis, full_name=name)
        db.session.add(student)
        db.session.flush()  # NIS berikutnya dihitung dari data yang sudah masuk
        students.append(student)

    # ============================================
    # 5. KEUANGAN (FEE TYPES & TAGIHAN)
    # ============================================
    print("💰 Creating Fee Types & Invoices...")

    spp = FeeType(name="SPP Juni 2025", amount=150000, academic_year_id=ta_old.id)
    kitab = FeeType(name="Kitab Semester Genap", amount=85000, academic_year_id=ta_old.id)
    db.session.add_all([spp, kitab])
    db.session.flush()

    for index, student in enumerate(students, start=1):
        lunas = Invoice(
            invoice_number=f"INV/202506/{student.id}/1",
            student_id=student.id,
            fee_type_id=kitab.id,
            academic_year_id=ta_old.id,
            total_amount=kitab.amount,
            paid_amount=kitab.amount,
            status=PaymentStatus.PAID,
            due_date=date(2025, 6, 10),
            description=kitab.name,
        )
        belum = Invoice(
            invoice_number=f"INV/202506/{student.id}/2",
            student_id=student.id,
            fee_type_id=spp.id,
            academic_year_id=ta_old.id,
            total_amount=spp.amount,
            paid_amount=50000 if index % 2 == 0 else 0,
            status=PaymentStatus.PARTIAL if index % 2 == 0 else PaymentStatus.UNPAID,
            due_date=date(2025, 6, 10),
            description=spp.name,
        )
        db.session.add_all([lunas, belum])
        db.session.flush()

        if student.user_id:
            db.session.add(Transaction(
                invoice_id=belum.id,
                student_id=student.id,
                amount=belum.total_amount - (belum.paid_amount or 0),
                method='midtrans',
                status=TransactionStatus.PENDING,
                order_id=f"SPP-{student.nis}-202506",
            ))

    # Final Commit
    db.session.commit()

    print("\n✅ Database Seeded Successfully!")
    print("   - Admin: admin / admin123")
    print("   - TU: tu01 / tu123")
    print("   - Santri: 25001 / 25001 (NIS sebagai password)")
