from pesantren.extensions import db
from datetime import datetime
import enum
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash


# ==========================================
# 0. BASE MODEL
# ==========================================
class BaseModel(db.Model):
    """
    Kelas Abstract yang akan diwarisi oleh semua model.
    Menyediakan fitur Timestamp otomatis.
    """
    __abstract__ = True

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def save(self):
        db.session.add(self)
        db.session.commit()


# ==========================================
# 1. ENUMS
# ==========================================
class UserRole(enum.Enum):
    ADMIN = "admin"
    SANTRI = "santri"
    WALI_SANTRI = "wali_santri"
    TU = "tata_usaha"


class PaymentStatus(enum.Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class TransactionStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(enum.Enum):
    NAIK_KELAS = "naik_kelas"
    TAGIHAN_DIPINDAH = "tagihan_dipindah"
    PEMBAYARAN_DITERIMA = "pembayaran_diterima"
    PEMBAYARAN_DITOLAK = "pembayaran_ditolak"
    SISTEM = "sistem"


class ActiveAcademicYearConflict(ValueError):
    """Lebih dari satu tahun ajaran berstatus aktif."""


# ==========================================
# 2. USERS & PROFILES
# ==========================================
class User(UserMixin, BaseModel):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.Enum(UserRole), default=UserRole.SANTRI, nullable=False)
    last_login = db.Column(db.DateTime)

    # Admin yang mau menerima notifikasi pembayaran
    receive_app_notifications = db.Column(db.Boolean, default=True)

    student_profile = db.relationship('Student', backref='user', uselist=False)
    notifications = db.relationship('Notification', backref='user', lazy=True)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)


class Student(BaseModel):
    __tablename__ = 'students'
    id = db.Column(db.Integer, primary_key=True)
    # Tidak semua santri punya akun; tanpa akun = tidak ada notifikasi
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    current_class_id = db.Column(db.Integer, db.ForeignKey('class_rooms.id'), nullable=False, index=True)
    nis = db.Column(db.String(20), unique=True, nullable=False)
    full_name = db.Column(db.String(100), nullable=False)

    # Relations (riwayat terbaru duluan)
    class_history = db.relationship(
        'StudentClassHistory',
        back_populates='student',
        lazy=True,
        order_by=lambda: [StudentClassHistory.promoted_at.desc(), StudentClassHistory.id.desc()],
    )
    invoices = db.relationship('Invoice', backref='student', lazy=True)
    current_class = db.relationship('ClassRoom', back_populates='students')

    @property
    def has_account(self):
        return self.user_id is not None


# ==========================================
# 3. ACADEMIC CORE
# ==========================================
class AcademicYear(BaseModel):
    __tablename__ = 'academic_years'
    # Partial unique index: paling banyak satu baris is_active = true
    __table_args__ = (
        db.Index(
            'uq_academic_years_single_active', 'is_active', unique=True,
            postgresql_where=db.text('is_active'), sqlite_where=db.text('is_active'),
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(20), nullable=False)  # 2025/2026
    semester = db.Column(db.String(10), nullable=False, default='Ganjil')  # Ganjil/Genap
    is_active = db.Column(db.Boolean, default=False, nullable=False)

    classes = db.relationship('ClassRoom', back_populates='academic_year', lazy=True)

    @classmethod
    def get_active(cls):
        return cls.query.filter_by(is_active=True).first()

    def activate(self):
        # Nonaktifkan semua tahun lain, lalu aktifkan yang dipilih
        AcademicYear.query.filter(AcademicYear.id != self.id).update(
            {AcademicYear.is_active: False}, synchronize_session='fetch'
        )
        self.is_active = True
        db.session.commit()


class ClassRoom(BaseModel):
    __tablename__ = 'class_rooms'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    grade_level = db.Column(db.Integer, nullable=True)
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=True)

    students = db.relationship('Student', back_populates='current_class', lazy=True)
    academic_year = db.relationship('AcademicYear', back_populates='classes')


class StudentClassHistory(BaseModel):
    """Riwayat kenaikan kelas santri (append-only)."""
    __tablename__ = 'student_class_history'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    previous_class_id = db.Column(db.Integer, db.ForeignKey('class_rooms.id'), nullable=False)
    new_class_id = db.Column(db.Integer, db.ForeignKey('class_rooms.id'), nullable=False)
    promoted_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    previous_class = db.relationship('ClassRoom', foreign_keys=[previous_class_id])
    new_class = db.relationship('ClassRoom', foreign_keys=[new_class_id])
    student = db.relationship('Student', back_populates='class_history')


# ==========================================
# 4. FINANCE
# ==========================================
class FeeType(BaseModel):
    __tablename__ = 'fee_types'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50))  # SPP Juli, Uang Gedung
    amount = db.Column(db.Float)
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'))
    academic_year = db.relationship('AcademicYear', backref='fees')


class Invoice(BaseModel):
    __tablename__ = 'invoices'
    id = db.Column(db.Integer, primary_key=True)

    # Format: INV/202408/1/25
    invoice_number = db.Column(db.String(80), unique=True, nullable=True)

    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    fee_type_id = db.Column(db.Integer, db.ForeignKey('fee_types.id'))
    academic_year_id = db.Column(db.Integer, db.ForeignKey('academic_years.id'), nullable=True)

    total_amount = db.Column(db.Float, nullable=False)
    paid_amount = db.Column(db.Float, default=0)
    status = db.Column(db.Enum(PaymentStatus), default=PaymentStatus.UNPAID, nullable=False)
    due_date = db.Column(db.Date)
    description = db.Column(db.Text)

    fee_type = db.relationship('FeeType', backref='invoices')
    academic_year = db.relationship('AcademicYear')
    transactions = db.relationship(
        'Transaction',
        backref='invoice',
        lazy=True,
        order_by=lambda: [Transaction.created_at.desc(), Transaction.id.desc()],
    )


class Transaction(BaseModel):
    __tablename__ = 'transactions'
    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id'), index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'))
    amount = db.Column(db.Float)
    method = db.Column(db.String(30))  # midtrans, tunai, transfer
    status = db.Column(db.Enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False)
    order_id = db.Column(db.String(80), index=True)
    payment_date = db.Column(db.DateTime)
    note = db.Column(db.String(255))


# ==========================================
# 5. NOTIFIKASI
# ==========================================
class Notification(BaseModel):
    __tablename__ = 'notifications'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(120), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.Enum(NotificationType), nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True)


# ==========================================
# 6. GUARD TAHUN AJARAN AKTIF
# ==========================================
def guard_single_active_year(session, flush_context, instances):
    """Tolak flush yang membuat lebih dari satu tahun ajaran aktif."""
    touched = [obj for obj in list(session.new) + list(session.dirty) if isinstance(obj, AcademicYear)]
    activating = [year for year in touched if year.is_active]
    if not activating:
        return

    if len(activating) > 1:
        raise ActiveAcademicYearConflict('Hanya boleh ada satu tahun ajaran aktif.')

    touched_ids = [year.id for year in touched if year.id is not None]
    others = session.query(AcademicYear.id).filter(AcademicYear.is_active.is_(True))
    if touched_ids:
        others = others.filter(AcademicYear.id.notin_(touched_ids))
    if others.first() is not None:
        raise ActiveAcademicYearConflict(
            'Sudah ada tahun ajaran aktif. Gunakan aktivasi tahun ajaran untuk berpindah.'
        )
