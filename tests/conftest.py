import pytest

from config import Config
from pesantren import create_app
from pesantren.extensions import db
from pesantren.models import (
    AcademicYear, ClassRoom, FeeType, Invoice, PaymentStatus, Student, Transaction,
    TransactionStatus, User, UserRole,
)
from pesantren.utils.nis import generate_nis


class TestingConfig(Config):
    __test__ = False

    TESTING = True
    SECRET_KEY = 'rahasia-testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    PROMOTION_BATCH_SIZE = 5
    PROMOTION_BATCH_DELAY_MS = 0
    MIDTRANS_SERVER_KEY = 'SB-Mid-server-testing'
    LOG_TO_FILE = False


class Factory:
    """Pembuat data uji; setiap helper langsung commit."""

    def __init__(self):
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def user(self, username, password='rahasia123', role=UserRole.ADMIN, **kwargs):
        user = User(username=username, email=f"{username}@pesantren.test", role=role, **kwargs)
        user.set_password(password)
        user.save()
        return user

    def year(self, name, active=False, semester='Ganjil'):
        year = AcademicYear(name=name, semester=semester, is_active=active)
        year.save()
        return year

    def classroom(self, name, level=None, year=None):
        room = ClassRoom(name=name, grade_level=level, academic_year_id=year.id if year else None)
        room.save()
        return room

    def student(self, name, classroom, with_account=False, nis=None):
        nis = nis or generate_nis(2025)
        user_id = None
        if with_account:
            user_id = self.user(nis, password=nis, role=UserRole.SANTRI).id
        student = Student(full_name=name, nis=nis, current_class_id=classroom.id, user_id=user_id)
        student.save()
        return student

    def invoice(self, student, amount, status=PaymentStatus.UNPAID, paid=0, year=None, fee_name='SPP'):
        fee = FeeType(name=fee_name, amount=amount, academic_year_id=year.id if year else None)
        db.session.add(fee)
        db.session.flush()
        invoice = Invoice(
            invoice_number=f"INV/{student.id}/{self._next()}",
            student_id=student.id,
            fee_type_id=fee.id,
            academic_year_id=year.id if year else None,
            total_amount=amount,
            paid_amount=paid,
            status=status,
            description=f"{fee_name} {student.full_name}",
        )
        invoice.save()
        return invoice

    def transaction(self, invoice, order_id, status=TransactionStatus.PENDING, method='midtrans'):
        trx = Transaction(
            invoice_id=invoice.id,
            student_id=invoice.student_id,
            amount=invoice.total_amount,
            method=method,
            status=status,
            order_id=order_id,
        )
        trx.save()
        return trx


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def factory(app):
    return Factory()


@pytest.fixture
def admin(factory):
    return factory.user('admin', password='admin123', role=UserRole.ADMIN)


@pytest.fixture
def login(client):
    def _login(login_id, password):
        return client.post('/auth/login', json={'loginId': login_id, 'password': password})
    return _login


@pytest.fixture
def admin_client(client, admin, login):
    response = login('admin', 'admin123')
    assert response.status_code == 200
    return client


@pytest.fixture
def school(factory):
    """Dua tahun ajaran (yang baru aktif) dan empat kelas dengan level."""
    old_year = factory.year('2024/2025', active=False)
    new_year = factory.year('2025/2026', active=True)
    return {
        'old_year': old_year,
        'new_year': new_year,
        'kelas_7': factory.classroom('VII-A', level=7, year=old_year),
        'kelas_8': factory.classroom('VIII-A', level=8, year=new_year),
        'kelas_8b': factory.classroom('VIII-B', level=8, year=new_year),
        'kelas_6': factory.classroom('VI-A', level=6, year=old_year),
    }
