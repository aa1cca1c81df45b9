# pesantren/services/promotion_service.py
"""
Orkestrasi naik kelas.

Lima tahap dijalankan berurutan untuk seluruh santri terpilih, masing-masing
dipecah ke batch kecil (commit per batch, jeda antar batch) supaya connection
pool tidak habis. Konsekuensinya: tidak atomik. Jika satu tahap gagal, hanya
tahap 1 (pindah kelas) yang dikembalikan; riwayat, notifikasi dan pemindahan
tagihan yang sudah terjadi harus direkonsiliasi manual.
"""
import math
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from flask import current_app
from sqlalchemy import exc as sa_exc, func, or_
from sqlalchemy.orm import joinedload, selectinload

from pesantren.extensions import db
from pesantren.models import (
    AcademicYear, ClassRoom, Invoice, Notification, NotificationType, PaymentStatus,
    Student, StudentClassHistory, Transaction,
)
from pesantren.services.notifications import (
    bill_migration_message, create_notification, promotion_message,
)
from pesantren.services.promotion_rules import (
    PromotionError, PromotionValidationError, filter_destination_classes, validate_promotion,
)
from pesantren.utils.serializers import serialize_candidate

LOG_PREFIX = '[NAIK_KELAS]'

STAGE_REASSIGN = 'pindah_kelas'
STAGE_HISTORY = 'riwayat_kelas'
STAGE_NOTIFY = 'notifikasi_naik_kelas'
STAGE_BILLS = 'pindah_tagihan'
STAGE_BILL_NOTIFY = 'notifikasi_tagihan'

# SQLSTATE Postgres: statement timeout, lock timeout, idle-in-transaction timeout
TIMEOUT_SQLSTATES = {'57014', '55P03', '25P03'}
TIMEOUT_MARKERS = ('timeout', 'timed out', 'database is locked')

TIMEOUT_SUGGESTION = "Coba kurangi jumlah santri yang dipilih atau coba lagi dalam beberapa saat."

YEAR_SUFFIX = re.compile(r"/TA\d+$")


class NoActiveAcademicYear(PromotionError):
    status_code = 400

    def __init__(self):
        super().__init__("Tidak ada tahun ajaran aktif")


class PromotionPipelineError(PromotionError):
    """Pipeline berhenti di tengah jalan. `compensated` = rollback pindah kelas berhasil."""

    def __init__(self, stage, cause, compensated):
        super().__init__(f"Proses kenaikan kelas gagal pada tahap {stage}: {cause}")
        self.stage = stage
        self.cause = cause
        self.compensated = compensated

    @property
    def is_timeout(self):
        return is_store_timeout(self.cause)

    @property
    def status_code(self):
        return 408 if self.is_timeout else 500


def is_store_timeout(exc):
    if isinstance(exc, PromotionPipelineError):
        exc = exc.cause
    if isinstance(exc, sa_exc.TimeoutError):
        # QueuePool limit ... connection timed out
        return True
    if isinstance(exc, sa_exc.DBAPIError):
        orig = exc.orig
        code = getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)
        if code in TIMEOUT_SQLSTATES:
            return True
        text = str(orig or exc).lower()
        return any(marker in text for marker in TIMEOUT_MARKERS)
    return False


@dataclass
class CandidateFilter:
    class_id: Optional[int] = None


@dataclass
class PromotionResult:
    promoted_count: int
    source_class: Optional[str]
    destination_class: Optional[str]
    destination_academic_year: Optional[str]
    destination_academic_year_active: Optional[bool]
    bills_migrated: int
    verified_count: int

    def to_dict(self):
        return {
            'message': 'Proses kenaikan kelas berhasil',
            'promotedCount': self.promoted_count,
            'sourceClass': self.source_class,
            'destinationClass': self.destination_class,
            'destinationAcademicYear': self.destination_academic_year,
            'destinationAcademicYearActive': self.destination_academic_year_active,
            'billsMigrated': self.bills_migrated,
            'verifiedCount': self.verified_count,
        }


def migrated_invoice_number(number, year_id):
    """Ganti sufiks /TA<id> lama (jika ada) dengan tahun ajaran tujuan, tidak ditumpuk."""
    if not number:
        return None
    base = YEAR_SUFFIX.sub('', number)
    return f"{base}/TA{year_id}" if year_id is not None else base


def _unique(ids):
    seen = []
    for value in ids or []:
        if value not in seen:
            seen.append(value)
    return seen


class PromotionService:
    def __init__(self, batch_size=None, batch_delay=None, sleep=None):
        config = current_app.config
        self.batch_size = max(1, int(batch_size or config.get('PROMOTION_BATCH_SIZE', 5)))
        if batch_delay is None:
            batch_delay = config.get('PROMOTION_BATCH_DELAY_MS', 100) / 1000.0
        self.batch_delay = batch_delay
        self.sleep = sleep or time.sleep
        self.logger = current_app.logger

    # ------------------------------------------------------------------
    # Query (read-only)
    # ------------------------------------------------------------------
    def list_candidates(self, filters=None, with_balance=False):
        filters = filters or CandidateFilter()
        query = Student.query.options(
            joinedload(Student.current_class).joinedload(ClassRoom.academic_year),
            selectinload(Student.class_history)
            .joinedload(StudentClassHistory.new_class)
            .joinedload(ClassRoom.academic_year),
        )
        if filters.class_id is not None:
            query = query.filter(Student.current_class_id == filters.class_id)

        students = query.order_by(Student.full_name.asc(), Student.id.asc()).all()
        if not with_balance:
            return [serialize_candidate(s) for s in students]

        balances = self.outstanding_balances([s.id for s in students])
        return [serialize_candidate(s, balance=balances.get(s.id, 0.0)) for s in students]

    @staticmethod
    def outstanding_balances(student_ids) -> Dict[int, float]:
        """Total nominal tagihan berstatus selain paid, per santri."""
        if not student_ids:
            return {}
        rows = db.session.query(Invoice.student_id, func.sum(Invoice.total_amount)).filter(
            Invoice.student_id.in_(student_ids),
            Invoice.status != PaymentStatus.PAID,
        ).group_by(Invoice.student_id).all()
        return {student_id: float(total or 0) for student_id, total in rows}

    def destination_options(self, source_class_id, student_ids):
        classes = ClassRoom.query.options(joinedload(ClassRoom.academic_year)) \
            .order_by(ClassRoom.grade_level.asc(), ClassRoom.name.asc()).all()
        student_ids = _unique(student_ids)
        students = self._load_cohort(student_ids) if student_ids else {}
        return filter_destination_classes(classes, source_class_id, student_ids, students)

    @staticmethod
    def list_history(student_id=None, class_id=None):
        query = StudentClassHistory.query.options(
            joinedload(StudentClassHistory.student),
            joinedload(StudentClassHistory.previous_class).joinedload(ClassRoom.academic_year),
            joinedload(StudentClassHistory.new_class).joinedload(ClassRoom.academic_year),
        )
        if student_id is not None:
            query = query.filter(StudentClassHistory.student_id == student_id)
        if class_id is not None:
            query = query.filter(or_(
                StudentClassHistory.previous_class_id == class_id,
                StudentClassHistory.new_class_id == class_id,
            ))
        return query.order_by(StudentClassHistory.promoted_at.desc(), StudentClassHistory.id.desc()).all()

    # ------------------------------------------------------------------
    # Naik kelas
    # ------------------------------------------------------------------
    def promote(self, student_ids, source_class_id, destination_class_id) -> PromotionResult:
        student_ids = _unique(student_ids)
        students = self._load_cohort(student_ids) if student_ids else {}

        validate_promotion(source_class_id, destination_class_id, student_ids, students)
        source_class, destination_class = self._resolve_classes(source_class_id, destination_class_id)
        self._check_cohort(student_ids, students, source_class)

        if AcademicYear.get_active() is None:
            raise NoActiveAcademicYear()

        target_year = destination_class.academic_year
        target_year_id = target_year.id if target_year else None
        target_year_name = target_year.name if target_year else None
        target_year_active = bool(target_year.is_active) if target_year else None

        accounts = {sid: students[sid].user_id for sid in student_ids}
        names = {sid: students[sid].full_name for sid in student_ids}
        promoted_text = promotion_message(source_class, destination_class)
        moved_bills_text = bill_migration_message(destination_class, target_year)
        source_name, destination_name = source_class.name, destination_class.name

        self.logger.info(
            '%s Memulai update %d santri dari kelas %s ke kelas %s...',
            LOG_PREFIX, len(student_ids), source_class_id, destination_class_id,
        )

        stage = STAGE_REASSIGN
        try:
            self._reassign(student_ids, destination_class_id)
            verified = self._verify_reassignment(student_ids, destination_class_id, names)

            stage = STAGE_HISTORY
            self._record_history(student_ids, source_class_id, destination_class_id)

            stage = STAGE_NOTIFY
            self._notify(student_ids, accounts, 'Kenaikan Kelas', promoted_text,
                         NotificationType.NAIK_KELAS, 'Notifikasi')

            stage = STAGE_BILLS
            migrated = self._migrate_bills(student_ids, target_year_id, target_year_name, target_year_active)

            if migrated:
                stage = STAGE_BILL_NOTIFY
                affected = [sid for sid in student_ids if migrated.get(sid)]
                self._notify(affected, accounts, 'Tagihan Dipindah', moved_bills_text,
                             NotificationType.TAGIHAN_DIPINDAH, 'Notifikasi tagihan')
            else:
                self.logger.info('%s Tidak ada tagihan yang perlu dipindah', LOG_PREFIX)
        except Exception as exc:
            db.session.rollback()
            self.logger.exception('%s Operasi gagal pada tahap %s', LOG_PREFIX, stage)
            compensated = self._compensate(student_ids, source_class_id)
            self.logger.error(
                '%s Dibatalkan pada tahap %s; rollback pindah kelas %s',
                LOG_PREFIX, stage, 'berhasil' if compensated else 'GAGAL',
            )
            raise PromotionPipelineError(stage, exc, compensated) from exc

        self.logger.info('%s Semua operasi berhasil!', LOG_PREFIX)
        return PromotionResult(
            promoted_count=len(student_ids),
            source_class=source_name,
            destination_class=destination_name,
            destination_academic_year=target_year_name,
            destination_academic_year_active=target_year_active,
            bills_migrated=sum(migrated.values()),
            verified_count=verified,
        )

    # ------------------------------------------------------------------
    # Prasyarat
    # ------------------------------------------------------------------
    @staticmethod
    def _load_cohort(student_ids) -> Dict[int, Student]:
        students = Student.query.options(selectinload(Student.class_history)) \
            .filter(Student.id.in_(student_ids)).all()
        return {s.id: s for s in students}

    @staticmethod
    def _resolve_classes(source_class_id, destination_class_id):
        found = {
            c.id: c for c in ClassRoom.query.options(joinedload(ClassRoom.academic_year))
            .filter(ClassRoom.id.in_([source_class_id, destination_class_id])).all()
        }
        if source_class_id not in found:
            raise PromotionValidationError("Kelas lama tidak ditemukan")
        if destination_class_id not in found:
            raise PromotionValidationError("Kelas baru tidak ditemukan")
        return found[source_class_id], found[destination_class_id]

    @staticmethod
    def _check_cohort(student_ids, students, source_class):
        missing = [sid for sid in student_ids if sid not in students]
        if missing:
            raise PromotionValidationError(
                f"Santri tidak ditemukan: {', '.join(str(sid) for sid in missing)}",
                students=[{'id': sid, 'name': None} for sid in missing],
            )

        outside = [students[sid] for sid in student_ids if students[sid].current_class_id != source_class.id]
        if outside:
            raise PromotionValidationError(
                f"Santri berikut tidak berada di kelas {source_class.name}: "
                f"{', '.join(s.full_name for s in outside)}",
                students=[{'id': s.id, 'name': s.full_name} for s in outside],
            )

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------
    def _run_in_batches(self, items, handler, label):
        """Jalankan handler per batch; commit tiap batch, jeda di antara batch."""
        items = list(items)
        total = math.ceil(len(items) / self.batch_size)
        outcomes = []
        for index, start in enumerate(range(0, len(items), self.batch_size), start=1):
            batch = items[start:start + self.batch_size]
            self.logger.info('%s %s batch %d/%d (%d data)', LOG_PREFIX, label, index, total, len(batch))
            outcomes.append(handler(batch))
            db.session.commit()

            if index < total:
                self.sleep(self.batch_delay)
        return outcomes

    # ------------------------------------------------------------------
    # Tahap
    # ------------------------------------------------------------------
    def _reassign(self, student_ids, class_id, label='Pindah kelas'):
        def handler(batch):
            return Student.query.filter(Student.id.in_(batch)).update(
                {Student.current_class_id: class_id}, synchronize_session=False
            )

        updated = sum(self._run_in_batches(student_ids, handler, label))
        self.logger.info('%s %s: %d santri diupdate ke kelas %s', LOG_PREFIX, label, updated, class_id)
        return updated

    def _verify_reassignment(self, student_ids, class_id, names):
        rows = db.session.query(Student.id, Student.current_class_id) \
            .filter(Student.id.in_(student_ids)).all()
        moved = [row for row in rows if row.current_class_id == class_id]
        self.logger.info(
            '%s Hasil verifikasi: %d/%d santri berhasil pindah ke kelas %s',
            LOG_PREFIX, len(moved), len(student_ids), class_id,
        )
        for row in rows:
            if row.current_class_id != class_id:
                self.logger.warning(
                    '%s Peringatan: %s (ID: %s) masih di kelas %s',
                    LOG_PREFIX, names.get(row.id), row.id, row.current_class_id,
                )
        return len(moved)

    def _record_history(self, student_ids, source_class_id, destination_class_id):
        promoted_at = datetime.utcnow()

        def handler(batch):
            db.session.add_all([
                StudentClassHistory(
                    student_id=sid,
                    previous_class_id=source_class_id,
                    new_class_id=destination_class_id,
                    promoted_at=promoted_at,
                )
                for sid in batch
            ])
            return len(batch)

        created = sum(self._run_in_batches(student_ids, handler, 'Riwayat'))
        self.logger.info('%s Semua %d riwayat kelas berhasil dibuat', LOG_PREFIX, created)
        return created

    def _notify(self, student_ids, accounts, title, message, type, label):
        def handler(batch):
            sent = 0
            for sid in batch:
                user_id = accounts.get(sid)
                if user_id is None:
                    continue
                create_notification(user_id, title, message, type)
                sent += 1
            return sent

        sent = sum(self._run_in_batches(student_ids, handler, label))
        self.logger.info('%s Total %d %s berhasil dibuat', LOG_PREFIX, sent, label.lower())
        return sent

    def _migrate_bills(self, student_ids, year_id, year_name, year_active) -> Dict[int, int]:
        bills = Invoice.query.filter(
            Invoice.student_id.in_(student_ids),
            Invoice.status != PaymentStatus.PAID,
        ).order_by(Invoice.id.asc()).all()

        self.logger.info('%s Ditemukan %d tagihan yang akan dipindah', LOG_PREFIX, len(bills))
        if not bills:
            return {}

        self.logger.info(
            '%s Tagihan akan dipindah ke tahun ajaran: %s (ID: %s) - Status: %s',
            LOG_PREFIX, year_name or 'Tidak ada tahun ajaran', year_id,
            'AKTIF' if year_active else 'TIDAK AKTIF',
        )

        # Snapshot sebelum commit pertama meng-expire objek
        snapshot = [
            {
                'id': bill.id,
                'invoice_number': bill.invoice_number,
                'student_id': bill.student_id,
                'fee_type_id': bill.fee_type_id,
                'total_amount': bill.total_amount,
                'paid_amount': bill.paid_amount,
                'status': bill.status,
                'due_date': bill.due_date,
                'description': bill.description,
                'created_at': bill.created_at,
            }
            for bill in bills
        ]
        note = f"Dipindah dari kelas lama ke {year_name or 'tahun ajaran baru'}"

        def handler(batch):
            for old in batch:
                number = migrated_invoice_number(old['invoice_number'], year_id)
                if number is not None and number == old['invoice_number']:
                    # Nomor sama (tahun ajaran tidak berubah): lepas dari baris lama yang akan dihapus
                    Invoice.query.filter(Invoice.id == old['id']).update(
                        {Invoice.invoice_number: None}, synchronize_session=False
                    )

                replacement = Invoice(
                    invoice_number=number,
                    student_id=old['student_id'],
                    fee_type_id=old['fee_type_id'],
                    total_amount=old['total_amount'],
                    paid_amount=old['paid_amount'],
                    status=old['status'],
                    due_date=old['due_date'],
                    description=f"{old['description']} ({note})" if old['description'] else note,
                    academic_year_id=year_id,
                    created_at=old['created_at'],
                )
                db.session.add(replacement)
                db.session.flush()

                # Transaksi & notifikasi ikut tagihan penggantinya
                Transaction.query.filter(Transaction.invoice_id == old['id']).update(
                    {Transaction.invoice_id: replacement.id}, synchronize_session=False
                )
                Notification.query.filter(Notification.invoice_id == old['id']).update(
                    {Notification.invoice_id: replacement.id}, synchronize_session=False
                )
            return len(batch)

        created = sum(self._run_in_batches(snapshot, handler, 'Tagihan baru'))
        self.logger.info('%s %d tagihan baru berhasil dibuat di kelas baru', LOG_PREFIX, created)

        deleted = Invoice.query.filter(Invoice.id.in_([old['id'] for old in snapshot])) \
            .delete(synchronize_session=False)
        db.session.commit()
        self.logger.info('%s %d tagihan lama berhasil dihapus', LOG_PREFIX, deleted)

        migrated = {}
        for old in snapshot:
            migrated[old['student_id']] = migrated.get(old['student_id'], 0) + 1
        return migrated

    # ------------------------------------------------------------------
    # Kompensasi
    # ------------------------------------------------------------------
    def _compensate(self, student_ids, source_class_id) -> bool:
        self.logger.warning('%s Mencoba rollback update santri dalam batch kecil...', LOG_PREFIX)
        try:
            self._reassign(student_ids, source_class_id, label='Rollback')
        except Exception:
            db.session.rollback()
            self.logger.exception('%s Rollback gagal - data mungkin tidak konsisten', LOG_PREFIX)
            return False
        self.logger.info('%s Rollback semua santri berhasil', LOG_PREFIX)
        return True

