# pesantren/services/payment_status.py
"""Sinkronisasi status pembayaran Midtrans (polling Status API)."""
from datetime import datetime

import requests
from flask import current_app
from sqlalchemy.orm import selectinload

from pesantren.extensions import db
from pesantren.models import (
    Invoice, NotificationType, PaymentStatus, Student, TransactionStatus,
)
from pesantren.services.notifications import create_notification, format_rupiah, notify_payment_admins

SETTLED = ('settlement', 'capture')
FAILED = ('deny', 'expire', 'cancel')


class MidtransError(Exception):
    pass


class MidtransClient:
    SANDBOX_URL = 'https://api.sandbox.midtrans.com'
    PRODUCTION_URL = 'https://api.midtrans.com'

    def __init__(self, server_key, is_production=False, timeout=10, session=None):
        self.server_key = server_key
        self.base_url = self.PRODUCTION_URL if is_production else self.SANDBOX_URL
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config=None):
        config = config or current_app.config
        return cls(
            server_key=config.get('MIDTRANS_SERVER_KEY', ''),
            is_production=config.get('MIDTRANS_IS_PRODUCTION', False),
            timeout=config.get('MIDTRANS_TIMEOUT', 10),
        )

    def transaction_status(self, order_id):
        try:
            response = self.session.get(
                f"{self.base_url}/v2/{order_id}/status",
                auth=(self.server_key, ''),
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise MidtransError(f"Gagal cek status Midtrans untuk order {order_id}: {exc}") from exc

        # Midtrans membalas HTTP 200 dengan status_code di body
        status_code = str(payload.get('status_code', ''))
        if status_code and not status_code.startswith(('2', '407')):
            raise MidtransError(payload.get('status_message') or f"Status Midtrans {status_code}")
        return payload


def resolve_statuses(transaction_status, current_transaction_status):
    """
    Petakan transaction_status Midtrans ke (status transaksi, status tagihan).
    Kembalikan None jika tidak ada perubahan.
    """
    if transaction_status in SETTLED:
        if current_transaction_status != TransactionStatus.APPROVED:
            return TransactionStatus.APPROVED, PaymentStatus.PAID
    elif transaction_status in FAILED:
        if current_transaction_status != TransactionStatus.REJECTED:
            return TransactionStatus.REJECTED, PaymentStatus.PENDING
    elif transaction_status == 'pending':
        if current_transaction_status != TransactionStatus.PENDING:
            return TransactionStatus.PENDING, PaymentStatus.PENDING
    return None


def latest_midtrans_transaction(invoice):
    for trx in invoice.transactions:
        if trx.method == 'midtrans':
            return trx
    return None


def refresh_student_invoices(student, client=None):
    """
    Cek ulang status Midtrans untuk setiap tagihan santri.
    Gagal cek satu tagihan hanya dicatat; tagihan lain tetap diproses.
    """
    client = client or MidtransClient.from_config()
    logger = current_app.logger

    invoices = Invoice.query.options(
        selectinload(Invoice.transactions), selectinload(Invoice.fee_type)
    ).filter(Invoice.student_id == student.id).order_by(Invoice.id.asc()).all()

    updated_count = 0
    results = []
    for invoice in invoices:
        trx = latest_midtrans_transaction(invoice)
        if trx is None:
            continue

        try:
            remote = client.transaction_status(trx.order_id)
        except MidtransError as exc:
            logger.error('[TAGIHAN_REFRESH_ERROR] tagihan=%s order=%s error=%s', invoice.id, trx.order_id, exc)
            results.append({
                'tagihanId': invoice.id,
                'error': 'Gagal cek status Midtrans',
                'orderId': trx.order_id,
            })
            continue

        remote_status = remote.get('transaction_status')
        change = resolve_statuses(remote_status, trx.status)
        if change is None:
            continue

        old_status = trx.status
        new_trx_status, new_invoice_status = change
        apply_status_change(invoice, trx, student, remote_status, change)

        updated_count += 1
        results.append({
            'tagihanId': invoice.id,
            'oldStatus': old_status.value,
            'newStatus': new_trx_status.value,
            'tagihanStatus': new_invoice_status.value,
        })

    return {
        'totalTagihan': len(invoices),
        'updatedCount': updated_count,
        'updateResults': results,
    }


def apply_status_change(invoice, trx, student, remote_status, change):
    """Simpan status baru transaksi & tagihan (plus notifikasi jika lunas) dalam satu commit."""
    new_trx_status, new_invoice_status = change
    try:
        trx.status = new_trx_status
        if new_trx_status == TransactionStatus.APPROVED:
            trx.payment_date = datetime.utcnow()
            invoice.paid_amount = invoice.total_amount
        trx.note = f"Status Midtrans: {remote_status}"
        invoice.status = new_invoice_status

        if new_trx_status == TransactionStatus.APPROVED:
            fee_name = invoice.fee_type.name if invoice.fee_type else '-'
            amount = format_rupiah(invoice.total_amount)
            if student.user_id:
                create_notification(
                    student.user_id,
                    'Pembayaran Berhasil',
                    f"Pembayaran Anda untuk {fee_name} sebesar {amount} "
                    f"telah berhasil diproses melalui Midtrans.",
                    NotificationType.PEMBAYARAN_DITERIMA,
                    invoice_id=invoice.id,
                )
            notify_payment_admins(
                'Pembayaran Midtrans Berhasil',
                f"Pembayaran dari {student.full_name} untuk {fee_name} sebesar {amount} "
                f"telah berhasil diproses melalui Midtrans.",
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def check_invoice_status(invoice, client=None):
    """
    Cek status Midtrans untuk satu tagihan (transaksi midtrans terbaru).
    Jika Midtrans gagal dihubungi, kembalikan status lokal dengan midtransStatus 'unknown'.
    Return (message, data); data None jika tagihan belum punya transaksi Midtrans.
    """
    trx = latest_midtrans_transaction(invoice)
    if trx is None:
        return "Tidak ada transaksi Midtrans untuk tagihan ini", None

    client = client or MidtransClient.from_config()
    try:
        remote = client.transaction_status(trx.order_id)
    except MidtransError as exc:
        current_app.logger.error('[MIDTRANS_STATUS_CHECK_ERROR] tagihan=%s order=%s error=%s',
                                 invoice.id, trx.order_id, exc)
        return "Gagal cek status Midtrans, menggunakan status lokal", _status_payload(invoice, trx, 'unknown')

    remote_status = remote.get('transaction_status')
    current_app.logger.info('[MIDTRANS_STATUS_CHECK] order=%s status=%s', trx.order_id, remote_status)

    change = resolve_statuses(remote_status, trx.status)
    if change is not None:
        apply_status_change(invoice, trx, invoice.student, remote_status, change)

    return "Status pembayaran berhasil dicek", _status_payload(invoice, trx, remote_status)


def _status_payload(invoice, trx, remote_status):
    return {
        'transactionId': trx.id,
        'orderId': trx.order_id,
        'localStatus': trx.status.value,
        'midtransStatus': remote_status,
        'tagihanStatus': invoice.status.value,
        'amount': trx.amount,
        'createdAt': trx.created_at.isoformat() if trx.created_at else None,
        'updatedAt': trx.updated_at.isoformat() if trx.updated_at else None,
    }


def student_for_user(user):
    return Student.query.filter_by(user_id=user.id).first()
