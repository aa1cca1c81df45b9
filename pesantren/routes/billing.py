from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from pesantren.decorators import role_required
from pesantren.extensions import db
from pesantren.models import Invoice, UserRole
from pesantren.services.payment_status import (
    check_invoice_status, refresh_student_invoices, student_for_user,
)

billing_bp = Blueprint('billing', __name__)


@billing_bp.route('/tagihan/santri/refresh', methods=['GET'])
@role_required(UserRole.SANTRI)
def refresh_invoices():
    """Santri mengecek ulang status pembayaran Midtrans untuk semua tagihannya."""
    student = student_for_user(current_user)
    if student is None:
        return jsonify({"message": "Data santri tidak ditemukan"}), 404

    summary = refresh_student_invoices(student)
    return jsonify({"message": "Refresh status tagihan selesai", "data": summary})


@billing_bp.route('/pembayaran/midtrans/status/<int:tagihan_id>', methods=['GET'])
@login_required
def midtrans_invoice_status(tagihan_id):
    invoice = db.session.get(Invoice, tagihan_id)
    if invoice is None:
        return jsonify({"message": "Tagihan tidak ditemukan"}), 404

    # Hanya pemilik tagihan
    if invoice.student is None or invoice.student.user_id != current_user.id:
        return jsonify({"message": "Anda tidak memiliki akses untuk tagihan ini"}), 403

    message, data = check_invoice_status(invoice)
    if data is None:
        return jsonify({"message": message}), 404
    return jsonify({"message": message, "data": data})
