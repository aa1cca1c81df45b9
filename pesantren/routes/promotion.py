from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from pesantren.decorators import admin_required
from pesantren.forms import PromotionForm
from pesantren.services.promotion_rules import PromotionValidationError
from pesantren.services.promotion_service import (
    CandidateFilter, NoActiveAcademicYear, PromotionPipelineError, PromotionService,
    TIMEOUT_SUGGESTION, is_store_timeout,
)
from pesantren.utils.serializers import serialize_class, serialize_history_entry

promotion_bp = Blueprint('promotion', __name__)


def _truthy(raw):
    return (raw or '').strip().lower() in ('1', 'true', 'yes', 'on')


def _timeout_response(exc):
    return jsonify({
        "message": "Transaksi database timeout. Silakan coba lagi atau hubungi administrator jika masalah berlanjut.",
        "suggestion": TIMEOUT_SUGGESTION,
        "errorDetails": str(exc),
    }), 408


# =========================================================
# 1. DAFTAR SANTRI YANG BISA NAIK KELAS
# =========================================================
@promotion_bp.route('/promotion-candidates', methods=['GET'])
@admin_required
def promotion_candidates():
    filters = CandidateFilter(class_id=request.args.get('classId', type=int))
    with_balance = _truthy(request.args.get('withBalance'))

    try:
        students = PromotionService().list_candidates(filters, with_balance=with_balance)
    except SQLAlchemyError as exc:
        current_app.logger.exception("[NAIK_KELAS_GET_ERROR]")
        if is_store_timeout(exc):
            return _timeout_response(exc)
        return jsonify({
            "message": "Terjadi kesalahan saat mengambil data santri",
            "errorDetails": str(exc),
        }), 500

    return jsonify(students), 200


# =========================================================
# 2. DAFTAR KELAS TUJUAN (dihitung ulang tiap pilihan berubah)
# =========================================================
@promotion_bp.route('/promotion-destinations', methods=['GET'])
@admin_required
def promotion_destinations():
    source_class_id = request.args.get('sourceClassId', type=int)
    student_ids = request.args.getlist('studentIds', type=int)

    classes = PromotionService().destination_options(source_class_id, student_ids)
    return jsonify([serialize_class(c) for c in classes]), 200


# =========================================================
# 3. PROSES NAIK KELAS
# =========================================================
@promotion_bp.route('/promotion', methods=['POST'])
@admin_required
def promote_students():
    if not isinstance(request.get_json(silent=True), dict):
        return jsonify({"message": "Validasi gagal", "errors": {"body": ["Body harus berupa objek JSON."]}}), 400

    form = PromotionForm()
    if not form.validate_on_submit():
        return jsonify({"message": "Validasi gagal", "errors": form.errors}), 400

    service = PromotionService()
    try:
        result = service.promote(
            student_ids=form.student_ids.data,
            source_class_id=form.source_class_id.data,
            destination_class_id=form.destination_class_id.data,
        )
    except PromotionValidationError as exc:
        return jsonify({"message": exc.message, "students": exc.students}), 400
    except NoActiveAcademicYear as exc:
        return jsonify({"message": exc.message}), 400
    except PromotionPipelineError as exc:
        payload = {
            "stage": exc.stage,
            "rollbackSucceeded": exc.compensated,
            "errorDetails": str(exc.cause),
        }
        if not exc.compensated:
            payload["warning"] = "Rollback gagal - data mungkin tidak konsisten, perlu rekonsiliasi manual."
        if exc.is_timeout:
            payload.update({
                "message": "Transaksi database timeout. Silakan coba lagi atau hubungi administrator jika masalah berlanjut.",
                "suggestion": TIMEOUT_SUGGESTION,
            })
        else:
            payload["message"] = "Terjadi kesalahan saat proses kenaikan kelas"
        return jsonify(payload), exc.status_code
    except SQLAlchemyError as exc:
        # Gagal sebelum mutasi (query validasi)
        current_app.logger.exception("[NAIK_KELAS_ERROR]")
        if is_store_timeout(exc):
            return _timeout_response(exc)
        return jsonify({
            "message": "Terjadi kesalahan saat proses kenaikan kelas",
            "errorDetails": str(exc),
        }), 500

    return jsonify(result.to_dict()), 200


# =========================================================
# 4. RIWAYAT NAIK KELAS
# =========================================================
@promotion_bp.route('/promotion-history', methods=['GET'])
@admin_required
def promotion_history():
    entries = PromotionService.list_history(
        student_id=request.args.get('studentId', type=int),
        class_id=request.args.get('classId', type=int),
    )
    return jsonify([serialize_history_entry(entry) for entry in entries]), 200
