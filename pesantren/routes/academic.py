from flask import Blueprint, jsonify
from pesantren.extensions import db
from pesantren.models import AcademicYear
from pesantren.decorators import admin_required
from pesantren.utils.serializers import serialize_academic_year

academic_bp = Blueprint('academic', __name__)


@academic_bp.route('/tahun-ajaran', methods=['GET'])
@admin_required
def list_academic_years():
    years = AcademicYear.query.order_by(AcademicYear.id.desc()).all()
    return jsonify([serialize_academic_year(year) for year in years])


@academic_bp.route('/tahun-ajaran/<int:id>/aktifkan', methods=['POST'])
@admin_required
def activate_academic_year(id):
    year = db.get_or_404(AcademicYear, id)
    year.activate()
    return jsonify({
        "message": f"Tahun Ajaran {year.name} - {year.semester} sekarang AKTIF.",
        "tahunAjaran": serialize_academic_year(year),
    })
