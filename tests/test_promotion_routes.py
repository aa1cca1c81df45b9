import pytest
from sqlalchemy import exc as sa_exc

from pesantren.extensions import db
from pesantren.models import PaymentStatus, Student, StudentClassHistory, UserRole
from pesantren.services.promotion_service import PromotionService


class PgError(Exception):
    pgcode = '57014'


def promotion_body(student_ids, source, destination):
    return {'studentIds': student_ids, 'sourceClassId': source.id, 'destinationClassId': destination.id}


def test_candidates_require_login(client, school):
    response = client.get('/promotion-candidates')
    assert response.status_code == 401
    assert response.get_json() == {'message': 'Unauthorized'}


def test_candidates_reject_non_admin(client, factory, school, login):
    santri = factory.student('Ahmad', school['kelas_7'], with_account=True)
    assert login(santri.nis, santri.nis).status_code == 200

    assert client.get('/promotion-candidates').status_code == 401
    assert client.post('/promotion', json={}).status_code == 401


def test_candidates_with_balance(admin_client, factory, school):
    ahmad = factory.student('Ahmad', school['kelas_7'])
    factory.student('Citra', school['kelas_8'])
    factory.invoice(ahmad, 100000)
    factory.invoice(ahmad, 50000, status=PaymentStatus.PENDING)

    response = admin_client.get(f"/promotion-candidates?classId={school['kelas_7'].id}&withBalance=true")

    assert response.status_code == 200
    data = response.get_json()
    assert [row['name'] for row in data] == ['Ahmad']
    assert data[0]['totalTagihan'] == 150000
    assert data[0]['tagihanBelumLunas'] == 150000


def test_destinations_exclude_source_and_lower_levels(admin_client, factory, school):
    ahmad = factory.student('Ahmad', school['kelas_7'])

    response = admin_client.get(
        f"/promotion-destinations?sourceClassId={school['kelas_7'].id}&studentIds={ahmad.id}"
    )

    assert response.status_code == 200
    assert sorted(row['name'] for row in response.get_json()) == ['VIII-A', 'VIII-B']


def test_destinations_without_selection_list_every_class(admin_client, school):
    response = admin_client.get(f"/promotion-destinations?sourceClassId={school['kelas_7'].id}")
    assert len(response.get_json()) == 4


def test_promotion_form_errors(admin_client, school):
    response = admin_client.post('/promotion', json={'studentIds': [], 'sourceClassId': school['kelas_7'].id})

    assert response.status_code == 400
    body = response.get_json()
    assert body['message'] == 'Validasi gagal'
    assert 'student_ids' in body['errors']
    assert 'destination_class_id' in body['errors']


def test_promotion_rejects_non_object_body(admin_client):
    response = admin_client.post('/promotion', json=[1, 2, 3])
    assert response.status_code == 400


@pytest.mark.parametrize('override, field', [
    ({'sourceClassId': None}, 'source_class_id'),
    ({'destinationClassId': None}, 'destination_class_id'),
    ({'sourceClassId': {'id': 1}}, 'source_class_id'),
    ({'sourceClassId': 1.5}, 'source_class_id'),
    ({'destinationClassId': True}, 'destination_class_id'),
    ({'sourceClassId': 'tujuh'}, 'source_class_id'),
    ({'studentIds': None}, 'student_ids'),
    ({'studentIds': [None]}, 'student_ids'),
    ({'studentIds': [{'id': 1}]}, 'student_ids'),
    ({'studentIds': [1.5]}, 'student_ids'),
])
def test_promotion_malformed_field_types_are_validation_errors(admin_client, factory, school, override, field):
    ahmad = factory.student('Ahmad', school['kelas_7'])
    ahmad_id, source_id = ahmad.id, school['kelas_7'].id
    body = promotion_body([ahmad_id], school['kelas_7'], school['kelas_8'])
    body.update(override)

    response = admin_client.post('/promotion', json=body)

    assert response.status_code == 400
    payload = response.get_json()
    assert payload['message'] == 'Validasi gagal'
    assert field in payload['errors']
    assert db.session.get(Student, ahmad_id).current_class_id == source_id
    assert StudentClassHistory.query.count() == 0


def test_promotion_accepts_numeric_strings(admin_client, factory, school):
    ahmad = factory.student('Ahmad', school['kelas_7'])
    body = {
        'studentIds': [str(ahmad.id)],
        'sourceClassId': str(school['kelas_7'].id),
        'destinationClassId': str(school['kelas_8'].id),
    }

    response = admin_client.post('/promotion', json=body)

    assert response.status_code == 200
    assert response.get_json()['promotedCount'] == 1


def test_promotion_same_class_is_rejected(admin_client, factory, school):
    ahmad = factory.student('Ahmad', school['kelas_7'])

    response = admin_client.post('/promotion', json=promotion_body([ahmad.id], school['kelas_7'], school['kelas_7']))

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Kelas lama dan kelas baru harus berbeda'


def test_promotion_success_then_repeat_is_rejected(admin_client, factory, school):
    ahmad = factory.student('Ahmad', school['kelas_7'], with_account=True)
    budi = factory.student('Budi', school['kelas_7'])
    factory.invoice(ahmad, 100000)
    body = promotion_body([ahmad.id, budi.id], school['kelas_7'], school['kelas_8'])

    response = admin_client.post('/promotion', json=body)

    assert response.status_code == 200
    result = response.get_json()
    assert result['promotedCount'] == 2
    assert result['billsMigrated'] == 1
    assert result['destinationClass'] == 'VIII-A'
    assert result['destinationAcademicYearActive'] is True

    repeat = admin_client.post('/promotion', json=body)
    assert repeat.status_code == 400
    assert {s['name'] for s in repeat.get_json()['students']} == {'Ahmad', 'Budi'}

    history = admin_client.get(f"/promotion-history?studentId={ahmad.id}").get_json()
    assert len(history) == 1
    assert history[0]['kelasBaruId'] == school['kelas_8'].id
    assert history[0]['kelasLama']['name'] == 'VII-A'


def test_promotion_timeout_returns_408(admin_client, factory, school, monkeypatch):
    ahmad = factory.student('Ahmad', school['kelas_7'])

    def slow_history(self, *args, **kwargs):
        raise sa_exc.OperationalError(
            'INSERT INTO student_class_history', {}, PgError('canceling statement due to statement timeout')
        )

    monkeypatch.setattr(PromotionService, '_record_history', slow_history)

    response = admin_client.post('/promotion', json=promotion_body([ahmad.id], school['kelas_7'], school['kelas_8']))

    assert response.status_code == 408
    body = response.get_json()
    assert body['stage'] == 'riwayat_kelas'
    assert body['rollbackSucceeded'] is True
    assert 'suggestion' in body
    assert 'warning' not in body


def test_promotion_unexpected_error_returns_500(admin_client, factory, school, monkeypatch):
    ahmad = factory.student('Ahmad', school['kelas_7'])

    def broken_bills(self, *args, **kwargs):
        raise RuntimeError('tagihan rusak')

    monkeypatch.setattr(PromotionService, '_migrate_bills', broken_bills)

    response = admin_client.post('/promotion', json=promotion_body([ahmad.id], school['kelas_7'], school['kelas_8']))

    assert response.status_code == 500
    body = response.get_json()
    assert body['stage'] == 'pindah_tagihan'
    assert body['errorDetails'] == 'tagihan rusak'
    assert 'suggestion' not in body

    # Kelas dikembalikan, riwayat dan notifikasi yang sudah tercatat tetap ada
    rows = admin_client.get(f"/promotion-candidates?classId={school['kelas_7'].id}").get_json()
    assert [row['name'] for row in rows] == ['Ahmad']
    assert len(rows[0]['riwayatKelas']) == 1


def test_promotion_without_active_year(admin_client, factory):
    year = factory.year('2024/2025')
    source = factory.classroom('VII-A', 7, year)
    destination = factory.classroom('VIII-A', 8, year)
    ahmad = factory.student('Ahmad', source)

    response = admin_client.post('/promotion', json=promotion_body([ahmad.id], source, destination))

    assert response.status_code == 400
    assert response.get_json()['message'] == 'Tidak ada tahun ajaran aktif'


def test_bearer_token_reaches_admin_endpoint(client, admin, school):
    token = client.post('/auth/token', json={'loginId': 'admin', 'password': 'admin123'}).get_json()['token']

    response = client.get('/promotion-candidates', headers={'Authorization': f"Bearer {token}"})

    assert response.status_code == 200
    assert response.get_json() == []


def test_staff_token_is_not_admin(client, factory):
    factory.user('tu01', password='tu123', role=UserRole.TU)
    token = client.post('/auth/token', json={'loginId': 'tu01', 'password': 'tu123'}).get_json()['token']

    response = client.get('/promotion-history', headers={'Authorization': f"Bearer {token}"})

    assert response.status_code == 401
