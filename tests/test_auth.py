from pesantren.extensions import db
from pesantren.models import User, UserRole
from pesantren.utils.tokens import generate_auth_token, verify_auth_token


def test_login_with_username(client, admin, login):
    response = login('admin', 'admin123')

    assert response.status_code == 200
    body = response.get_json()
    assert body['user']['role'] == 'admin'
    assert body['user']['roleLabel'] == 'Admin'
    assert db.session.get(User, admin.id).last_login is not None


def test_login_with_email_then_me(client, admin, login):
    assert login('admin@pesantren.test', 'admin123').status_code == 200

    response = client.get('/auth/me')

    assert response.status_code == 200
    assert response.get_json()['username'] == 'admin'


def test_santri_login_with_nis(client, factory, school, login):
    santri = factory.student('Ahmad', school['kelas_7'], with_account=True)

    response = login(santri.nis, santri.nis)

    assert response.status_code == 200
    assert response.get_json()['user']['role'] == UserRole.SANTRI.value


def test_login_wrong_password(client, admin, login):
    response = login('admin', 'salah')

    assert response.status_code == 401
    assert 'Login gagal' in response.get_json()['message']


def test_login_missing_fields(client):
    response = client.post('/auth/login', json={'loginId': 'admin'})

    assert response.status_code == 400
    assert 'password' in response.get_json()['errors']


def test_me_requires_login(client):
    response = client.get('/auth/me')
    assert response.status_code == 401
    assert response.get_json() == {'message': 'Unauthorized'}


def test_token_roundtrip(app, admin):
    token = generate_auth_token(admin)

    assert verify_auth_token(token) == admin.id
    assert verify_auth_token(token + 'x') is None
    assert verify_auth_token('') is None


def test_expired_token_is_rejected(app, admin):
    token = generate_auth_token(admin)
    assert verify_auth_token(token, max_age=-1) is None


def test_bearer_token_for_me(client, admin):
    response = client.post('/auth/token', json={'loginId': 'admin', 'password': 'admin123'})
    assert response.status_code == 200
    body = response.get_json()
    assert body['tokenType'] == 'Bearer'

    me = client.get('/auth/me', headers={'Authorization': f"Bearer {body['token']}"})

    assert me.status_code == 200
    assert me.get_json()['id'] == admin.id


def test_forged_bearer_token(client, admin):
    response = client.get('/promotion-candidates', headers={'Authorization': 'Bearer bukan-token'})
    assert response.status_code == 401


def test_logout(client, admin, login):
    login('admin', 'admin123')

    response = client.post('/auth/logout')

    assert response.status_code == 200
    assert response.get_json()['message'] == 'Logout berhasil'
