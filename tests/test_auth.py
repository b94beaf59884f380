"""
Testes de autenticação, sessão e proteção CSRF
"""
import pytest
from tests.conftest import (
    login_user, logout_user, csrf_headers, ADMIN_EMAIL, ADMIN_PASSWORD, OPERATOR_EMAIL, OPERATOR_PASSWORD,
)


@pytest.mark.api
class TestLogin:

    def test_login_admin_returns_user_and_csrf_token(self, client):
        resp = login_user(client, ADMIN_EMAIL, ADMIN_PASSWORD)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['message'] == 'Login realizado com sucesso'
        assert data['user']['role'] == 'ADMIN'
        assert data['csrf_token']
        assert 'password_hash' not in data['user']

    def test_login_is_case_insensitive_on_email(self, client):
        resp = login_user(client, 'ADMIN@Local', ADMIN_PASSWORD)
        assert resp.status_code == 200

    def test_login_invalid_password(self, client):
        resp = login_user(client, ADMIN_EMAIL, 'errada')
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'Credenciais inválidas'

    def test_login_requires_email_and_password(self, client):
        resp = client.post('/auth/login', json={'email': ADMIN_EMAIL})
        assert resp.status_code == 400

    def test_login_rate_limit_after_failures(self, client):
        for _ in range(5):
            assert login_user(client, ADMIN_EMAIL, 'errada').status_code == 401
        resp = login_user(client, ADMIN_EMAIL, ADMIN_PASSWORD)
        assert resp.status_code == 429

    def test_me_requires_login(self, client):
        resp = client.get('/auth/me')
        assert resp.status_code == 401

    def test_me_and_check_session(self, operator_client):
        resp = operator_client.get('/auth/me')
        assert resp.status_code == 200
        assert resp.get_json()['user']['email'] == OPERATOR_EMAIL

        resp = operator_client.get('/auth/check-session')
        assert resp.get_json()['authenticated'] is True

    def test_logout_ends_session(self, admin_client):
        resp = logout_user(admin_client)
        assert resp.status_code == 200
        assert admin_client.get('/auth/me').status_code == 401
        assert admin_client.get('/auth/check-session').get_json()['authenticated'] is False

    def test_change_password(self, client):
        login_user(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)
        resp = client.post('/auth/change-password', json={
            'current_password': OPERATOR_PASSWORD, 'new_password': 'nova-senha', 'confirm_password': 'nova-senha',
        })
        assert resp.status_code == 200
        logout_user(client)

        assert login_user(client, OPERATOR_EMAIL, OPERATOR_PASSWORD).status_code == 401
        assert login_user(client, OPERATOR_EMAIL, 'nova-senha').status_code == 200

    def test_change_password_rejects_short_password(self, operator_client):
        resp = operator_client.post('/auth/change-password', json={
            'current_password': OPERATOR_PASSWORD, 'new_password': '123', 'confirm_password': '123',
        })
        assert resp.status_code == 400

    def test_register_is_admin_only(self, operator_client, admin_client):
        payload = {'nome': 'Novo Operador', 'email': 'novo@local', 'password': 'segredo1'}
        assert operator_client.post('/auth/register', json=payload).status_code == 403
        resp = admin_client.post('/auth/register', json=payload)
        assert resp.status_code == 201
        assert resp.get_json()['user']['role'] == 'OPERATOR'


@pytest.mark.api
class TestCsrf:

    def test_mutating_api_without_login_is_unauthorized(self, client):
        resp = client.post('/api/tipos-semente', json={'nome': 'Soja'})
        assert resp.status_code == 401

    def test_mutating_api_without_token_is_rejected(self, admin_client):
        resp = admin_client.post('/api/tipos-semente', json={'nome': 'Soja'})
        assert resp.status_code == 403
        assert 'CSRF' in resp.get_json()['error']

    def test_invalid_token_is_rejected(self, admin_client):
        resp = admin_client.post('/api/tipos-semente', json={'nome': 'Soja'},
                                 headers={'X-CSRF-Token': 'token-errado'})
        assert resp.status_code == 403

    def test_valid_token_is_accepted(self, admin_client):
        resp = admin_client.post('/api/tipos-semente', json={'nome': 'Soja'}, headers=csrf_headers(admin_client))
        assert resp.status_code == 201

    def test_refresh_renews_token(self, admin_client):
        antigo = csrf_headers(admin_client)
        resp = admin_client.post('/auth/refresh')
        novo = resp.get_json()['csrf_token']
        assert novo != antigo['X-CSRF-Token']
        resp = admin_client.post('/api/tipos-semente', json={'nome': 'Trigo'}, headers=antigo)
        assert resp.status_code == 403

    def test_operator_cannot_create_chamber(self, operator_client):
        resp = operator_client.post('/api/camaras', json={
            'nome': 'Proibida', 'dimensoes': {'quadras': 1, 'lados': 1, 'filas': 1, 'andares': 1},
        }, headers=csrf_headers(operator_client))
        assert resp.status_code == 403

    def test_api_reads_require_login(self, client):
        assert client.get('/api/produtos').status_code == 401


@pytest.mark.api
def test_index_and_health(client):
    resp = client.get('/', headers={'X-Request-ID': 'req-123'})
    assert resp.status_code == 200
    assert resp.headers['X-Request-ID'] == 'req-123'
    assert resp.headers['X-Content-Type-Options'] == 'nosniff'
    assert resp.get_json()['mongo_available'] is True

    resp = client.get('/health/mongo')
    assert resp.status_code == 200
    assert resp.get_json()['mongo_ok'] is True


@pytest.mark.api
def test_unknown_api_route_returns_json_404(admin_client):
    resp = admin_client.get('/api/nao-existe')
    assert resp.status_code == 404
    assert resp.get_json()['code'] == 404
