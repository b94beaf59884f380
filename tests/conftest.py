import os
import sys
import pytest

# Testes nunca tentam conectar em um MongoDB real
os.environ['USE_MONGOMOCK'] = 'true'

# Ensure project root is on sys.path for imports when running via pytest
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import create_app
from config import TestingConfig

ADMIN_EMAIL = 'admin@local'
ADMIN_PASSWORD = 'admin'
OPERATOR_EMAIL = 'operador@local'
OPERATOR_PASSWORD = 'operador123'


def login_user(client, email, password):
    """Faz login e retorna a resposta"""
    return client.post('/auth/login', json={'email': email, 'password': password})


def logout_user(client):
    return client.post('/auth/logout')


def csrf_headers(client):
    """Cabeçalhos JSON com o token CSRF da sessão do cliente"""
    with client.session_transaction() as sess:
        token = sess.get('csrf_token')
    if not token:
        token = client.get('/auth/csrf-token').get_json()['csrf_token']
    return {
        'Accept': 'application/json',
        'Content-Type': 'application/json',
        'X-CSRF-Token': token,
    }


@pytest.fixture
def app():
    from blueprints import auth as auth_bp_module
    auth_bp_module.LOGIN_ATTEMPTS.clear()
    app = create_app(TestingConfig)
    app.config.update({
        'TESTING': True,
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    resp = login_user(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert resp.status_code == 200
    return client


@pytest.fixture
def operator_client(app):
    client = app.test_client()
    resp = login_user(client, OPERATOR_EMAIL, OPERATOR_PASSWORD)
    assert resp.status_code == 200
    return client


@pytest.fixture
def cenario(admin_client):
    """Câmara com 4 posições de 1000 kg, um tipo de semente e um cliente"""
    headers = csrf_headers(admin_client)
    resp = admin_client.post('/api/camaras', json={
        'nome': 'Câmara Teste',
        'dimensoes': {'quadras': 1, 'lados': 1, 'filas': 2, 'andares': 2},
        'gerar_localizacoes': True,
        'capacidade_padrao_kg': 1000,
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    camara = resp.get_json()

    resp = admin_client.post('/api/tipos-semente', json={
        'nome': 'Milho', 'temperatura_ideal': 15, 'umidade_ideal': 55, 'tempo_max_armazenamento_dias': 365,
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    tipo = resp.get_json()

    resp = admin_client.post('/api/clientes', json={
        'nome': 'Fazenda Boa Vista', 'documento': '11.222.333/0001-81', 'email': 'contato@boavista.example',
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    cliente = resp.get_json()

    resp = admin_client.get(f"/api/localizacoes?camara_id={camara['id']}&per_page=10")
    locais = {loc['codigo']: loc for loc in resp.get_json()['items']}
    return {
        'camara': camara,
        'tipo': tipo,
        'cliente': cliente,
        'locais': locais,
    }


def produto_payload(cenario, **extra):
    payload = {
        'nome': 'Milho Híbrido',
        'lote': 'L2024-001',
        'tipo_semente_id': cenario['tipo']['id'],
        'cliente_id': cenario['cliente']['id'],
        'quantidade': 10,
        'peso_unitario': 20,
    }
    payload.update(extra)
    return payload
