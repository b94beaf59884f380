"""
Testes para API de clientes, tipos de semente e usuários
"""
import pytest
from tests.conftest import csrf_headers, produto_payload, login_user, OPERATOR_EMAIL


@pytest.mark.api
class TestClientesAPI:

    def test_create_normalizes_document(self, cenario):
        cliente = cenario['cliente']
        assert cliente['documento'] == '11222333000181'
        assert cliente['tipo_documento'] == 'CNPJ'
        assert cliente['ativo'] is True

    def test_invalid_cpf(self, admin_client):
        resp = admin_client.post('/api/clientes', json={'nome': 'Produtor Rural', 'documento': '123.456.789-00'},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'CPF inválido'

    def test_validate_document_endpoint(self, operator_client):
        resp = operator_client.post('/api/clientes/validar-documento', json={'documento': '529.982.247-25'},
                                    headers=csrf_headers(operator_client))
        assert resp.get_json() == {'valido': True, 'documento': '52998224725', 'tipo_documento': 'CPF'}

    def test_duplicate_document_and_email(self, admin_client, cenario):
        headers = csrf_headers(admin_client)
        resp = admin_client.post('/api/clientes', json={'nome': 'Outra Fazenda', 'documento': '11222333000181'},
                                 headers=headers)
        assert resp.status_code == 409
        resp = admin_client.post('/api/clientes', json={'nome': 'Outra Fazenda', 'email': 'CONTATO@boavista.example'},
                                 headers=headers)
        assert resp.status_code == 409

    def test_search(self, operator_client, cenario):
        resp = operator_client.get('/api/clientes/busca?q=boa')
        assert resp.get_json()['total'] == 1
        resp = operator_client.get('/api/clientes/busca?q=11222')
        assert resp.get_json()['total'] == 1
        assert operator_client.get('/api/clientes/busca?q=b').status_code == 400

    def test_deactivate_with_active_products(self, admin_client, cenario):
        headers = csrf_headers(admin_client)
        admin_client.post('/api/produtos', json=produto_payload(cenario), headers=headers)
        cliente_id = cenario['cliente']['id']

        resp = admin_client.delete(f'/api/clientes/{cliente_id}', headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()['details']['produtos_ativos'] == 1

        resp = admin_client.delete(f'/api/clientes/{cliente_id}?force=true', headers=headers)
        assert resp.status_code == 200
        assert admin_client.get(f'/api/clientes/{cliente_id}').get_json()['ativo'] is False

        resp = admin_client.post(f'/api/clientes/{cliente_id}/ativar', headers=headers)
        assert resp.get_json()['ativo'] is True

    def test_inactive_client_rejects_new_products(self, admin_client, cenario):
        headers = csrf_headers(admin_client)
        cliente_id = cenario['cliente']['id']
        admin_client.delete(f'/api/clientes/{cliente_id}', headers=headers)
        resp = admin_client.post('/api/produtos', json=produto_payload(cenario), headers=headers)
        assert resp.status_code == 400
        assert 'Cliente está inativo' in resp.get_json()['details']['erros']

    def test_client_stats(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        admin_client.post('/api/produtos', json=produto_payload(cenario, localizacao_id=loc['id']),
                          headers=csrf_headers(admin_client))
        detalhe = admin_client.get(f"/api/clientes/{cenario['cliente']['id']}").get_json()
        assert detalhe['estatisticas']['peso_armazenado'] == 200
        stats = admin_client.get('/api/clientes/estatisticas').get_json()
        assert stats['por_tipo_documento'] == {'CNPJ': 1}
        assert stats['com_produtos_armazenados'] == 1


@pytest.mark.api
class TestTiposSementeAPI:

    def test_duplicate_name_is_case_insensitive(self, admin_client, cenario):
        resp = admin_client.post('/api/tipos-semente', json={'nome': 'MILHO'}, headers=csrf_headers(admin_client))
        assert resp.status_code == 409

    def test_out_of_range_humidity(self, admin_client):
        resp = admin_client.post('/api/tipos-semente', json={'nome': 'Soja', 'umidade_ideal': 120},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 400

    def test_find_by_conditions(self, operator_client, cenario):
        resp = operator_client.get('/api/tipos-semente/por-condicoes?temperatura=16&umidade=54')
        assert [t['nome'] for t in resp.get_json()['items']] == ['Milho']
        resp = operator_client.get('/api/tipos-semente/por-condicoes?temperatura=25')
        assert resp.get_json()['total'] == 0
        assert operator_client.get('/api/tipos-semente/por-condicoes').status_code == 400

    def test_delete_deactivates(self, admin_client, cenario):
        tipo_id = cenario['tipo']['id']
        resp = admin_client.delete(f'/api/tipos-semente/{tipo_id}', headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        assert admin_client.get(f'/api/tipos-semente/{tipo_id}').get_json()['ativo'] is False
        assert admin_client.get('/api/tipos-semente?ativo=true').get_json()['total'] == 0

        resp = admin_client.post('/api/produtos', json=produto_payload(cenario), headers=csrf_headers(admin_client))
        assert resp.status_code == 400


@pytest.mark.api
class TestUsuariosAPI:

    def test_list_users_as_admin(self, admin_client):
        resp = admin_client.get('/api/usuarios')
        assert resp.status_code == 200
        emails = [u['email'] for u in resp.get_json()['items']]
        assert 'admin@local' in emails
        assert 'operador@local' in emails

    def test_list_users_as_operator_is_denied(self, operator_client):
        assert operator_client.get('/api/usuarios').status_code == 403

    def test_create_update_and_deactivate(self, admin_client, client):
        headers = csrf_headers(admin_client)
        resp = admin_client.post('/api/usuarios', json={
            'nome': 'Maria Operadora', 'email': 'maria@local', 'password': 'segredo1',
        }, headers=headers)
        assert resp.status_code == 201
        usuario = resp.get_json()
        assert usuario['role'] == 'OPERATOR'

        resp = admin_client.put(f"/api/usuarios/{usuario['id']}", json={'role': 'admin'}, headers=headers)
        assert resp.get_json()['role'] == 'ADMIN'

        resp = admin_client.delete(f"/api/usuarios/{usuario['id']}", headers=headers)
        assert resp.status_code == 200
        assert login_user(client, 'maria@local', 'segredo1').status_code == 401

    def test_duplicate_email(self, admin_client):
        resp = admin_client.post('/api/usuarios', json={
            'nome': 'Outro', 'email': OPERATOR_EMAIL, 'password': 'segredo1',
        }, headers=csrf_headers(admin_client))
        assert resp.status_code == 409

    def test_admin_cannot_deactivate_self(self, admin_client):
        me = admin_client.get('/auth/me').get_json()['user']
        resp = admin_client.delete(f"/api/usuarios/{me['id']}", headers=csrf_headers(admin_client))
        assert resp.status_code == 400

    def test_reset_password(self, admin_client, client):
        operador = [u for u in admin_client.get('/api/usuarios').get_json()['items'] if u['email'] == OPERATOR_EMAIL][0]
        resp = admin_client.post(f"/api/usuarios/{operador['id']}/reset-password", json={'nova_senha': 'trocada1'},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        assert login_user(client, OPERATOR_EMAIL, 'trocada1').status_code == 200

    def test_productivity_only_for_self_or_admin(self, admin_client, operator_client):
        admin = admin_client.get('/auth/me').get_json()['user']
        operador = operator_client.get('/auth/me').get_json()['user']
        assert operator_client.get(f"/api/usuarios/{operador['id']}/produtividade").status_code == 200
        assert operator_client.get(f"/api/usuarios/{admin['id']}/produtividade").status_code == 403
        resp = admin_client.get(f"/api/usuarios/{operador['id']}/produtividade?dias=7")
        assert resp.get_json()['periodo_dias'] == 7
