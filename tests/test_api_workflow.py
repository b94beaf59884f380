"""
Fluxo de retirada (ADMIN solicita, OPERATOR confirma) e registro de movimentações
"""
import pytest
from tests.conftest import csrf_headers, produto_payload


@pytest.fixture
def produto_locado(admin_client, cenario):
    loc = cenario['locais']['Q1-L1-F1-A1']
    resp = admin_client.post('/api/produtos', json=produto_payload(cenario, localizacao_id=loc['id']),
                             headers=csrf_headers(admin_client))
    assert resp.status_code == 201
    return resp.get_json()


def _solicitar(client, produto_id, **extra):
    payload = {'produto_id': produto_id, 'motivo': 'Entrega ao cliente'}
    payload.update(extra)
    return client.post('/api/solicitacoes-retirada', json=payload, headers=csrf_headers(client))


@pytest.mark.api
class TestRetirada:

    def test_total_withdrawal_flow(self, admin_client, operator_client, produto_locado):
        resp = _solicitar(admin_client, produto_locado['id'])
        assert resp.status_code == 201
        solicitacao = resp.get_json()
        assert solicitacao['status'] == 'PENDENTE'
        assert solicitacao['tipo'] == 'TOTAL'

        produto = admin_client.get(f"/api/produtos/{produto_locado['id']}").get_json()
        assert produto['status'] == 'AGUARDANDO_RETIRADA'
        assert produto['solicitacao_pendente']['id'] == solicitacao['id']

        pendentes = operator_client.get('/api/solicitacoes-retirada/pendentes').get_json()
        assert pendentes['total'] == 1

        resp = operator_client.post(f"/api/solicitacoes-retirada/{solicitacao['id']}/confirmar",
                                    json={'observacoes': 'Carregado no caminhão'},
                                    headers=csrf_headers(operator_client))
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['solicitacao']['status'] == 'CONFIRMADO'
        assert data['produto']['status'] == 'RETIRADO'
        assert data['produto']['localizacao_id'] is None

        loc = admin_client.get(f"/api/localizacoes/{produto_locado['localizacao_id']}").get_json()
        assert loc['ocupada'] is False
        assert loc['peso_atual_kg'] == 0

        relatorio = admin_client.get('/api/solicitacoes-retirada/relatorio').get_json()
        assert relatorio['confirmadas'] == 1
        assert relatorio['peso_retirado_kg'] == 200

    def test_partial_withdrawal_returns_product_to_stored(self, admin_client, operator_client, produto_locado):
        solicitacao = _solicitar(admin_client, produto_locado['id'], tipo='PARCIAL', quantidade=4).get_json()
        assert solicitacao['quantidade_solicitada'] == 4

        resp = operator_client.post(f"/api/solicitacoes-retirada/{solicitacao['id']}/confirmar", json={},
                                    headers=csrf_headers(operator_client))
        assert resp.status_code == 200
        produto = resp.get_json()['produto']
        assert produto['status'] == 'LOCADO'
        assert produto['quantidade'] == 6
        assert produto['peso_total'] == 120

    def test_partial_withdrawal_of_whole_stock_is_rejected(self, admin_client, produto_locado):
        resp = _solicitar(admin_client, produto_locado['id'], tipo='PARCIAL', quantidade=10)
        assert resp.status_code == 400

    def test_only_operator_confirms(self, admin_client, produto_locado):
        solicitacao = _solicitar(admin_client, produto_locado['id']).get_json()
        resp = admin_client.post(f"/api/solicitacoes-retirada/{solicitacao['id']}/confirmar", json={},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 403

    def test_operator_cannot_request(self, operator_client, produto_locado):
        resp = _solicitar(operator_client, produto_locado['id'])
        assert resp.status_code == 403

    def test_duplicate_pending_request(self, admin_client, produto_locado):
        assert _solicitar(admin_client, produto_locado['id']).status_code == 201
        resp = _solicitar(admin_client, produto_locado['id'])
        assert resp.status_code == 409

    def test_request_for_product_not_stored(self, admin_client, cenario):
        produto = admin_client.post('/api/produtos', json=produto_payload(cenario),
                                    headers=csrf_headers(admin_client)).get_json()
        resp = _solicitar(admin_client, produto['id'])
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'INVALID_TRANSITION'

    def test_cancel_returns_product_to_stored(self, admin_client, operator_client, produto_locado):
        solicitacao = _solicitar(admin_client, produto_locado['id']).get_json()
        resp = admin_client.post(f"/api/solicitacoes-retirada/{solicitacao['id']}/cancelar",
                                 json={'motivo': 'Cliente desistiu'}, headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'CANCELADO'
        produto = admin_client.get(f"/api/produtos/{produto_locado['id']}").get_json()
        assert produto['status'] == 'LOCADO'

        resp = operator_client.post(f"/api/solicitacoes-retirada/{solicitacao['id']}/confirmar", json={},
                                    headers=csrf_headers(operator_client))
        assert resp.status_code == 409

    def test_product_waiting_withdrawal_cannot_move(self, admin_client, produto_locado, cenario):
        _solicitar(admin_client, produto_locado['id'])
        resp = admin_client.post(f"/api/produtos/{produto_locado['id']}/mover",
                                 json={'localizacao_id': cenario['locais']['Q1-L1-F2-A1']['id']},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 409

    def test_update_pending_request(self, admin_client, produto_locado):
        solicitacao = _solicitar(admin_client, produto_locado['id']).get_json()
        url = f"/api/solicitacoes-retirada/{solicitacao['id']}"
        headers = csrf_headers(admin_client)

        resp = admin_client.put(url, json={'quantidade_solicitada': 3}, headers=headers)
        assert resp.status_code == 400

        resp = admin_client.put(url, json={'tipo': 'parcial', 'quantidade_solicitada': 3}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()['tipo'] == 'PARCIAL'
        assert resp.get_json()['quantidade_solicitada'] == 3

        resp = admin_client.put(url, json={'quantidade_solicitada': 10}, headers=headers)
        assert resp.status_code == 400

        resp = admin_client.put(url, json={'quantidade_solicitada': 5, 'motivo': 'Entrega parcial'}, headers=headers)
        assert resp.get_json()['quantidade_solicitada'] == 5
        assert resp.get_json()['motivo'] == 'Entrega parcial'

        resp = admin_client.put(url, json={'tipo': 'TOTAL'}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()['tipo'] == 'TOTAL'
        assert resp.get_json()['quantidade_solicitada'] is None

    def test_confirmed_request_cannot_be_edited(self, admin_client, operator_client, produto_locado):
        solicitacao = _solicitar(admin_client, produto_locado['id'], tipo='PARCIAL', quantidade=4).get_json()
        operator_client.post(f"/api/solicitacoes-retirada/{solicitacao['id']}/confirmar", json={},
                             headers=csrf_headers(operator_client))

        resp = admin_client.put(f"/api/solicitacoes-retirada/{solicitacao['id']}",
                                json={'quantidade_solicitada': 2}, headers=csrf_headers(admin_client))
        assert resp.status_code == 409
        atual = admin_client.get(f"/api/solicitacoes-retirada/{solicitacao['id']}").get_json()
        assert atual['status'] == 'CONFIRMADO'
        assert atual['quantidade_solicitada'] == 4

    def test_stats(self, admin_client, produto_locado):
        _solicitar(admin_client, produto_locado['id'])
        stats = admin_client.get('/api/solicitacoes-retirada/estatisticas').get_json()
        assert stats['total'] == 1
        assert stats['por_status']['PENDENTE'] == 1


@pytest.mark.api
class TestMovimentacoes:

    def test_duplicate_user_movement_is_rejected(self, operator_client, produto_locado):
        payload = {
            'produto_id': produto_locado['id'],
            'tipo': 'ajuste',
            'quantidade': 1,
            'peso': 20,
            'motivo': 'Conferência de inventário',
        }
        headers = csrf_headers(operator_client)
        resp = operator_client.post('/api/movimentacoes', json=payload, headers=headers)
        assert resp.status_code == 201
        assert resp.get_json()['metadados']['automatica'] is False

        resp = operator_client.post('/api/movimentacoes', json=payload, headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'DUPLICATE_MOVEMENT'

    def test_movement_metadata_must_be_an_object(self, operator_client, produto_locado):
        resp = operator_client.post('/api/movimentacoes', json={
            'produto_id': produto_locado['id'], 'tipo': 'ajuste', 'quantidade': 1, 'peso': 20,
            'motivo': 'Conferência de inventário', 'metadados': ['x', 'y', 'z'],
        }, headers=csrf_headers(operator_client))
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'VALIDATION_ERROR'
        assert operator_client.get(f"/api/movimentacoes?produto_id={produto_locado['id']}").get_json()['total'] == 1

    def test_movement_requires_reason(self, operator_client, produto_locado):
        resp = operator_client.post('/api/movimentacoes', json={
            'produto_id': produto_locado['id'], 'tipo': 'ajuste', 'quantidade': 1, 'peso': 20,
        }, headers=csrf_headers(operator_client))
        assert resp.status_code == 400

    def test_manual_movement_defaults_to_product_values(self, admin_client, produto_locado):
        resp = admin_client.post('/api/movimentacoes/manual', json={
            'produto_id': produto_locado['id'], 'tipo': 'saida', 'motivo': 'Ajuste de auditoria',
        }, headers=csrf_headers(admin_client))
        assert resp.status_code == 201
        mov = resp.get_json()
        assert mov['quantidade'] == 10
        assert mov['peso'] == 200
        assert mov['localizacao_origem_id'] == produto_locado['localizacao_id']

        produto = admin_client.get(f"/api/produtos/{produto_locado['id']}").get_json()
        assert produto['status'] == 'LOCADO'

    def test_manual_transfer_is_not_allowed(self, admin_client, produto_locado):
        resp = admin_client.post('/api/movimentacoes/manual', json={
            'produto_id': produto_locado['id'], 'tipo': 'transferencia', 'motivo': 'Teste',
        }, headers=csrf_headers(admin_client))
        assert resp.status_code == 400

    def test_verify_movement(self, admin_client, produto_locado):
        movs = admin_client.get(f"/api/movimentacoes?produto_id={produto_locado['id']}").get_json()
        mov_id = movs['items'][0]['id']
        headers = csrf_headers(admin_client)
        resp = admin_client.post(f'/api/movimentacoes/{mov_id}/verificar', json={}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()['verificacao']['verificada'] is True
        resp = admin_client.post(f'/api/movimentacoes/{mov_id}/verificar', json={}, headers=headers)
        assert resp.status_code == 409

        assert admin_client.get('/api/movimentacoes?verificada=true').get_json()['total'] == 1

    def test_history_and_stats(self, admin_client, produto_locado):
        historico = admin_client.get(f"/api/movimentacoes/historico/{produto_locado['id']}")
        assert historico.status_code == 200
        stats = admin_client.get('/api/movimentacoes/estatisticas').get_json()
        assert stats['total'] == 1

    def test_operator_cannot_read_audit(self, operator_client, produto_locado):
        assert operator_client.get('/api/movimentacoes/auditoria').status_code == 403
