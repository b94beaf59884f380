"""
Testes para API de produtos: cadastro, locação e operações de estoque
"""
import pytest
from tests.conftest import csrf_headers, produto_payload


def _criar(client, cenario, **extra):
    resp = client.post('/api/produtos', json=produto_payload(cenario, **extra), headers=csrf_headers(client))
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def _local(client, loc_id):
    return client.get(f'/api/localizacoes/{loc_id}').get_json()


@pytest.mark.api
class TestCadastroProdutos:

    def test_create_without_location_waits_for_allocation(self, admin_client, cenario):
        produto = _criar(admin_client, cenario)
        assert produto['status'] == 'AGUARDANDO_LOCACAO'
        assert produto['peso_total'] == 200
        assert produto['localizacao_id'] is None
        assert produto['versao'] == 0
        assert produto['tipo_semente_nome'] == 'Milho'
        assert produto['data_validade'] is not None

    def test_create_with_location_is_stored(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        produto = _criar(admin_client, cenario, localizacao_id=loc['id'])
        assert produto['status'] == 'LOCADO'
        assert produto['localizacao_codigo'] == 'Q1-L1-F1-A1'
        assert produto['camara_nome'] == 'Câmara Teste'

        detalhe = admin_client.get(f"/api/produtos/{produto['id']}").get_json()
        assert len(detalhe['movimentacoes_recentes']) == 1
        assert detalhe['movimentacoes_recentes'][0]['tipo'] == 'entrada'
        assert set(detalhe['transicoes_permitidas']) == {'AGUARDANDO_RETIRADA', 'REMOVIDO'}

    def test_create_with_auto_location(self, admin_client, cenario):
        produto = _criar(admin_client, cenario, auto_localizar=True)
        assert produto['status'] == 'LOCADO'
        assert produto['localizacao_codigo'] == 'Q1-L1-F1-A1'

    def test_create_in_occupied_location(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        _criar(admin_client, cenario, localizacao_id=loc['id'])
        resp = admin_client.post('/api/produtos', json=produto_payload(cenario, lote='L2', localizacao_id=loc['id']),
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'LOCATION_OCCUPIED'
        assert admin_client.get('/api/produtos').get_json()['total'] == 1

    def test_create_over_capacity(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        resp = admin_client.post('/api/produtos', json=produto_payload(
            cenario, quantidade=60, peso_unitario=20, localizacao_id=loc['id'],
        ), headers=csrf_headers(admin_client))
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'INSUFFICIENT_CAPACITY'
        assert _local(admin_client, loc['id'])['ocupada'] is False

    def test_invalid_payload_lists_errors(self, admin_client, cenario):
        resp = admin_client.post('/api/produtos', json={'nome': 'X', 'quantidade': 0},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 400
        erros = resp.get_json()['details']['erros']
        assert any('tipo_semente_id' in e for e in erros)

    def test_operator_cannot_create(self, operator_client, cenario):
        resp = operator_client.post('/api/produtos', json=produto_payload(cenario),
                                    headers=csrf_headers(operator_client))
        assert resp.status_code == 403

    def test_batch_creation(self, admin_client, cenario):
        resp = admin_client.post('/api/produtos/lote', json={
            'cliente_id': cenario['cliente']['id'],
            'nome_lote': 'Entrega março',
            'produtos': [
                produto_payload(cenario, lote='A1'),
                produto_payload(cenario, lote='A2', quantidade=5),
            ],
        }, headers=csrf_headers(admin_client))
        assert resp.status_code == 201
        data = resp.get_json()
        lote_id = data['lote']['id']
        assert len(data['produtos']) == 2
        assert all(p['lote_produtos_id'] == lote_id for p in data['produtos'])

        agrupados = admin_client.get('/api/produtos/aguardando-locacao/agrupados').get_json()
        assert agrupados['total_produtos'] == 2
        assert agrupados['lotes'][0]['peso_total'] == 300

        lote = admin_client.get(f'/api/produtos/lote/{lote_id}').get_json()
        assert lote['por_status'] == {'AGUARDANDO_LOCACAO': 2}

    def test_batch_is_all_or_nothing(self, admin_client, cenario):
        resp = admin_client.post('/api/produtos/lote', json={
            'cliente_id': cenario['cliente']['id'],
            'produtos': [produto_payload(cenario), {'nome': 'Sem lote'}],
        }, headers=csrf_headers(admin_client))
        assert resp.status_code == 400
        assert resp.get_json()['details']['falhas'][0]['indice'] == 1
        assert admin_client.get('/api/produtos').get_json()['total'] == 0

    def test_update_rejects_status_field(self, admin_client, cenario):
        produto = _criar(admin_client, cenario)
        resp = admin_client.put(f"/api/produtos/{produto['id']}", json={'status': 'LOCADO'},
                                headers=csrf_headers(admin_client))
        assert resp.status_code == 400

    def test_update_with_stale_version(self, admin_client, cenario):
        produto = _criar(admin_client, cenario)
        headers = csrf_headers(admin_client)
        resp = admin_client.put(f"/api/produtos/{produto['id']}", json={'observacoes': 'primeira', 'versao': 0},
                                headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()['versao'] == 1
        resp = admin_client.put(f"/api/produtos/{produto['id']}", json={'observacoes': 'segunda', 'versao': 0},
                                headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'VERSION_CONFLICT'

    def test_generate_code(self, admin_client, cenario):
        resp = admin_client.post('/api/produtos/gerar-codigo', json={'tipo_semente_id': cenario['tipo']['id']},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        assert resp.get_json()['codigo'].startswith('MIL')


@pytest.mark.api
class TestOperacoesEstoque:

    def test_locate_and_move(self, admin_client, operator_client, cenario):
        produto = _criar(admin_client, cenario)
        origem = cenario['locais']['Q1-L1-F1-A1']
        destino = cenario['locais']['Q1-L1-F2-A1']

        resp = operator_client.post(f"/api/produtos/{produto['id']}/locar", json={'localizacao_id': origem['id']},
                                    headers=csrf_headers(operator_client))
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'LOCADO'

        resp = operator_client.post(f"/api/produtos/{produto['id']}/mover",
                                    json={'nova_localizacao_id': destino['id'], 'motivo': 'Reorganização'},
                                    headers=csrf_headers(operator_client))
        assert resp.status_code == 200
        assert resp.get_json()['localizacao_codigo'] == 'Q1-L1-F2-A1'
        assert _local(admin_client, origem['id'])['ocupada'] is False
        assert _local(admin_client, destino['id'])['peso_atual_kg'] == 200

        historico = admin_client.get(f"/api/movimentacoes/produto/{produto['id']}").get_json()
        assert sorted(m['tipo'] for m in historico['items']) == ['entrada', 'transferencia']

    def test_locate_twice_is_invalid_transition(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        produto = _criar(admin_client, cenario, localizacao_id=loc['id'])
        resp = admin_client.post(f"/api/produtos/{produto['id']}/locar",
                                 json={'localizacao_id': cenario['locais']['Q1-L1-F2-A1']['id']},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'INVALID_TRANSITION'

    def test_move_to_same_location(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        produto = _criar(admin_client, cenario, localizacao_id=loc['id'])
        resp = admin_client.post(f"/api/produtos/{produto['id']}/mover", json={'localizacao_id': loc['id']},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 400

    def test_partial_exit(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        produto = _criar(admin_client, cenario, localizacao_id=loc['id'])
        headers = csrf_headers(admin_client)

        resp = admin_client.post(f"/api/produtos/{produto['id']}/saida-parcial", json={'quantidade': 4},
                                 headers=headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['quantidade'] == 6
        assert data['peso_total'] == 120
        assert _local(admin_client, loc['id'])['peso_atual_kg'] == 120

        resp = admin_client.post(f"/api/produtos/{produto['id']}/saida-parcial", json={'quantidade': 6},
                                 headers=headers)
        data = resp.get_json()
        assert data['status'] == 'REMOVIDO'
        assert data['quantidade'] == 6
        assert data['localizacao_id'] is None
        assert _local(admin_client, loc['id'])['ocupada'] is False

    def test_partial_exit_more_than_stock(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        produto = _criar(admin_client, cenario, localizacao_id=loc['id'])
        resp = admin_client.post(f"/api/produtos/{produto['id']}/saida-parcial", json={'quantidade': 11},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 400

    def test_partial_move_creates_new_product(self, admin_client, cenario):
        origem = cenario['locais']['Q1-L1-F1-A1']
        destino = cenario['locais']['Q1-L1-F1-A2']
        produto = _criar(admin_client, cenario, localizacao_id=origem['id'])
        resp = admin_client.post(f"/api/produtos/{produto['id']}/movimentacao-parcial",
                                 json={'quantidade': 3, 'nova_localizacao_id': destino['id']},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['produto_origem']['quantidade'] == 7
        assert data['produto_novo']['quantidade'] == 3
        assert data['produto_novo']['status'] == 'LOCADO'
        assert data['produto_novo']['rastreio']['produto_origem_id'] == produto['id']
        assert _local(admin_client, origem['id'])['peso_atual_kg'] == 140
        assert _local(admin_client, destino['id'])['peso_atual_kg'] == 60

    def test_partial_move_of_full_quantity(self, admin_client, cenario):
        origem = cenario['locais']['Q1-L1-F1-A1']
        produto = _criar(admin_client, cenario, localizacao_id=origem['id'])
        resp = admin_client.post(f"/api/produtos/{produto['id']}/movimentacao-parcial",
                                 json={'quantidade': 10, 'nova_localizacao_id': cenario['locais']['Q1-L1-F1-A2']['id']},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 400

    def test_partial_move_into_occupied_location(self, admin_client, cenario):
        origem = cenario['locais']['Q1-L1-F1-A1']
        destino = cenario['locais']['Q1-L1-F1-A2']
        produto = _criar(admin_client, cenario, localizacao_id=origem['id'])
        _criar(admin_client, cenario, lote='L2024-002', quantidade=5, localizacao_id=destino['id'])

        resp = admin_client.post(f"/api/produtos/{produto['id']}/movimentacao-parcial",
                                 json={'quantidade': 3, 'nova_localizacao_id': destino['id']},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'LOCATION_OCCUPIED'
        assert admin_client.get(f"/api/produtos/{produto['id']}").get_json()['quantidade'] == 10
        assert _local(admin_client, origem['id'])['peso_atual_kg'] == 200
        assert _local(admin_client, destino['id'])['peso_atual_kg'] == 100
        assert admin_client.get('/api/produtos').get_json()['total'] == 2

    def test_partial_move_into_small_location(self, admin_client, cenario):
        origem = cenario['locais']['Q1-L1-F1-A1']
        destino = cenario['locais']['Q1-L1-F1-A2']
        produto = _criar(admin_client, cenario, localizacao_id=origem['id'])
        headers = csrf_headers(admin_client)
        resp = admin_client.put(f"/api/localizacoes/{destino['id']}", json={'capacidade_maxima_kg': 50},
                                headers=headers)
        assert resp.status_code == 200

        resp = admin_client.post(f"/api/produtos/{produto['id']}/movimentacao-parcial",
                                 json={'quantidade': 3, 'nova_localizacao_id': destino['id']}, headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'INSUFFICIENT_CAPACITY'
        assert admin_client.get(f"/api/produtos/{produto['id']}").get_json()['quantidade'] == 10
        assert _local(admin_client, origem['id'])['peso_atual_kg'] == 200
        assert _local(admin_client, destino['id'])['ocupada'] is False
        assert admin_client.get('/api/produtos').get_json()['total'] == 1

    def test_add_stock(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        produto = _criar(admin_client, cenario, localizacao_id=loc['id'])
        headers = csrf_headers(admin_client)
        resp = admin_client.post(f"/api/produtos/{produto['id']}/adicionar-estoque", json={'quantidade': 5},
                                 headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()['quantidade'] == 15
        assert resp.get_json()['peso_total'] == 300
        assert _local(admin_client, loc['id'])['peso_atual_kg'] == 300

        resp = admin_client.post(f"/api/produtos/{produto['id']}/adicionar-estoque", json={'quantidade': 50},
                                 headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()['details']['deficit'] == 300

    def test_remove_product_releases_location(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        produto = _criar(admin_client, cenario, localizacao_id=loc['id'])
        resp = admin_client.delete(f"/api/produtos/{produto['id']}", json={'motivo': 'Descarte'},
                                   headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        assert resp.get_json()['produto']['status'] == 'REMOVIDO'
        assert _local(admin_client, loc['id'])['ocupada'] is False

        resp = admin_client.put(f"/api/produtos/{produto['id']}", json={'observacoes': 'x'},
                                headers=csrf_headers(admin_client))
        assert resp.status_code == 409

    def test_list_filters(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        _criar(admin_client, cenario, localizacao_id=loc['id'])
        _criar(admin_client, cenario, lote='OUTRO-9')

        assert admin_client.get('/api/produtos?status=LOCADO').get_json()['total'] == 1
        assert admin_client.get('/api/produtos?status=LOCADO,AGUARDANDO_LOCACAO').get_json()['total'] == 2
        assert admin_client.get('/api/produtos?search=outro').get_json()['total'] == 1
        assert admin_client.get(f"/api/produtos?camara_id={cenario['camara']['id']}").get_json()['total'] == 1
        assert admin_client.get('/api/produtos?status=ARMAZENADO').status_code == 400

    def test_distribution_analysis(self, admin_client, cenario):
        loc = cenario['locais']['Q1-L1-F1-A1']
        _criar(admin_client, cenario, localizacao_id=loc['id'])
        _criar(admin_client, cenario, lote='L2')
        data = admin_client.get('/api/produtos/analise-distribuicao').get_json()
        assert data['total_produtos'] == 2
        assert data['peso_total'] == 400
        assert data['em_localizacao'] == 1
        assert data['por_tipo_semente']['Milho']['quantidade_produtos'] == 2
