"""
Testes para API de câmaras e localizações
"""
import pytest
from tests.conftest import csrf_headers, produto_payload


@pytest.mark.api
class TestCamarasAPI:

    def test_create_chamber_generates_locations(self, admin_client, cenario):
        camara = cenario['camara']
        assert camara['localizacoes_geradas']['criadas'] == 4
        assert camara['total_localizacoes'] == 4
        assert camara['status'] == 'ativa'
        assert sorted(cenario['locais']) == ['Q1-L1-F1-A1', 'Q1-L1-F1-A2', 'Q1-L1-F2-A1', 'Q1-L1-F2-A2']
        assert all(loc['capacidade_maxima_kg'] == 1000 for loc in cenario['locais'].values())

    def test_duplicate_name_is_conflict(self, admin_client, cenario):
        resp = admin_client.post('/api/camaras', json={
            'nome': 'câmara teste',
            'dimensoes': {'quadras': 1, 'lados': 1, 'filas': 1, 'andares': 1},
        }, headers=csrf_headers(admin_client))
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'CONFLICT'

    def test_invalid_dimensions(self, admin_client):
        resp = admin_client.post('/api/camaras', json={
            'nome': 'Inválida',
            'dimensoes': {'quadras': 0, 'lados': 1, 'filas': 1, 'andares': 21},
        }, headers=csrf_headers(admin_client))
        assert resp.status_code == 400
        data = resp.get_json()
        assert data['code'] == 'VALIDATION_ERROR'
        assert len(data['details']['erros']) == 2

    def test_list_with_stats(self, operator_client, cenario):
        resp = operator_client.get('/api/camaras?com_estatisticas=true')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['total'] == 1
        assert data['items'][0]['estatisticas']['total'] == 4
        assert data['items'][0]['estatisticas']['ocupadas'] == 0

    def test_get_unknown_chamber(self, admin_client):
        resp = admin_client.get('/api/camaras/64b000000000000000000000')
        assert resp.status_code == 404
        assert resp.get_json()['code'] == 'NOT_FOUND'

    def test_generate_locations_is_idempotent(self, admin_client, cenario):
        camara_id = cenario['camara']['id']
        resp = admin_client.post(f'/api/camaras/{camara_id}/gerar-localizacoes', json={},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 201
        assert resp.get_json() == {'criadas': 0, 'existentes': 4, 'total': 4}

    def test_shrink_below_occupied_location_is_conflict(self, admin_client, cenario):
        headers = csrf_headers(admin_client)
        loc = cenario['locais']['Q1-L1-F2-A2']
        resp = admin_client.post('/api/produtos', json=produto_payload(cenario, localizacao_id=loc['id']),
                                 headers=headers)
        assert resp.status_code == 201

        camara_id = cenario['camara']['id']
        resp = admin_client.put(f'/api/camaras/{camara_id}', json={
            'dimensoes': {'quadras': 1, 'lados': 1, 'filas': 1, 'andares': 2},
        }, headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()['details']['conflitos']

    def test_shrink_removes_free_locations(self, admin_client, cenario):
        camara_id = cenario['camara']['id']
        resp = admin_client.put(f'/api/camaras/{camara_id}', json={
            'dimensoes': {'quadras': 1, 'lados': 1, 'filas': 1, 'andares': 2},
        }, headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        assert resp.get_json()['total_localizacoes'] == 2
        resp = admin_client.get(f'/api/localizacoes?camara_id={camara_id}')
        assert resp.get_json()['total'] == 2

    def test_delete_chamber_with_occupied_location(self, admin_client, cenario):
        headers = csrf_headers(admin_client)
        loc = cenario['locais']['Q1-L1-F1-A1']
        admin_client.post('/api/produtos', json=produto_payload(cenario, localizacao_id=loc['id']), headers=headers)
        camara_id = cenario['camara']['id']
        resp = admin_client.delete(f'/api/camaras/{camara_id}', headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()['details']['localizacoes_ocupadas'] == 1

    def test_delete_empty_chamber(self, admin_client, cenario):
        camara_id = cenario['camara']['id']
        resp = admin_client.delete(f'/api/camaras/{camara_id}', headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        assert resp.get_json()['localizacoes_removidas'] == 4
        assert admin_client.get(f'/api/camaras/{camara_id}').status_code == 404

    def test_validate_coordinates(self, operator_client, cenario):
        camara_id = cenario['camara']['id']
        resp = operator_client.post(f'/api/camaras/{camara_id}/validar-coordenadas', json={
            'quadra': 1, 'lado': 1, 'fila': 3, 'andar': 1,
        }, headers=csrf_headers(operator_client))
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['valido'] is False
        assert data['erros'] == ['fila deve estar entre 1 e 2']


@pytest.mark.api
class TestLocalizacoesAPI:

    def _set_capacity(self, client, loc_id, capacidade):
        resp = client.put(f'/api/localizacoes/{loc_id}', json={'capacidade_maxima_kg': capacidade},
                          headers=csrf_headers(client))
        assert resp.status_code == 200

    def test_optimal_location_prefers_smallest_waste(self, admin_client, cenario):
        locais = cenario['locais']
        self._set_capacity(admin_client, locais['Q1-L1-F1-A1']['id'], 5000)
        self._set_capacity(admin_client, locais['Q1-L1-F1-A2']['id'], 300)
        self._set_capacity(admin_client, locais['Q1-L1-F2-A1']['id'], 150)

        resp = admin_client.post('/api/produtos/localizacao-otima', json={'quantidade': 10, 'peso_unitario': 20},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['localizacao']['codigo'] == 'Q1-L1-F1-A2'
        assert data['desperdicio_kg'] == 100
        assert [a['codigo'] for a in data['alternativas']] == ['Q1-L1-F2-A2', 'Q1-L1-F1-A1']

    def test_optimal_location_none_fits(self, admin_client, cenario):
        resp = admin_client.post('/api/produtos/localizacao-otima', json={'peso': 20000},
                                 headers=csrf_headers(admin_client))
        assert resp.status_code == 200
        assert resp.get_json()['localizacao'] is None

    def test_available_locations_exclude_occupied(self, admin_client, cenario):
        headers = csrf_headers(admin_client)
        loc = cenario['locais']['Q1-L1-F1-A1']
        admin_client.post('/api/produtos', json=produto_payload(cenario, localizacao_id=loc['id']), headers=headers)

        resp = admin_client.get('/api/localizacoes/disponiveis')
        data = resp.get_json()
        assert data['total'] == 3
        assert 'Q1-L1-F1-A1' not in [i['codigo'] for i in data['items']]

        resp = admin_client.get(f"/api/localizacoes/{loc['id']}")
        detalhe = resp.get_json()
        assert detalhe['ocupada'] is True
        assert detalhe['peso_atual_kg'] == 200
        assert detalhe['produto']['lote'] == 'L2024-001'

    def test_validate_capacity_codes(self, admin_client, cenario):
        headers = csrf_headers(admin_client)
        loc = cenario['locais']['Q1-L1-F1-A1']

        resp = admin_client.post('/api/localizacoes/validar-capacidade',
                                 json={'localizacao_id': loc['id'], 'peso': 500}, headers=headers)
        assert resp.get_json()['codigo_validacao'] == 'CAPACITY_OK'

        resp = admin_client.post('/api/localizacoes/validar-capacidade',
                                 json={'localizacao_id': loc['id'], 'peso': 990}, headers=headers)
        assert resp.get_json()['codigo_validacao'] == 'CAPACITY_WARNING'

        resp = admin_client.post('/api/localizacoes/validar-capacidade',
                                 json={'localizacao_id': loc['id'], 'peso': 1500}, headers=headers)
        data = resp.get_json()
        assert data['valido'] is False
        assert data['codigo_validacao'] == 'INSUFFICIENT_CAPACITY'
        assert data['deficit'] == 500

    def test_capacity_below_current_weight(self, admin_client, cenario):
        headers = csrf_headers(admin_client)
        loc = cenario['locais']['Q1-L1-F1-A1']
        admin_client.post('/api/produtos', json=produto_payload(cenario, localizacao_id=loc['id']), headers=headers)
        resp = admin_client.put(f"/api/localizacoes/{loc['id']}", json={'capacidade_maxima_kg': 100},
                                headers=headers)
        assert resp.status_code == 409

    def test_stats_and_adjacent(self, operator_client, cenario):
        resp = operator_client.get('/api/localizacoes/estatisticas')
        assert resp.get_json()['total'] == 4

        loc = cenario['locais']['Q1-L1-F1-A1']
        resp = operator_client.get(f"/api/localizacoes/{loc['id']}/adjacentes")
        assert resp.status_code == 200
        assert resp.get_json()['total'] == 3
