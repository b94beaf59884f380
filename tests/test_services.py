"""
Testes diretos das regras de negócio (camada de serviços e modelos)
"""
from datetime import datetime, timedelta

import pytest
import extensions
from models_mongo.localizacao import gerar_codigo, nivel_acesso, capacidade_info
from models_mongo.produto import (
    ProdutoMongo, LoteProdutosMongo, pode_transicionar, calcular_peso_total, status_validade,
)
from services import chamber_service, location_service, movement_service, product_service, seed_type_service
from services.dashboard_service import dias_ate_lotacao
from services.errors import (
    ConcurrencyError, DuplicateMovementError, ValidationError, InvalidTransitionError, LocationOccupiedError,
)


@pytest.fixture
def ctx(app):
    with app.app_context():
        camara = chamber_service.create_chamber(
            {'nome': 'Câmara Serviços', 'dimensoes': {'quadras': 1, 'lados': 2, 'filas': 1, 'andares': 1}},
            gerar_localizacoes=True, capacidade_padrao=500,
        )
        tipo = seed_type_service.create_seed_type({'nome': 'soja', 'tempo_max_armazenamento_dias': 180})
        admin = extensions.mongo_db['usuarios'].find_one({'email': 'admin@local'})
        locais = {l['codigo']: l for l in location_service.list_locations({'camara_id': camara['id']})['items']}
        yield {'camara': camara, 'tipo': tipo, 'usuario_id': str(admin['_id']), 'locais': locais}


def _payload(ctx, **extra):
    dados = {'nome': 'Soja Intacta', 'lote': 'S-01', 'tipo_semente_id': ctx['tipo']['id'],
             'quantidade': 5, 'peso_unitario': 40}
    dados.update(extra)
    return dados


@pytest.mark.service
class TestRegrasDeModelo:

    def test_location_code_and_access_level(self):
        assert gerar_codigo(1, 2, 3, 4) == 'Q1-L2-F3-A4'
        assert [nivel_acesso(a) for a in (1, 2, 3, 5, 6)] == ['terreo', 'terreo', 'elevado', 'elevado', 'alto']

    def test_capacity_info(self):
        info = capacidade_info({'capacidade_maxima_kg': 1000, 'peso_atual_kg': 850})
        assert info == {'capacidade_disponivel_kg': 150, 'percentual_ocupacao': 85, 'status_capacidade': 'alta'}
        assert capacidade_info({'capacidade_maxima_kg': 1000})['status_capacidade'] == 'vazia'

    def test_status_machine(self):
        assert pode_transicionar('CADASTRADO', 'LOCADO')
        assert pode_transicionar('AGUARDANDO_RETIRADA', 'LOCADO')
        assert not pode_transicionar('RETIRADO', 'LOCADO')
        assert not pode_transicionar('REMOVIDO', 'AGUARDANDO_LOCACAO')
        assert not pode_transicionar('AGUARDANDO_LOCACAO', 'RETIRADO')

    def test_total_weight_is_rounded(self):
        assert calcular_peso_total(3, 0.1) == 0.3

    def test_expiration_status(self):
        agora = datetime(2024, 1, 1)
        assert status_validade(None)['status_validade'] == 'sem_validade'
        assert status_validade(agora - timedelta(days=1), agora)['status_validade'] == 'vencido'
        assert status_validade(agora + timedelta(days=7), agora)['status_validade'] == 'critico'
        assert status_validade(agora + timedelta(days=20), agora)['status_validade'] == 'alerta'
        assert status_validade(agora + timedelta(days=90), agora)['status_validade'] == 'bom'

    def test_days_until_full(self):
        assert dias_ate_lotacao(0, 1000) is None
        assert dias_ate_lotacao(1000, 1000) == 0
        assert dias_ate_lotacao(500, 1000) == 36 * 30


@pytest.mark.service
class TestServicos:

    def test_seed_type_name_is_title_cased(self, ctx):
        assert ctx['tipo']['nome'] == 'Soja'

    def test_stale_write_raises_concurrency_error(self, ctx):
        produto = product_service.create_product(_payload(ctx), ctx['usuario_id'])
        copia_a = ProdutoMongo.find_by_id(produto['id'])
        copia_b = ProdutoMongo.find_by_id(produto['id'])

        atualizado = product_service._update_versioned(copia_a, {'observacoes': 'primeira'})
        assert atualizado.get('versao') == 1
        with pytest.raises(ConcurrencyError):
            product_service._update_versioned(copia_b, {'observacoes': 'segunda'})
        assert ProdutoMongo.find_by_id(produto['id']).get('observacoes') == 'primeira'

    def test_invalid_transition_keeps_version(self, ctx):
        produto = product_service.create_product(_payload(ctx), ctx['usuario_id'])
        with pytest.raises(InvalidTransitionError):
            product_service._transition(ProdutoMongo.find_by_id(produto['id']), 'RETIRADO')
        assert ProdutoMongo.find_by_id(produto['id']).get('versao') == 0

    def test_user_movements_are_deduplicated(self, ctx):
        produto = product_service.create_product(_payload(ctx), ctx['usuario_id'])
        dados = {'produto_id': produto['id'], 'tipo': 'ajuste', 'quantidade': 1, 'peso': 40,
                 'motivo': 'Recontagem'}
        movement_service.register_movement(dados, ctx['usuario_id'], automatica=False)
        with pytest.raises(DuplicateMovementError):
            movement_service.register_movement(dados, ctx['usuario_id'], automatica=False)
        # Movimentações do sistema não passam pela checagem
        movement_service.register_movement(dados, ctx['usuario_id'])
        movement_service.register_movement(dados, ctx['usuario_id'])
        assert extensions.mongo_db['movimentacoes'].count_documents({'produto_id': ProdutoMongo.coerce_id(produto['id'])}) == 3

    def test_transfer_requires_origin(self, ctx):
        produto = product_service.create_product(_payload(ctx), ctx['usuario_id'])
        with pytest.raises(ValidationError):
            movement_service.register_movement({
                'produto_id': produto['id'], 'tipo': 'transferencia', 'quantidade': 5, 'peso': 200,
                'motivo': 'Reorganização',
            }, ctx['usuario_id'])

    def test_batch_creation_is_rolled_back(self, ctx):
        cliente = extensions.mongo_db['clientes'].insert_one({'nome': 'Agro Norte', 'ativo': True}).inserted_id
        with pytest.raises(ValidationError) as exc:
            product_service.create_products_batch(str(cliente), [
                _payload(ctx, lote='S-02'),
                _payload(ctx, lote='S-03', quantidade=0),
                _payload(ctx, lote='S-04'),
            ], ctx['usuario_id'])
        assert [f['indice'] for f in exc.value.details['falhas']] == [1]
        assert ProdutoMongo.count() == 0
        assert LoteProdutosMongo.count() == 0

    def test_optimal_location_and_occupancy(self, ctx):
        locais = ctx['locais']
        location_service.update_location(locais['Q1-L2-F1-A1']['id'], {'capacidade_maxima_kg': 250})
        otima = location_service.find_optimal_location(200)
        assert otima['localizacao']['codigo'] == 'Q1-L2-F1-A1'
        assert otima['desperdicio_kg'] == 50

        location_service.occupy_location(locais['Q1-L2-F1-A1']['id'], 200)
        with pytest.raises(LocationOccupiedError):
            location_service.occupy_location(locais['Q1-L2-F1-A1']['id'], 10)
        assert location_service.find_optimal_location(200)['localizacao']['codigo'] == 'Q1-L1-F1-A1'

        location_service.release_location(locais['Q1-L2-F1-A1']['id'])
        assert location_service.get_location(locais['Q1-L2-F1-A1']['id'])['peso_atual_kg'] == 0

    def test_inactive_chamber_locations_are_not_offered(self, ctx):
        chamber_service.update_chamber(ctx['camara']['id'], {'status': 'inativa'})
        assert location_service.find_optimal_location(10) is None
        assert location_service.find_available_locations() == []

    def test_partial_move_releases_target_when_save_fails(self, ctx, monkeypatch):
        origem = ctx['locais']['Q1-L1-F1-A1']
        destino = ctx['locais']['Q1-L2-F1-A1']
        produto = product_service.create_product(_payload(ctx, localizacao_id=origem['id']), ctx['usuario_id'])

        def _falha(self):
            raise RuntimeError('falha de escrita')

        monkeypatch.setattr(ProdutoMongo, 'save', _falha)
        with pytest.raises(RuntimeError):
            product_service.partial_move(produto['id'], 2, destino['id'], ctx['usuario_id'])
        monkeypatch.undo()

        alvo = location_service.get_location(destino['id'])
        assert alvo['ocupada'] is False
        assert alvo['peso_atual_kg'] == 0
        assert ProdutoMongo.find_by_id(produto['id']).quantidade == 5
        assert location_service.get_location(origem['id'])['peso_atual_kg'] == 200
