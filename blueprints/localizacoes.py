from flask import Blueprint, jsonify, request
from auth import require_admin, require_any_role, log_auditoria
from blueprints import page_args, bool_arg, json_body, query_filters
from services import location_service
from services.errors import ValidationError

localizacoes_bp = Blueprint('localizacoes', __name__, url_prefix='/api/localizacoes')

COORDENADAS = ('quadra', 'lado', 'fila', 'andar')


@localizacoes_bp.route('', methods=['GET'])
@localizacoes_bp.route('/', methods=['GET'])
@require_any_role
def listar_localizacoes():
    page, per_page = page_args()
    filtros = query_filters('camara_id', 'nivel_acesso', 'codigo', *COORDENADAS)
    filtros['ocupada'] = bool_arg('ocupada')
    return jsonify(location_service.list_locations(filtros, page, per_page))


@localizacoes_bp.route('/camara/<camara_id>', methods=['GET'])
@require_any_role
def localizacoes_da_camara(camara_id):
    filtros = query_filters(*COORDENADAS)
    filtros['ocupada'] = bool_arg('ocupada')
    return jsonify(location_service.get_locations_by_chamber(camara_id, filtros))


@localizacoes_bp.route('/disponiveis', methods=['GET'])
@require_any_role
def localizacoes_disponiveis():
    """Posições livres em câmaras ativas; sort_by=otima ordena pelo menor desperdício"""
    filtros = query_filters('camara_id', 'peso_necessario', 'capacidade_min', 'capacidade_max', 'nivel_acesso')
    itens = location_service.find_available_locations(
        filtros,
        sort_by=request.args.get('sort_by', 'coordenadas'),
        limite=request.args.get('limite', type=int),
    )
    return jsonify({'items': itens, 'total': len(itens)})


@localizacoes_bp.route('/estatisticas', methods=['GET'])
@require_any_role
def estatisticas():
    return jsonify(location_service.get_location_stats(request.args.get('camara_id')))


@localizacoes_bp.route('/quadras/<camara_id>', methods=['GET'])
@require_any_role
def quadras(camara_id):
    return jsonify({'camara_id': camara_id, 'quadras': location_service.get_quadras_by_chamber(camara_id)})


@localizacoes_bp.route('/analise-ocupacao', methods=['GET'])
@require_any_role
def analise_ocupacao():
    return jsonify(location_service.analyze_occupancy(request.args.get('camara_id')))


@localizacoes_bp.route('/<loc_id>/adjacentes', methods=['GET'])
@require_any_role
def adjacentes(loc_id):
    return jsonify(location_service.find_adjacent_locations(
        loc_id,
        raio=request.args.get('raio', 1),
        somente_disponiveis=bool_arg('somente_disponiveis', False),
    ))


@localizacoes_bp.route('/<loc_id>', methods=['GET'])
@require_any_role
def obter_localizacao(loc_id):
    return jsonify(location_service.get_location(loc_id))


@localizacoes_bp.route('/gerar', methods=['POST'])
@require_admin
def gerar():
    data = json_body()
    if not data.get('camara_id'):
        raise ValidationError('camara_id é obrigatório')
    resultado = location_service.generate_locations_for_chamber(data['camara_id'], data.get('capacidade_maxima_kg'))
    log_auditoria('GENERATE_LOCATIONS', 'camaras', data['camara_id'], None, resultado)
    return jsonify(resultado), 201


@localizacoes_bp.route('/validar-capacidade', methods=['POST'])
@require_any_role
def validar_capacidade():
    data = json_body()
    if not data.get('localizacao_id'):
        raise ValidationError('localizacao_id é obrigatório')
    return jsonify(location_service.validate_location_capacity(data['localizacao_id'], data.get('peso')))


@localizacoes_bp.route('/<loc_id>', methods=['PUT'])
@require_admin
def atualizar_localizacao(loc_id):
    data = json_body()
    anterior = location_service.get_location(loc_id)
    loc = location_service.update_location(loc_id, data)
    log_auditoria('UPDATE', 'localizacoes', loc_id,
                  {'capacidade_maxima_kg': anterior.get('capacidade_maxima_kg')}, data)
    return jsonify(loc)
