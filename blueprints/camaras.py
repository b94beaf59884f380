from flask import Blueprint, jsonify, request
from auth import require_admin, require_any_role, log_auditoria
from blueprints import page_args, bool_arg, json_body, query_filters
from services import chamber_service, location_service

camaras_bp = Blueprint('camaras', __name__, url_prefix='/api/camaras')


@camaras_bp.route('', methods=['GET'])
@camaras_bp.route('/', methods=['GET'])
@require_any_role
def listar_camaras():
    page, per_page = page_args()
    filtros = query_filters('status', 'search')
    filtros['com_estatisticas'] = bool_arg('com_estatisticas', False)
    return jsonify(chamber_service.list_chambers(filtros, page, per_page))


@camaras_bp.route('', methods=['POST'])
@camaras_bp.route('/', methods=['POST'])
@require_admin
def criar_camara():
    """Cria a câmara; com gerar_localizacoes=true já cria todas as posições"""
    data = json_body()
    camara = chamber_service.create_chamber(
        data,
        gerar_localizacoes=bool(data.get('gerar_localizacoes')),
        capacidade_padrao=data.get('capacidade_padrao_kg'),
    )
    log_auditoria('CREATE', 'camaras', camara['id'], None, {'nome': camara['nome']})
    return jsonify(camara), 201


@camaras_bp.route('/monitoramento-ambiental', methods=['GET'])
@require_any_role
def monitoramento_ambiental():
    return jsonify({'camaras': chamber_service.environmental_monitoring(request.args.get('camara_id'))})


@camaras_bp.route('/agenda-manutencao', methods=['GET'])
@require_any_role
def agenda_manutencao():
    return jsonify(chamber_service.maintenance_schedule(request.args.get('dias', 30)))


@camaras_bp.route('/<camara_id>', methods=['GET'])
@require_any_role
def obter_camara(camara_id):
    return jsonify(chamber_service.get_chamber(camara_id))


@camaras_bp.route('/<camara_id>', methods=['PUT'])
@require_admin
def atualizar_camara(camara_id):
    data = json_body()
    anterior = chamber_service.get_chamber(camara_id)
    camara = chamber_service.update_chamber(camara_id, data)
    log_auditoria('UPDATE', 'camaras', camara_id,
                  {k: anterior.get(k) for k in data if k in anterior}, data)
    return jsonify(camara)


@camaras_bp.route('/<camara_id>', methods=['DELETE'])
@require_admin
def excluir_camara(camara_id):
    resultado = chamber_service.delete_chamber(camara_id)
    log_auditoria('DELETE', 'camaras', camara_id, None, resultado)
    return jsonify({'message': 'Câmara removida com sucesso', **resultado})


@camaras_bp.route('/<camara_id>/estatisticas', methods=['GET'])
@require_any_role
def estatisticas_camara(camara_id):
    return jsonify(chamber_service.get_chamber_stats(camara_id))


@camaras_bp.route('/<camara_id>/gerar-localizacoes', methods=['POST'])
@require_admin
def gerar_localizacoes(camara_id):
    data = json_body()
    resultado = location_service.generate_locations_for_chamber(camara_id, data.get('capacidade_maxima_kg'))
    log_auditoria('GENERATE_LOCATIONS', 'camaras', camara_id, None, resultado)
    return jsonify(resultado), 201


@camaras_bp.route('/<camara_id>/analise-capacidade', methods=['GET'])
@require_any_role
def analise_capacidade(camara_id):
    return jsonify(chamber_service.analyze_capacity(camara_id))


@camaras_bp.route('/<camara_id>/validar-coordenadas', methods=['POST'])
@require_any_role
def validar_coordenadas(camara_id):
    return jsonify(chamber_service.validate_coordinates(camara_id, json_body()))


@camaras_bp.route('/<camara_id>/manutencao', methods=['POST'])
@require_admin
def registrar_manutencao(camara_id):
    data = json_body()
    camara = chamber_service.register_maintenance(
        camara_id, data.get('proxima_manutencao'), data.get('observacoes'),
    )
    log_auditoria('MAINTENANCE', 'camaras', camara_id, None, data)
    return jsonify(camara)
