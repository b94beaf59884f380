from flask import Blueprint, jsonify, request
from auth import require_any_role
from blueprints import json_body, query_filters
from services import report_service

relatorios_bp = Blueprint('relatorios', __name__, url_prefix='/api/relatorios')


@relatorios_bp.route('/estoque', methods=['GET'])
@require_any_role
def relatorio_estoque():
    filtros = query_filters('camara_id', 'cliente_id', 'tipo_semente_id', 'status', 'search')
    return jsonify(report_service.inventory_report(filtros))


@relatorios_bp.route('/movimentacoes', methods=['GET'])
@require_any_role
def relatorio_movimentacoes():
    filtros = query_filters('tipo', 'produto_id', 'usuario_id', 'localizacao_id', 'data_inicio', 'data_fim')
    return jsonify(report_service.movement_report(filtros, request.args.get('agrupar_por', 'day')))


@relatorios_bp.route('/vencimento', methods=['GET'])
@require_any_role
def relatorio_vencimento():
    return jsonify(report_service.expiration_report(request.args.get('dias', 30)))


@relatorios_bp.route('/capacidade', methods=['GET'])
@require_any_role
def relatorio_capacidade():
    return jsonify(report_service.capacity_report(request.args.get('camara_id')))


@relatorios_bp.route('/executivo', methods=['GET'])
@require_any_role
def relatorio_executivo():
    return jsonify(report_service.executive_report(request.args.get('periodo', 30)))


@relatorios_bp.route('/personalizado', methods=['POST'])
@require_any_role
def relatorio_personalizado():
    """Corpo: {recurso, filtros, campos, limite}"""
    return jsonify(report_service.custom_report(json_body()))
