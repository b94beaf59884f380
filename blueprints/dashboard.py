from flask import Blueprint, jsonify, request
from auth import require_any_role
import extensions
from services import dashboard_service

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')

CACHE_TTL = 30


def _cached(nome, builder):
    """Resposta do painel guardada por CACHE_TTL segundos"""
    cache_key = f"dashboard:{nome}:{request.query_string.decode('utf-8', 'ignore')}"
    cached = extensions.response_cache.get(cache_key)
    if cached is not None:
        return jsonify(cached)
    result = builder()
    extensions.response_cache.set(cache_key, result, ttl=CACHE_TTL)
    return jsonify(result)


@dashboard_bp.route('/resumo', methods=['GET'])
@require_any_role
def resumo():
    return _cached('resumo', dashboard_service.generate_system_summary)


@dashboard_bp.route('/status-camaras', methods=['GET'])
@require_any_role
def status_camaras():
    return _cached('status-camaras', lambda: {'camaras': dashboard_service.analyze_chamber_status()})


@dashboard_bp.route('/capacidade', methods=['GET'])
@require_any_role
def capacidade():
    return _cached('capacidade', dashboard_service.analyze_storage_capacity)


@dashboard_bp.route('/movimentacoes-recentes', methods=['GET'])
@require_any_role
def movimentacoes_recentes():
    limite = request.args.get('limite', 10)
    return _cached('movimentacoes-recentes',
                   lambda: {'items': dashboard_service.get_recent_movements(limite)})


@dashboard_bp.route('/alertas', methods=['GET'])
@require_any_role
def alertas():
    return _cached('alertas', dashboard_service.generate_alerts)
