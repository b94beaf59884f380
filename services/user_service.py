"""
Usuários do sistema (ADMIN / OPERATOR)
"""
import re
from datetime import datetime, timedelta

from werkzeug.security import generate_password_hash

from models_mongo.movimentacao import MovimentacaoMongo
from models_mongo.usuario import UsuarioMongo, ROLES, OPERATOR, SENHA_MIN
from services.common import get_logger, require_doc, to_int, clean_text, paginate_cursor
from services.errors import ValidationError, ConflictError

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+$')


def _validar_senha(senha):
    if not isinstance(senha, str) or len(senha) < SENHA_MIN:
        raise ValidationError(f'Senha deve ter pelo menos {SENHA_MIN} caracteres')
    return senha


def _validar_email(email):
    email = clean_text(email, 'email', 3, 200, obrigatorio=True).lower()
    if not EMAIL_RE.match(email):
        raise ValidationError('Email inválido')
    return email


def _ensure_unique_email(email, excluir_id=None):
    existente = UsuarioMongo.get_collection().find_one({'email': email}, {'_id': 1})
    if existente is not None and existente['_id'] != excluir_id:
        raise ConflictError('Email já cadastrado')


def create_user(dados):
    dados = dados or {}
    email = _validar_email(dados.get('email'))
    nome = clean_text(dados.get('nome'), 'nome', 2, 100, obrigatorio=True)
    senha = _validar_senha(dados.get('password') or dados.get('senha'))
    role = (dados.get('role') or OPERATOR).upper()
    if role not in ROLES:
        raise ValidationError(f"role deve ser um de: {', '.join(ROLES)}")
    _ensure_unique_email(email)
    usuario = UsuarioMongo(nome=nome, email=email, password=senha, role=role, ativo=bool(dados.get('ativo', True)))
    usuario.save()
    get_logger().info(f"[Usuário] {email} criado com papel {role}")
    return usuario.to_dict()


def update_user(usuario_id, dados, ator_id=None):
    usuario = require_doc(UsuarioMongo, usuario_id, 'Usuário')
    dados = dados or {}
    campos = {}
    if 'nome' in dados:
        campos['nome'] = clean_text(dados['nome'], 'nome', 2, 100, obrigatorio=True)
    if 'email' in dados:
        campos['email'] = _validar_email(dados['email'])
        _ensure_unique_email(campos['email'], usuario._id)
    if 'role' in dados:
        role = str(dados['role'] or '').upper()
        if role not in ROLES:
            raise ValidationError(f"role deve ser um de: {', '.join(ROLES)}")
        campos['role'] = role
    if 'ativo' in dados:
        if not dados['ativo'] and ator_id and str(ator_id) == usuario.id:
            raise ValidationError('Você não pode desativar a si mesmo')
        campos['ativo'] = bool(dados['ativo'])
    if dados.get('password'):
        campos['password_hash'] = generate_password_hash(_validar_senha(dados['password']))
    if not campos:
        raise ValidationError('Nenhum campo editável informado')
    campos['data_atualizacao'] = datetime.utcnow()
    UsuarioMongo.get_collection().update_one({'_id': usuario._id}, {'$set': campos})
    return require_doc(UsuarioMongo, usuario._id, 'Usuário').to_dict()


def list_users(filtros=None, page=1, per_page=20):
    filtros = filtros or {}
    query = {}
    if filtros.get('role'):
        query['role'] = str(filtros['role']).upper()
    if filtros.get('ativo') is not None:
        query['ativo'] = str(filtros['ativo']).lower() in ('1', 'true', 'sim')
    if filtros.get('search'):
        regex = {'$regex': re.escape(str(filtros['search']).strip()), '$options': 'i'}
        query['$or'] = [{'nome': regex}, {'email': regex}]
    return paginate_cursor(
        UsuarioMongo.get_collection(), query, page, per_page,
        sort=[('nome', 1)], transform=lambda d: UsuarioMongo.from_doc(d).to_dict(),
    )


def get_user(usuario_id):
    return require_doc(UsuarioMongo, usuario_id, 'Usuário').to_dict()


def deactivate_user(usuario_id, ator_id):
    usuario = require_doc(UsuarioMongo, usuario_id, 'Usuário')
    if str(ator_id) == usuario.id:
        raise ValidationError('Você não pode desativar a si mesmo')
    UsuarioMongo.get_collection().update_one(
        {'_id': usuario._id}, {'$set': {'ativo': False, 'data_atualizacao': datetime.utcnow()}}
    )
    get_logger().info(f"[Usuário] {usuario.email} desativado")
    return {'id': usuario.id, 'ativo': False}


def reset_password(usuario_id, nova_senha):
    usuario = require_doc(UsuarioMongo, usuario_id, 'Usuário')
    UsuarioMongo.get_collection().update_one({'_id': usuario._id}, {'$set': {
        'password_hash': generate_password_hash(_validar_senha(nova_senha)),
        'data_atualizacao': datetime.utcnow(),
    }})
    get_logger().info(f"[Usuário] Senha redefinida para {usuario.email}")
    return {'id': usuario.id, 'message': 'Senha redefinida com sucesso'}


def user_productivity(usuario_id, dias=30):
    usuario = require_doc(UsuarioMongo, usuario_id, 'Usuário')
    dias = to_int(dias, 'dias', 1, 365)
    inicio = datetime.utcnow() - timedelta(days=dias)
    docs = list(MovimentacaoMongo.get_collection().find({
        'usuario_id': usuario._id,
        'data_movimentacao': {'$gte': inicio},
    }))
    por_tipo, por_dia = {}, {}
    produtos, locais = set(), set()
    verificadas = 0
    for d in docs:
        por_tipo[d['tipo']] = por_tipo.get(d['tipo'], 0) + 1
        dia = d['data_movimentacao'].strftime('%Y-%m-%d')
        por_dia[dia] = por_dia.get(dia, 0) + 1
        produtos.add(d.get('produto_id'))
        for campo in ('localizacao_origem_id', 'localizacao_destino_id'):
            if d.get(campo):
                locais.add(d[campo])
        if (d.get('verificacao') or {}).get('verificada'):
            verificadas += 1
    total = len(docs)
    return {
        'usuario': usuario.to_dict(),
        'periodo_dias': dias,
        'total_movimentacoes': total,
        'media_diaria': round(total / dias, 2),
        'por_tipo': por_tipo,
        'por_dia': dict(sorted(por_dia.items())),
        'percentual_verificadas': round(verificadas / total * 100, 2) if total else 0,
        'produtos_distintos': len(produtos),
        'localizacoes_distintas': len(locais),
    }
