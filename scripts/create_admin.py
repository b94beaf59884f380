"""Cria (ou promove) um usuário administrador.

Uso: python scripts/create_admin.py <email> <senha> [nome]
"""
import argparse
import sys
from pathlib import Path

# Ensure project root is on sys.path when running from scripts/
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import app  # ensures extensions and mongo are initialized
from models_mongo.usuario import ADMIN, UsuarioMongo
from services import user_service
from services.errors import ServiceError


def create_admin(email, senha, nome=None):
    """Cria o ADMIN; se o email já existe, promove e redefine a senha"""
    existente = UsuarioMongo.find_one({'email': email.strip().lower()})
    if existente is None:
        usuario = user_service.create_user({
            'email': email, 'password': senha, 'nome': nome or 'Administrador', 'role': ADMIN,
        })
        return usuario, True
    user_service.reset_password(existente.id, senha)
    usuario = user_service.update_user(existente.id, {'role': ADMIN, 'ativo': True})
    return usuario, False


def main(argv=None):
    parser = argparse.ArgumentParser(description='Cria um usuário administrador')
    parser.add_argument('email')
    parser.add_argument('senha')
    parser.add_argument('nome', nargs='?', default=None)
    args = parser.parse_args(argv)
    with app.app_context():
        try:
            usuario, criado = create_admin(args.email, args.senha, args.nome)
        except ServiceError as e:
            print(f'[Admin] Erro: {e.message}')
            return 1
    acao = 'criado' if criado else 'atualizado'
    print(f"[Admin] Usuário {usuario['email']} {acao} com papel {usuario['role']}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
