"""Redefine a senha de um usuário pelo email.

Uso: python scripts/reset_password.py <email> <nova_senha>
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import app  # ensures extensions and mongo are initialized
from models_mongo.usuario import UsuarioMongo
from services import user_service
from services.errors import ServiceError


def main(argv=None):
    parser = argparse.ArgumentParser(description='Redefine a senha de um usuário')
    parser.add_argument('email')
    parser.add_argument('nova_senha')
    args = parser.parse_args(argv)
    with app.app_context():
        usuario = UsuarioMongo.find_one({'email': args.email.strip().lower()})
        if usuario is None:
            print(f'[Senha] Usuário {args.email} não encontrado')
            return 1
        try:
            user_service.reset_password(usuario.id, args.nova_senha)
        except ServiceError as e:
            print(f'[Senha] Erro: {e.message}')
            return 1
    print(f'[Senha] Senha de {usuario.email} redefinida')
    return 0


if __name__ == '__main__':
    sys.exit(main())
