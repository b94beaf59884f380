"""Importa produtos de uma planilha Excel e imprime o relatório.

Colunas obrigatórias: quadra, lado, fila, andar, produto, lote, quantidade.
Opcionais: kg (peso unitário, padrão 1) e camara (nome; padrão a primeira câmara ativa).

Uso: python scripts/import_excel.py <arquivo.xlsx> [--usuario email]
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import app  # ensures extensions and mongo are initialized
from models_mongo.usuario import UsuarioMongo
from services.excel_service import import_products_from_excel, format_import_report
from services.errors import ServiceError


def main(argv=None):
    parser = argparse.ArgumentParser(description='Importa produtos de uma planilha Excel')
    parser.add_argument('arquivo')
    parser.add_argument('--usuario', help='email do usuário responsável pelas movimentações')
    args = parser.parse_args(argv)

    caminho = Path(args.arquivo)
    if not caminho.exists():
        print(f'[Excel] Arquivo não encontrado: {caminho}')
        return 1

    with app.app_context():
        usuario_id = None
        if args.usuario:
            usuario = UsuarioMongo.find_one({'email': args.usuario.strip().lower()})
            if usuario is None:
                print(f'[Excel] Usuário {args.usuario} não encontrado')
                return 1
            usuario_id = usuario._id
        print(f'[Excel] Importando {caminho}...')
        try:
            result = import_products_from_excel(str(caminho), usuario_id)
        except ServiceError as e:
            print(f'[Excel] Erro: {e.message}')
            return 1
    print(format_import_report(result))
    return 0 if not result.erros else 2


if __name__ == '__main__':
    sys.exit(main())
