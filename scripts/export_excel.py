"""Exporta o inventário armazenado para uma planilha Excel.

Uso: python scripts/export_excel.py <arquivo.xlsx> [--camara nome]
"""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import app  # ensures extensions and mongo are initialized
from services.excel_service import export_inventory_to_excel
from services.errors import ServiceError


def main(argv=None):
    parser = argparse.ArgumentParser(description='Exporta o inventário para Excel')
    parser.add_argument('arquivo')
    parser.add_argument('--camara', help='nome da câmara')
    args = parser.parse_args(argv)
    filtros = {'camara': args.camara} if args.camara else {}
    with app.app_context():
        try:
            total = export_inventory_to_excel(args.arquivo, filtros)
        except ServiceError as e:
            print(f'[Excel] Erro: {e.message}')
            return 1
    print(f'[Excel] {total} produtos exportados para {args.arquivo}')
    return 0


if __name__ == '__main__':
    sys.exit(main())
