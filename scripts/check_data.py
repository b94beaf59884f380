"""Verifica (e opcionalmente corrige) inconsistências entre produtos e localizações.

Checagens:
- localização com peso acima da capacidade
- flag 'ocupada' divergente do peso atual
- produto LOCADO/AGUARDANDO_RETIRADA em localização livre, inexistente ou compartilhada
- peso_total diferente de quantidade x peso_unitario
- lote_produtos_id vazio ou 'undefined'

Uso: python scripts/check_data.py [--fix]
"""
import argparse
import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import app  # ensures extensions and mongo are initialized
import extensions
from models_mongo.produto import STATUS_EM_LOCALIZACAO, calcular_peso_total

LOTES_INVALIDOS = ['', 'undefined']


def check(db, fix=False):
    locais = {d['_id']: d for d in db['localizacoes'].find({})}
    produtos = list(db['produtos'].find({'status': {'$in': STATUS_EM_LOCALIZACAO}}))
    problemas = []
    agora = datetime.utcnow()

    por_local = {}
    for p in produtos:
        por_local.setdefault(p.get('localizacao_id'), []).append(p)

    for loc_id, itens in por_local.items():
        loc = locais.get(loc_id)
        nomes = ', '.join(str(p['_id']) for p in itens)
        if loc is None:
            problemas.append(f'Produtos {nomes} apontam para localização inexistente {loc_id}')
            continue
        if len(itens) > 1:
            problemas.append(f"Localização {loc['codigo']} compartilhada por {len(itens)} produtos: {nomes}")
        elif not loc.get('ocupada'):
            problemas.append(f"Produto {nomes} está em {loc['codigo']}, marcada como livre")
            if fix:
                peso = float(itens[0].get('peso_total') or 0)
                db['localizacoes'].update_one({'_id': loc_id}, {'$set': {
                    'ocupada': peso > 0, 'peso_atual_kg': peso, 'data_atualizacao': agora,
                }})
                loc['ocupada'], loc['peso_atual_kg'] = peso > 0, peso

    for loc_id, loc in locais.items():
        peso = float(loc.get('peso_atual_kg') or 0)
        if peso > float(loc.get('capacidade_maxima_kg') or 0):
            problemas.append(f"Localização {loc['codigo']} com {peso} kg acima da capacidade")
        if bool(loc.get('ocupada')) != (peso > 0):
            problemas.append(f"Localização {loc['codigo']}: ocupada={loc.get('ocupada')} com peso {peso} kg")
            if fix:
                if loc_id in por_local:
                    peso = float(por_local[loc_id][0].get('peso_total') or 0)
                elif loc.get('ocupada'):
                    peso = 0.0
                db['localizacoes'].update_one({'_id': loc_id}, {'$set': {
                    'ocupada': peso > 0, 'peso_atual_kg': peso, 'data_atualizacao': agora,
                }})

    for p in db['produtos'].find({}, {'quantidade': 1, 'peso_unitario': 1, 'peso_total': 1}):
        esperado = calcular_peso_total(p.get('quantidade') or 0, p.get('peso_unitario') or 0)
        if round(float(p.get('peso_total') or 0), 3) != esperado:
            problemas.append(f"Produto {p['_id']}: peso_total {p.get('peso_total')} diferente de {esperado}")
            if fix:
                db['produtos'].update_one({'_id': p['_id']}, {'$set': {'peso_total': esperado}})

    invalidos = db['produtos'].count_documents({'lote_produtos_id': {'$in': LOTES_INVALIDOS}})
    if invalidos:
        problemas.append(f"{invalidos} produtos com lote_produtos_id vazio ou 'undefined'")
        if fix:
            db['produtos'].update_many({'lote_produtos_id': {'$in': LOTES_INVALIDOS}},
                                       {'$set': {'lote_produtos_id': None}})
    return problemas


def main(argv=None):
    parser = argparse.ArgumentParser(description='Verifica a consistência dos dados')
    parser.add_argument('--fix', action='store_true', help='corrige o que for possível')
    args = parser.parse_args(argv)
    db = extensions.mongo_db
    if db is None:
        print('[Check] MongoDB não inicializado')
        return 1
    with app.app_context():
        problemas = check(db, fix=args.fix)
    if not problemas:
        print('[Check] Nenhuma inconsistência encontrada')
        return 0
    for problema in problemas:
        print(f'[Check] {problema}')
    print(f"[Check] {len(problemas)} inconsistências {'(correções aplicadas)' if args.fix else ''}".rstrip())
    return 0 if args.fix else 2


if __name__ == '__main__':
    sys.exit(main())
