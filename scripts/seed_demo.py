"""Popula o banco com dados de demonstração.

Cria duas câmaras com localizações, tipos de semente, clientes e alguns produtos
(parte já locada, parte aguardando locação). Pode ser executado mais de uma vez:
registros existentes com o mesmo nome são reaproveitados.
"""
import sys
from pathlib import Path

# Ensure project root is on sys.path when running from scripts/
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import app  # ensures extensions and mongo are initialized
from models_mongo.camara import CamaraMongo
from models_mongo.cliente import ClienteMongo
from models_mongo.tipo_semente import TipoSementeMongo
from models_mongo.usuario import UsuarioMongo
from services import chamber_service, client_service, product_service, seed_type_service, location_service

CAMARAS = [
    {
        'nome': 'Câmara 01',
        'descricao': 'Câmara principal de sementes de milho e sorgo',
        'dimensoes': {'quadras': 2, 'lados': 2, 'filas': 3, 'andares': 3},
        'temperatura_atual': 15.5,
        'umidade_atual': 55,
        'configuracoes': {
            'temperatura_alvo': 15, 'umidade_alvo': 55,
            'limites_alerta': {'temperatura': {'min': 10, 'max': 20}, 'umidade': {'min': 40, 'max': 65}},
        },
    },
    {
        'nome': 'Câmara 02',
        'descricao': 'Câmara de sementes especiais',
        'dimensoes': {'quadras': 1, 'lados': 2, 'filas': 2, 'andares': 4},
        'temperatura_atual': 12,
        'umidade_atual': 50,
        'configuracoes': {
            'temperatura_alvo': 12, 'umidade_alvo': 50,
            'limites_alerta': {'temperatura': {'min': 8, 'max': 16}, 'umidade': {'min': 40, 'max': 60}},
        },
    },
]

TIPOS = [
    {'nome': 'Milho', 'temperatura_ideal': 15, 'umidade_ideal': 55, 'tempo_max_armazenamento_dias': 365},
    {'nome': 'Sorgo', 'temperatura_ideal': 15, 'umidade_ideal': 50, 'tempo_max_armazenamento_dias': 300},
    {'nome': 'Girassol', 'temperatura_ideal': 10, 'umidade_ideal': 45, 'tempo_max_armazenamento_dias': 240},
]

CLIENTES = [
    {'nome': 'Fazenda Boa Vista', 'documento': '11.222.333/0001-81', 'email': 'contato@boavista.example',
     'contato': 'João Pereira', 'telefone': '(34) 99999-0001'},
    {'nome': 'Cooperativa Vale Verde', 'email': 'compras@valeverde.example', 'contato': 'Maria Souza'},
]


def _get_or_create(model, nome, criar):
    existente = model.find_one({'nome': nome})
    if existente is not None:
        return existente.to_dict(), False
    return criar(), True


def seed():
    admin = UsuarioMongo.find_one({'role': 'ADMIN', 'ativo': True})
    admin_id = admin._id if admin else None

    camaras = []
    for dados in CAMARAS:
        camara, criada = _get_or_create(
            CamaraMongo, dados['nome'], lambda d=dados: chamber_service.create_chamber(d, gerar_localizacoes=True),
        )
        camaras.append(camara)
        print(f"[Seed] Câmara {camara['nome']}: {'criada' if criada else 'existente'}")

    tipos = []
    for dados in TIPOS:
        tipo, criado = _get_or_create(TipoSementeMongo, dados['nome'], lambda d=dados: seed_type_service.create_seed_type(d))
        tipos.append(tipo)
        print(f"[Seed] Tipo de semente {tipo['nome']}: {'criado' if criado else 'existente'}")

    clientes = []
    for dados in CLIENTES:
        cliente, criado = _get_or_create(ClienteMongo, dados['nome'], lambda d=dados: client_service.create_client(d))
        clientes.append(cliente)
        print(f"[Seed] Cliente {cliente['nome']}: {'criado' if criado else 'existente'}")

    if product_service.list_products({}, 1, 1)['total']:
        print('[Seed] Produtos já existem; nada a fazer')
        return

    # Produtos locados na melhor posição da primeira câmara
    for i, tipo in enumerate(tipos):
        produto = product_service.create_product({
            'nome': f"{tipo['nome']} Híbrido {i + 1}",
            'lote': f'L2024-{i + 1:03d}',
            'tipo_semente_id': tipo['id'],
            'cliente_id': clientes[i % len(clientes)]['id'],
            'quantidade': 20 + i * 10,
            'peso_unitario': 20,
            'camara_id': camaras[0]['id'],
            'motivo': 'Carga de demonstração',
        }, admin_id, auto_localizar=True)
        print(f"[Seed] Produto {produto['nome']} locado")

    # Lote aguardando locação
    resultado = product_service.create_products_batch(clientes[0]['id'], [
        {'nome': 'Milho Safrinha', 'lote': 'L2024-100', 'tipo_semente_id': tipos[0]['id'],
         'quantidade': 15, 'peso_unitario': 25},
        {'nome': 'Sorgo Forrageiro', 'lote': 'L2024-101', 'tipo_semente_id': tipos[1]['id'],
         'quantidade': 10, 'peso_unitario': 20},
    ], admin_id, nome_lote='Entrega de demonstração')
    print(f"[Seed] Lote {resultado['lote']['nome']} com {len(resultado['produtos'])} produtos aguardando locação")

    stats = location_service.get_location_stats()
    print(f"[Seed] Localizações: {stats['total']} ({stats['ocupadas']} ocupadas)")


if __name__ == '__main__':
    with app.app_context():
        seed()
