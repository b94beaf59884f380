"""
Modelo MongoDB para clientes (proprietários dos produtos armazenados)
"""
import re
from .base import BaseMongoModel
from .tipo_semente import titulo


TIPOS_DOCUMENTO = ['CPF', 'CNPJ', 'OUTROS']


def somente_digitos(valor) -> str:
    return re.sub(r'\D', '', str(valor or ''))


def validar_cpf(cpf: str) -> bool:
    digitos = somente_digitos(cpf)
    if len(digitos) != 11 or digitos == digitos[0] * 11:
        return False
    nums = [int(d) for d in digitos]
    for pos in (9, 10):
        soma = sum(nums[i] * (pos + 1 - i) for i in range(pos))
        dv = (soma * 10) % 11 % 10
        if dv != nums[pos]:
            return False
    return True


def validar_cnpj(cnpj: str) -> bool:
    digitos = somente_digitos(cnpj)
    if len(digitos) != 14 or digitos == digitos[0] * 14:
        return False
    nums = [int(d) for d in digitos]
    pesos1 = [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]
    pesos2 = [6] + pesos1
    for pos, pesos in ((12, pesos1), (13, pesos2)):
        resto = sum(n * p for n, p in zip(nums[:pos], pesos)) % 11
        dv = 0 if resto < 2 else 11 - resto
        if dv != nums[pos]:
            return False
    return True


def tipo_documento(documento: str) -> str:
    digitos = somente_digitos(documento)
    if len(digitos) == 11:
        return 'CPF'
    if len(digitos) == 14:
        return 'CNPJ'
    return 'OUTROS'


class ClienteMongo(BaseMongoModel):
    """Modelo MongoDB para clientes"""

    collection_name = 'clientes'

    def __init__(self, **kwargs):
        kwargs['nome'] = titulo(kwargs.get('nome'))
        if not kwargs['nome']:
            raise ValueError("Nome do cliente é obrigatório")
        documento = kwargs.get('documento')
        kwargs['documento'] = somente_digitos(documento) if documento else None
        kwargs.setdefault('tipo_documento', tipo_documento(documento) if documento else 'OUTROS')
        email = kwargs.get('email')
        kwargs['email'] = email.strip().lower() if email else None
        kwargs.setdefault('contato', '')
        kwargs.setdefault('telefone', '')
        endereco = kwargs.get('endereco') or {}
        endereco.setdefault('pais', 'Brasil')
        kwargs['endereco'] = endereco
        kwargs.setdefault('observacoes', '')
        kwargs.setdefault('ativo', True)
        super().__init__(**kwargs)
