import random
import string
import unicodedata

from erros import ErroValidacao, LoginEsgotadoError

# Alfabeto usado nas senhas de alunos recém-criados.
ALFABETO_ALUNO = string.ascii_letters + string.digits
# Sem caracteres que se confundem na leitura (0/O, 1/I/l, i, o).
ALFABETO_RESET = 'ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789'

DOMINIO_PADRAO = '@metis'
LIMITE_SUFIXO = 1000


def gerar_senha(tamanho=6, alfabeto=ALFABETO_ALUNO, rng=None):
    """Gera uma senha sorteando cada caractere de forma independente."""
    if tamanho < 1:
        raise ErroValidacao('O tamanho da senha deve ser positivo')
    rng = rng or random.SystemRandom()
    return ''.join(rng.choice(alfabeto) for _ in range(tamanho))


def gerar_senha_reset(tamanho=8, rng=None):
    return gerar_senha(tamanho, ALFABETO_RESET, rng)


def remover_acentos(texto):
    normalizado = unicodedata.normalize('NFD', texto)
    return ''.join(c for c in normalizado if not unicodedata.combining(c))


def primeiro_nome(nome_completo):
    """
    Retorna o primeiro nome em minúsculas e sem acentos.
    'Élida Souza' -> 'elida'
    """
    partes = (nome_completo or '').strip().split()
    if not partes:
        raise ErroValidacao('Nome do aluno não pode ser vazio')
    return remover_acentos(partes[0]).lower()


def derivar_login(nome_completo, login_existe, dominio=DOMINIO_PADRAO, limite=LIMITE_SUFIXO):
    """
    Deriva um login único a partir do nome do aluno.

    Tenta 'primeiro_nome + dominio'; se já existir, acrescenta 2, 3, ...
    ao nome base, consultando `login_existe` a cada tentativa.
    Lança LoginEsgotadoError quando o sufixo ultrapassa `limite`.
    """
    base = primeiro_nome(nome_completo)
    login = f'{base}{dominio}'
    sufixo = 2
    while login_existe(login):
        if sufixo > limite:
            raise LoginEsgotadoError(detalhes={'base': base, 'limite': limite})
        login = f'{base}{sufixo}{dominio}'
        sufixo += 1
    return login
