"""
Montagem dos relatórios de avaliação cognitiva.

Todas as funções recebem listas de dicionários já carregados do banco
(Avaliacao.to_dict(), Presenca.to_dict(), ...) e devolvem novas estruturas
prontas para serialização. Nenhuma delas altera a entrada nem consulta o
banco; escopo vazio resulta em listas vazias e estatísticas zeradas.
"""
import csv
import io
import random
from datetime import date

from periodo import formatar_periodo_texto, meses_do_periodo
from tendencia import JANELA_PADRAO, LIMIAR_PADRAO, calcular_tendencias, classificar_variacao

CONCLUIDA = 'CONCLUIDA'
RASCUNHO = 'RASCUNHO'
PENDENTE = 'PENDENTE'

# (campo na avaliação, rótulo exibido)
DOMINIOS_RADAR = [
    ('score_fluencia', 'Fluência'),
    ('score_cultura', 'Cultura'),
    ('score_interpretacao', 'Interpretação'),
    ('score_atencao', 'Atenção'),
    ('score_auto_percepcao', 'Auto-percepção'),
]
CAMPOS_SCORE = ['score_total'] + [campo for campo, _ in DOMINIOS_RADAR]

TRIMESTRES = [
    ('T1', (1, 2, 3)),
    ('T2', (4, 5, 6)),
    ('T3', (7, 8, 9)),
    ('T4', (10, 11, 12)),
]

RECOMENDACOES_POR_DOMINIO = {
    'Fluência': [
        'Que tal experimentar jogos de palavras como caça-palavras ou palavras cruzadas? Eles ajudam a deixar as palavras mais "na ponta da língua".',
        'Contar histórias do seu dia para alguém próximo pode ser um ótimo exercício para a fluência verbal.',
        'Ouvir músicas e tentar cantar junto ajuda a exercitar a memória de palavras de forma leve e divertida.',
    ],
    'Cultura': [
        'Assistir a documentários ou programas sobre temas variados pode ampliar seu repertório de conhecimentos gerais.',
        'Conversar sobre notícias e acontecimentos com amigos ou familiares ajuda a manter a mente ativa e informada.',
        'Visitar museus, exposições ou eventos culturais pode ser uma forma prazerosa de enriquecer sua bagagem cultural.',
    ],
    'Atenção': [
        'Jogos como quebra-cabeças ou jogo dos 7 erros são ótimos para exercitar a atenção aos detalhes.',
        'Praticar atividades manuais como artesanato, jardinagem ou culinária exige foco e pode ser muito relaxante.',
        'Experimente fazer uma coisa de cada vez, prestando atenção total naquela atividade.',
    ],
    'Interpretação': [
        'Ler um pouco todos os dias, mesmo que sejam textos curtos, ajuda a manter a compreensão afiada.',
        'Discutir o que você leu ou assistiu com outras pessoas ajuda a organizar suas interpretações.',
        'Ouvir podcasts ou audiobooks e depois resumir mentalmente o que entendeu é um ótimo exercício.',
    ],
    'Auto-percepção': [
        'Anotar compromissos e tarefas em uma agenda pode ajudar a organizar a memória do dia a dia.',
        'Fazer pausas durante o dia para refletir sobre como você está se sentindo pode aumentar sua consciência sobre si mesmo.',
        'Pedir feedback de pessoas próximas sobre como você está pode trazer novas perspectivas sobre sua memória.',
    ],
}

CABECALHO_CSV = [
    'ID_aluno', 'Nome_aluno', 'Data_avaliacao', 'Mes', 'Ano', 'Idade', 'Turma', 'Moderador',
    'Pontos_Fluencia', 'Pontos_Cultura', 'Pontos_Interpretacao', 'Pontos_Atencao', 'Pontos_Auto_percepcao',
    'Score_Total',
    'Score_Fluencia_0a10', 'Score_Cultura_0a10', 'Score_Interpretacao_0a10', 'Score_Atencao_0a10',
    'Score_Auto_percepcao_0a10',
    'Presencas_no_mes', 'Eventos_relevantes',
]


# ===================================================================
# SEÇÃO 1: AUXILIARES
# ===================================================================

def rotulo_mes_ano(mes, ano):
    return f'{int(mes):02d}/{int(ano)}'


def _como_data(valor):
    if valor is None or isinstance(valor, date):
        return valor
    return date.fromisoformat(str(valor)[:10])


def _media(valores):
    return sum(valores) / len(valores) if valores else 0


def _formatar_lista(itens):
    """['a', 'b', 'c'] -> 'a, b e c'"""
    if not itens:
        return ''
    if len(itens) == 1:
        return itens[0]
    return f"{', '.join(itens[:-1])} e {itens[-1]}"


def ordenar_por_periodo(avaliacoes):
    return sorted(avaliacoes, key=lambda a: (a['ano_referencia'], a['mes_referencia']))


def concluidas(avaliacoes):
    """Só as avaliações CONCLUIDA, em ordem cronológica crescente."""
    return ordenar_por_periodo([a for a in avaliacoes if a.get('status') == CONCLUIDA])


# ===================================================================
# SEÇÃO 2: EVOLUÇÃO, RADAR E ESTATÍSTICAS
# ===================================================================

def montar_evolucao(avaliacoes):
    evolucao = []
    for av in concluidas(avaliacoes):
        item = {'mes_ano': rotulo_mes_ano(av['mes_referencia'], av['ano_referencia'])}
        for campo in CAMPOS_SCORE:
            item[campo] = av.get(campo) or 0
        evolucao.append(item)
    return evolucao


def montar_radar(avaliacoes):
    """Cinco domínios da avaliação concluída mais recente; [] se não houver."""
    feitas = concluidas(avaliacoes)
    if not feitas:
        return []
    ultima = feitas[-1]
    return [{'dominio': rotulo, 'valor': ultima.get(campo) or 0} for campo, rotulo in DOMINIOS_RADAR]


def estatisticas_turma(scores, total_alunos):
    stats = {
        'media_geral': 0,
        'mediana': 0,
        'total_avaliacoes': 0,
        'alunos_sem_avaliacao': max(total_alunos or 0, 0),
    }
    if not scores:
        return stats

    ordenados = sorted(scores)
    n = len(ordenados)
    meio = n // 2
    if n % 2 == 0:
        mediana = (ordenados[meio - 1] + ordenados[meio]) / 2
    else:
        mediana = ordenados[meio]

    stats['media_geral'] = round(sum(ordenados) / n, 2)
    stats['mediana'] = round(mediana, 2)
    stats['total_avaliacoes'] = n
    stats['alunos_sem_avaliacao'] = max((total_alunos or 0) - n, 0)
    return stats


def adicionar_media_movel(evolucao):
    """Média móvel de 3 pontos do score_total; os dois primeiros usam o próprio valor."""
    resultado = []
    for idx, item in enumerate(evolucao):
        if idx < 2:
            media = item['score_total']
        else:
            media = sum(e['score_total'] for e in evolucao[idx - 2:idx + 1]) / 3
        resultado.append(dict(item, media_movel=round(media, 2)))
    return resultado


def adicionar_media_turma(evolucao, avaliacoes_turma):
    """
    Acrescenta a média mensal da turma a cada ponto da evolução.
    `avaliacoes_turma` já deve excluir o próprio aluno.
    """
    por_mes = {}
    for av in concluidas(avaliacoes_turma):
        chave = rotulo_mes_ano(av['mes_referencia'], av['ano_referencia'])
        por_mes.setdefault(chave, []).append(av.get('score_total') or 0)

    resultado = []
    for item in evolucao:
        scores = por_mes.get(item['mes_ano'])
        media = round(_media(scores), 2) if scores else None
        resultado.append(dict(item, media_turma=media))
    return resultado


def adicionar_eventos(evolucao, eventos):
    por_mes = {}
    for evento in eventos or []:
        data = _como_data(evento['data'])
        por_mes.setdefault(rotulo_mes_ano(data.month, data.year), evento)
    resultado = []
    for item in evolucao:
        evento = por_mes.get(item['mes_ano'])
        resultado.append(dict(item, evento={'titulo': evento['titulo'], 'tipo': evento.get('tipo')} if evento else None))
    return resultado


def media_radar(avaliacoes):
    """Radar com a média de cada domínio no conjunto informado."""
    feitas = concluidas(avaliacoes)
    if not feitas:
        return []
    return [
        {'dominio': rotulo, 'valor': round(_media([a.get(campo) or 0 for a in feitas]), 1)}
        for campo, rotulo in DOMINIOS_RADAR
    ]


def resumo_presenca(presencas, hoje=None):
    hoje = hoje or date.today()
    por_mes = {}
    for p in sorted(presencas or [], key=lambda p: _como_data(p['data'])):
        data = _como_data(p['data'])
        chave = rotulo_mes_ano(data.month, data.year)
        mes = por_mes.setdefault(chave, {'presencas': 0, 'total': 0})
        mes['total'] += 1
        if p.get('presente'):
            mes['presencas'] += 1

    dados = [
        {
            'mes_ano': chave,
            'presencas': mes['presencas'],
            'total_sessoes': mes['total'],
            'percentual': round(mes['presencas'] / mes['total'] * 100, 1) if mes['total'] else 0,
        }
        for chave, mes in por_mes.items()
    ]
    total_presencas = sum(d['presencas'] for d in dados)
    total_sessoes = sum(d['total_sessoes'] for d in dados)
    return {
        'dados': dados,
        'mes_atual': por_mes.get(rotulo_mes_ano(hoje.month, hoje.year), {'presencas': 0, 'total': 0}),
        'percentual_periodo': round(total_presencas / total_sessoes * 100, 1) if total_sessoes else 0,
    }


# ===================================================================
# SEÇÃO 3: TEXTOS
# ===================================================================

def gerar_resumo_analitico(evolucao, tendencias, presencas=None, periodo='6m'):
    """Texto corrido que resume as tendências e a frequência do aluno no período."""
    if not evolucao:
        return 'Ainda não há avaliações suficientes para gerar um resumo analítico.'

    texto_periodo = formatar_periodo_texto(periodo)
    abertura = texto_periodo[0].upper() + texto_periodo[1:]

    melhorias = [t['dominio'] for t in tendencias if t['tendencia'] == 'melhora']
    estaveis = [t['dominio'] for t in tendencias if t['tendencia'] == 'estavel']
    quedas = [t['dominio'] for t in tendencias if t['tendencia'] == 'queda']

    partes = []
    if melhorias:
        partes.append(f'{abertura}, o aluno apresentou melhora consistente em {_formatar_lista(melhorias)}')
    if estaveis and partes:
        partes.append(f'mantendo estabilidade em {_formatar_lista(estaveis)}')
    elif estaveis:
        partes.append(f'{abertura}, o aluno manteve desempenho estável em {_formatar_lista(estaveis)}')
    if quedas:
        if partes:
            partes.append(f'Observa-se leve queda em {_formatar_lista(quedas)}')
        else:
            partes.append(f'{abertura}, observa-se queda no desempenho em {_formatar_lista(quedas)}')

    if presencas:
        media_presenca = _media([p['percentual'] for p in presencas])
        if media_presenca < 70 and quedas:
            partes.append('coincidindo com redução na frequência às sessões no período')
        elif media_presenca >= 85:
            partes.append('O aluno demonstrou excelente engajamento, com presença regular nas sessões')
        elif media_presenca < 60:
            partes.append('A frequência reduzida às sessões pode estar impactando o desenvolvimento cognitivo')

    if not partes:
        return 'O aluno apresenta desempenho dentro dos parâmetros esperados, sem variações significativas no período.'

    texto = '. '.join(partes)
    return texto if texto.endswith('.') else texto + '.'


def calcular_tendencia_aluno(evolucao, limiar=LIMIAR_PADRAO):
    """Tendência do score_total entre a primeira e a última avaliação, com frase para o aluno."""
    if len(evolucao) < 2:
        return {'direcao': 'estavel', 'variacao': 0, 'frase': 'Ainda estamos conhecendo sua trajetória.'}

    variacao = round(evolucao[-1]['score_total'] - evolucao[0]['score_total'], 2)
    direcao = classificar_variacao(variacao, limiar)
    frases = {
        'melhora': 'Você está evoluindo positivamente desde o início!',
        'queda': 'Algumas oscilações são normais. O importante é manter a regularidade.',
        'estavel': 'Seu desempenho tem se mantido consistente.',
    }
    return {'direcao': direcao, 'variacao': variacao, 'frase': frases[direcao]}


def gerar_resumo_amigavel(evolucao, radar):
    if not evolucao:
        return 'Ainda não temos avaliações suficientes para gerar um resumo. Continue participando das atividades!'

    diferenca = evolucao[-1]['score_total'] - evolucao[0]['score_total']
    if diferenca > 1:
        resumo = 'Você está em uma trajetória positiva! '
    elif diferenca < -1:
        resumo = 'Mesmo com algumas oscilações recentes, lembre-se: oscilar é esperado e faz parte do processo. '
    else:
        resumo = 'Seu desempenho tem se mantido estável, o que também é um bom sinal. '

    fortes = [d['dominio'] for d in radar if d['valor'] >= 7]
    if fortes:
        resumo += f'Você demonstra força especial em {_formatar_lista(fortes)}. '

    return resumo + 'Continue participando regularmente das atividades, cada encontro é uma oportunidade de cuidar da sua mente!'


def gerar_recomendacoes(radar, quantidade=3, rng=None):
    """Uma sugestão para cada um dos `quantidade` domínios mais fracos."""
    if not radar:
        return []
    rng = rng or random
    recomendacoes = []
    for item in sorted(radar, key=lambda d: d['valor'])[:quantidade]:
        textos = RECOMENDACOES_POR_DOMINIO.get(item['dominio'])
        if textos:
            recomendacoes.append({'dominio': item['dominio'], 'texto': rng.choice(textos)})
    return recomendacoes


# ===================================================================
# SEÇÃO 4: RELATÓRIOS COMPOSTOS
# ===================================================================

def montar_tabela(avaliacoes):
    """Avaliações concluídas da mais recente para a mais antiga."""
    tabela = []
    for av in reversed(concluidas(avaliacoes)):
        linha = {
            'mes_ano': rotulo_mes_ano(av['mes_referencia'], av['ano_referencia']),
            'data_aplicacao': av.get('data_aplicacao'),
        }
        for campo in CAMPOS_SCORE:
            linha[campo] = av.get(campo) or 0
        tabela.append(linha)
    return tabela


def montar_relatorio_aluno(avaliacoes, avaliacoes_turma=None, presencas=None, eventos=None,
                           periodo='6m', janela=JANELA_PADRAO, limiar=LIMIAR_PADRAO, hoje=None):
    """
    Relatório completo do aluno no período.

    `avaliacoes` já vem filtrada pelo período; `avaliacoes_turma` traz as
    avaliações dos colegas no mesmo período (sem o aluno).
    """
    evolucao_base = montar_evolucao(avaliacoes)
    tendencias = calcular_tendencias(evolucao_base, janela, limiar)
    presenca = resumo_presenca(presencas, hoje)

    evolucao = adicionar_media_turma(evolucao_base, avaliacoes_turma or [])
    evolucao = adicionar_media_movel(evolucao)
    evolucao = adicionar_eventos(evolucao, eventos)

    radar = montar_radar(avaliacoes)
    radar_turma = {item['dominio']: item['valor'] for item in media_radar(avaliacoes_turma or [])}
    if radar and radar_turma:
        radar = [dict(item, media_turma=radar_turma.get(item['dominio'])) for item in radar]

    return {
        'periodo': periodo,
        'periodo_texto': formatar_periodo_texto(periodo),
        'periodo_meses': meses_do_periodo(periodo, len(evolucao_base)),
        'evolucao': evolucao,
        'radar': radar,
        'tem_media_turma': bool(radar_turma),
        'cards_resumo': tendencias,
        'presenca': presenca,
        'resumo_texto': gerar_resumo_analitico(evolucao_base, tendencias, presenca['dados'], periodo),
        'tabela_avaliacoes': montar_tabela(avaliacoes),
    }


def medias_trimestrais(avaliacoes):
    feitas = concluidas(avaliacoes)
    resultado = []
    for nome, meses in TRIMESTRES:
        do_trimestre = [a for a in feitas if a['mes_referencia'] in meses]
        if not do_trimestre:
            resultado.append({'trimestre': nome, 'dados': None})
            continue
        dados = {campo: round(_media([a.get(campo) or 0 for a in do_trimestre]), 2) for campo in CAMPOS_SCORE}
        resultado.append({'trimestre': nome, 'dados': dados})
    return resultado


def montar_relatorio_anual(avaliacoes, presencas=None, ano=None, anos_disponiveis=None,
                           janela=JANELA_PADRAO, limiar=LIMIAR_PADRAO):
    """Relatório de um ano: médias por trimestre, radar anual médio e resumo."""
    trimestres = medias_trimestrais(avaliacoes)
    evolucao = montar_evolucao(avaliacoes)
    presenca = resumo_presenca(presencas)
    tendencias = calcular_tendencias(evolucao, janela, limiar)
    percentual = presenca['percentual_periodo']
    return {
        'ano': ano,
        'anos_disponiveis': anos_disponiveis or [],
        'evolucao_trimestral': [dict(t['dados'], mes_ano=t['trimestre']) for t in trimestres if t['dados']],
        'medias_trimestrais': trimestres,
        'radar_anual': media_radar(avaliacoes),
        'presenca_media_anual': percentual,
        'resumo_texto': gerar_resumo_analitico(
            evolucao, tendencias, [{'percentual': percentual}] if presenca['dados'] else None, '12m'
        ),
    }


def montar_comparacao_turma(alunos, avaliacoes):
    """
    Ranking da turma pelo score_total da avaliação concluída mais recente de
    cada aluno. Alunos sem avaliação ficam no fim, sem posição.
    """
    ultima_por_aluno = {}
    for av in concluidas(avaliacoes):
        ultima_por_aluno[av['aluno_id']] = av

    com_nota = []
    sem_nota = []
    for aluno in alunos:
        av = ultima_por_aluno.get(aluno['id'])
        entrada = {
            'aluno_id': aluno['id'],
            'nome': aluno['nome'],
            'score_total': (av.get('score_total') or 0) if av else None,
            'tem_avaliacao': av is not None,
            'posicao': None,
        }
        (com_nota if av else sem_nota).append(entrada)

    com_nota.sort(key=lambda e: (-e['score_total'], e['nome']))
    for posicao, entrada in enumerate(com_nota, start=1):
        entrada['posicao'] = posicao
    return com_nota + sorted(sem_nota, key=lambda e: e['nome'])


def montar_relatorio_turma(alunos, avaliacoes, periodo='6m'):
    feitas = concluidas(avaliacoes)
    comparacao = montar_comparacao_turma(alunos, feitas)
    scores = [e['score_total'] for e in comparacao if e['tem_avaliacao']]

    por_mes = {}
    for av in feitas:
        chave = (av['ano_referencia'], av['mes_referencia'])
        por_mes.setdefault(chave, []).append(av)
    evolucao_turma = []
    for (ano, mes), do_mes in sorted(por_mes.items()):
        item = {'mes_ano': rotulo_mes_ano(mes, ano), 'total_avaliacoes': len(do_mes)}
        for campo in CAMPOS_SCORE:
            item[campo] = round(_media([a.get(campo) or 0 for a in do_mes]), 2)
        evolucao_turma.append(item)

    return {
        'periodo': periodo,
        'periodo_texto': formatar_periodo_texto(periodo),
        'estatisticas': estatisticas_turma(scores, len(alunos)),
        'comparacao': comparacao,
        'evolucao_turma': evolucao_turma,
        'radar_turma': media_radar(feitas),
    }


def status_turmas(turmas, avaliacoes_mes):
    """
    Andamento das avaliações de um mês por turma.

    turmas: [{'id', 'nome_turma', 'moderador', 'alunos': [{'id', 'nome'}]}]
    avaliacoes_mes: avaliações (qualquer status) do mês consultado.
    """
    status_por_aluno = {av['aluno_id']: av['status'] for av in avaliacoes_mes}
    resultado = []
    for turma in turmas:
        alunos = []
        for aluno in turma['alunos']:
            alunos.append({'id': aluno['id'], 'nome': aluno['nome'], 'status': status_por_aluno.get(aluno['id'], PENDENTE)})
        total = len(alunos)
        feitas = sum(1 for a in alunos if a['status'] == CONCLUIDA)
        rascunhos = sum(1 for a in alunos if a['status'] == RASCUNHO)
        resultado.append({
            'id': turma['id'],
            'nome_turma': turma['nome_turma'],
            'moderador': turma.get('moderador'),
            'total_alunos': total,
            'concluidas': feitas,
            'rascunhos': rascunhos,
            'pendentes': total - feitas - rascunhos,
            'percentual_concluido': round(feitas / total * 100) if total else 0,
            'alunos': alunos,
        })

    total_alunos = sum(t['total_alunos'] for t in resultado)
    total_concluidas = sum(t['concluidas'] for t in resultado)
    gerais = {
        'total_avaliacoes_mes': sum(t['concluidas'] + t['rascunhos'] for t in resultado),
        'total_alunos': total_alunos,
        'total_concluidas': total_concluidas,
        'total_rascunhos': sum(t['rascunhos'] for t in resultado),
        'total_pendentes': sum(t['pendentes'] for t in resultado),
        'percentual_geral_conclusao': round(total_concluidas / total_alunos * 100) if total_alunos else 0,
    }
    return {'estatisticas_gerais': gerais, 'turmas': resultado}


# ===================================================================
# SEÇÃO 5: EXPORTAÇÃO
# ===================================================================

def calcular_idade(data_nascimento, hoje=None):
    nascimento = _como_data(data_nascimento)
    if not nascimento:
        return ''
    hoje = hoje or date.today()
    return int((hoje - nascimento).days / 365.25)


def linhas_csv_aluno(turma, aluno, hoje=None):
    """
    Uma linha do CSV por avaliação concluída do aluno, em ordem cronológica.

    turma: {'nome_turma', 'moderador'}
    aluno: {'id', 'nome', 'data_nascimento', 'avaliacoes', 'presencas', 'eventos'}
    """
    presencas_mes = {}
    for p in aluno.get('presencas', []):
        if p.get('presente'):
            data = _como_data(p['data'])
            presencas_mes[(data.month, data.year)] = presencas_mes.get((data.month, data.year), 0) + 1
    eventos_mes = {}
    for e in aluno.get('eventos', []):
        data = _como_data(e['data'])
        eventos_mes.setdefault((data.month, data.year), []).append(e['titulo'])
    idade = calcular_idade(aluno.get('data_nascimento'), hoje)

    linhas = []
    for av in concluidas(aluno.get('avaliacoes', [])):
        chave = (av['mes_referencia'], av['ano_referencia'])
        aplicacao = _como_data(av.get('data_aplicacao'))
        linhas.append([
            aluno['id'],
            aluno['nome'],
            aplicacao.strftime('%d/%m/%Y') if aplicacao else '',
            av['mes_referencia'],
            av['ano_referencia'],
            idade,
            turma['nome_turma'],
            turma.get('moderador') or '',
            *[f"{av.get('pontos_' + campo[len('score_'):]) or 0:.2f}" for campo, _ in DOMINIOS_RADAR],
            f"{av.get('score_total') or 0:.2f}",
            *[f'{av.get(campo) or 0:.2f}' for campo, _ in DOMINIOS_RADAR],
            presencas_mes.get(chave, 0),
            '; '.join(eventos_mes.get(chave, [])),
        ])
    return linhas


def _escrever_csv(linhas):
    saida = io.StringIO()
    writer = csv.writer(saida, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(CABECALHO_CSV)
    writer.writerows(linhas)
    return saida.getvalue()


def _nome_arquivo(prefixo, nome, hoje):
    return f"metis_{prefixo}_{'_'.join(nome.split())}_{hoje.strftime('%Y-%m-%d')}.csv"


def exportar_csv_turma(turma, alunos, hoje=None):
    """
    Gera o CSV com todas as avaliações concluídas da turma.
    Devolve (conteudo, nome_do_arquivo).
    """
    hoje = hoje or date.today()
    linhas = []
    for aluno in alunos:
        linhas.extend(linhas_csv_aluno(turma, aluno, hoje))
    return _escrever_csv(linhas), _nome_arquivo('turma', turma['nome_turma'], hoje)


def exportar_csv_aluno(turma, aluno, hoje=None):
    """Mesmo layout da exportação da turma, só com as avaliações de um aluno."""
    hoje = hoje or date.today()
    return _escrever_csv(linhas_csv_aluno(turma, aluno, hoje)), _nome_arquivo('aluno', aluno['nome'], hoje)
