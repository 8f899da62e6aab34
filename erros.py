# ===================================================================
# ERROS DA APLICAÇÃO
# ===================================================================
# Cada erro carrega o status HTTP com que deve ser respondido.
# O handler registrado em main.py transforma qualquer ErroApi em
# {'error': mensagem, 'details': detalhes}.


class ErroApi(Exception):
    status = 500
    mensagem_padrao = 'Erro interno do servidor'

    def __init__(self, mensagem=None, detalhes=None):
        super().__init__(mensagem or self.mensagem_padrao)
        self.mensagem = mensagem or self.mensagem_padrao
        self.detalhes = detalhes

    def to_dict(self):
        payload = {'error': self.mensagem}
        if self.detalhes is not None:
            payload['details'] = self.detalhes
        return payload


class ErroValidacao(ErroApi):
    status = 400
    mensagem_padrao = 'Dados inválidos'


class ErroNaoAutenticado(ErroApi):
    status = 401
    mensagem_padrao = 'Não autenticado'


class ErroProibido(ErroApi):
    status = 403
    mensagem_padrao = 'Acesso não autorizado para este perfil.'


class ErroNaoEncontrado(ErroApi):
    status = 404
    mensagem_padrao = 'Recurso não encontrado'


class ErroConflito(ErroApi):
    status = 409
    mensagem_padrao = 'Registro duplicado'


class LoginEsgotadoError(ErroApi):
    """Nenhum sufixo livre para o login dentro do limite configurado."""
    status = 500
    mensagem_padrao = 'Não foi possível gerar um login disponível'
