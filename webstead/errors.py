"""
webstead/errors.py

Taxonomia de erros da federação.

Cada exceção HTTP carrega o status com que a rota responde; o handler
registrado em main.py converte qualquer FederationError em
`{"error": mensagem}` com esse status.
"""


class FederationError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ClientError(FederationError):
    """Entrada ausente ou malformada."""

    status_code = 400


class AuthError(FederationError):
    """Assinatura HTTP inválida (401) ou header Signature ausente/malformado (400)."""

    status_code = 401


class NotFoundError(FederationError):
    status_code = 404


class UnsupportedError(FederationError):
    """Tipo de atividade não implementado."""

    status_code = 501


class UpstreamUnavailable(FederationError):
    """
    Falha ao buscar o actor remoto. Por convenção do ActivityPub o servidor
    remoto tenta de novo ao receber 503.
    """

    status_code = 503


class ProcessingError(FederationError):
    status_code = 422


class InvalidHandleError(ClientError):
    pass


# ---------------------------------------------------------------------------
# Erros internos (não viram resposta HTTP diretamente)
# ---------------------------------------------------------------------------


class KeyGenerationError(Exception):
    """Falha ao gerar o par RSA, fatal para o provisionamento do webstead."""


class DeliveryError(Exception):
    """Falha de uma única tentativa de entrega; pode ser repetida."""

    def __init__(self, inbox_url: str, reason: str, status_code: int | None = None):
        super().__init__(f"Delivery to {inbox_url} failed: {reason}")
        self.inbox_url = inbox_url
        self.reason = reason
        self.status_code = status_code
