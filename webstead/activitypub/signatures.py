"""
webstead/activitypub/signatures.py

HTTP Message Signatures no estilo draft-cavage, como o Mastodon usa.

Assinatura (saída):
    build_signing_string() → sign() → header Signature
    signed_headers() faz tudo de uma vez para um POST de entrega

Verificação (entrada):
    parse_signature_header() → verify(params, public_key_pem, RequestView)

A string de assinatura da verificação é montada a partir da lista `headers`
declarada pelo remetente, usando os valores que *nós* recebemos. Um header
listado mas ausente no request invalida a assinatura; só o pseudo-header
(request-target) é sintetizado.
"""

import base64
import binascii
import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Mapping

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from webstead.activitypub.keys import load_private_key, load_public_key
from webstead.errors import AuthError

log = logging.getLogger(__name__)

REQUEST_TARGET = "(request-target)"
DEFAULT_HEADERS = (REQUEST_TARGET, "host", "date", "digest")
SUPPORTED_ALGORITHMS = ("rsa-sha256", "hs2019")

_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class SignatureParams:
    key_id: str
    headers: tuple[str, ...]
    signature: bytes
    algorithm: str | None = None

    @property
    def actor_uri(self) -> str:
        """keyId sem o fragmento (#main-key)."""
        return self.key_id.split("#", 1)[0]


@dataclass(frozen=True)
class RequestView:
    """O request como o verificador o enxerga: método, path+query e headers."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(
            self, "headers", {k.lower(): v for k, v in dict(self.headers).items()}
        )


# ---------------------------------------------------------------------------
# Digest
# ---------------------------------------------------------------------------


def digest(body: bytes) -> str:
    return "SHA-256=" + base64.b64encode(hashlib.sha256(body).digest()).decode()


def digest_matches(header_value: str, body: bytes) -> bool:
    """Compara o header Digest (pode ter vários algoritmos) com o corpo recebido."""
    expected = digest(body).split("=", 1)[1]
    for part in header_value.split(","):
        algorithm, _, value = part.strip().partition("=")
        if algorithm.upper() == "SHA-256":
            return value == expected
    return False


# ---------------------------------------------------------------------------
# Assinatura
# ---------------------------------------------------------------------------


def build_signing_string(
    method: str,
    path: str,
    host: str,
    date: str,
    digest: str | None = None,
) -> str:
    lines = [
        f"{REQUEST_TARGET}: {method.lower()} {path}",
        f"host: {host}",
        f"date: {date}",
    ]
    if digest:
        lines.append(f"digest: {digest}")
    return "\n".join(lines)


def _headers_of(signing_string: str) -> list[str]:
    return [line.split(":", 1)[0] for line in signing_string.split("\n")]


def sign(
    signing_string: str,
    private_key_pem: str,
    key_id: str,
    headers: list[str] | tuple[str, ...] | None = None,
) -> str:
    """
    Assina com RSA-SHA256 e devolve o valor do header Signature.
    Sem `headers`, a lista é lida da própria string de assinatura.
    """
    headers = list(headers) if headers else _headers_of(signing_string)
    private_key = load_private_key(private_key_pem)
    raw = private_key.sign(signing_string.encode(), padding.PKCS1v15(), hashes.SHA256())
    signature_b64 = base64.b64encode(raw).decode()
    return (
        f'keyId="{key_id}",algorithm="rsa-sha256",'
        f'headers="{" ".join(headers)}",signature="{signature_b64}"'
    )


def signed_headers(
    method: str,
    url: str,
    body: bytes,
    private_key_pem: str,
    key_id: str,
    now: datetime | None = None,
) -> dict[str, str]:
    """Host, Date, Digest e Signature prontos para um request de saída."""
    target = httpx.URL(url)
    host = target.host if target.port is None else f"{target.host}:{target.port}"
    path = target.raw_path.decode()
    date = format_datetime(now or datetime.now(timezone.utc), usegmt=True)
    body_digest = digest(body)

    signing_string = build_signing_string(method, path, host, date, body_digest)
    return {
        "Host": host,
        "Date": date,
        "Digest": body_digest,
        "Signature": sign(signing_string, private_key_pem, key_id),
    }


# ---------------------------------------------------------------------------
# Verificação
# ---------------------------------------------------------------------------


def parse_signature_header(value: str | None) -> SignatureParams:
    """
    Lê keyId, algorithm, headers e signature.
    keyId, signature e headers são obrigatórios; faltando qualquer um
    (ou com assinatura em base64 inválido) levanta AuthError 400.
    """
    if not value:
        raise AuthError("Missing Signature header", status_code=400)

    params = dict(_PARAM_RE.findall(value))
    if not all(params.get(k) for k in ("keyId", "signature", "headers")):
        raise AuthError("Malformed Signature header", status_code=400)

    try:
        signature = base64.b64decode(params["signature"], validate=True)
    except (binascii.Error, ValueError):
        raise AuthError("Malformed Signature header", status_code=400)

    return SignatureParams(
        key_id=params["keyId"],
        headers=tuple(params["headers"].lower().split()),
        signature=signature,
        algorithm=params.get("algorithm"),
    )


class MissingSignedHeader(Exception):
    pass


def build_verification_string(headers: tuple[str, ...], request: RequestView) -> str:
    lines = []
    for name in headers:
        if name == REQUEST_TARGET:
            lines.append(f"{REQUEST_TARGET}: {request.method.lower()} {request.path}")
            continue
        value = request.headers.get(name)
        if value is None:
            raise MissingSignedHeader(name)
        lines.append(f"{name}: {value}")
    return "\n".join(lines)


def verify(params: SignatureParams, public_key_pem: str, request: RequestView) -> bool:
    if params.algorithm and params.algorithm.lower() not in SUPPORTED_ALGORITHMS:
        log.warning(f"Algoritmo de assinatura não suportado: {params.algorithm}")
        return False

    try:
        signing_string = build_verification_string(params.headers, request)
    except MissingSignedHeader as e:
        log.warning(f"Header assinado ausente no request: {e}")
        return False

    try:
        public_key = load_public_key(public_key_pem)
        public_key.verify(
            params.signature,
            signing_string.encode(),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except InvalidSignature:
        return False
    except (ValueError, TypeError) as e:
        log.error(f"Chave pública inválida para {params.key_id}: {e}")
        return False
    return True
