"""
webstead/activitypub/keys.py

Gerência do par de chaves RSA de cada webstead.

- `generate_keypair()`    - gera um par RSA 2048 e devolve (privada, pública) em PEM
- `ensure_keypair()`      - gera e grava as chaves se o webstead ainda não tiver;
                            nunca sobrescreve chaves existentes
- `public_key_pem()` / `private_key_pem()` - acessores
- `load_private_key()` / `load_public_key()` - PEM → objeto cryptography
"""

import logging

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from webstead.errors import KeyGenerationError
from webstead.models.webstead import Webstead

log = logging.getLogger(__name__)

KEY_SIZE = 2048


def generate_keypair() -> tuple[str, str]:
    try:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    except Exception as e:
        raise KeyGenerationError(f"RSA key generation failed: {e}") from e

    return private_pem.decode(), public_pem.decode()


def ensure_keypair(webstead: Webstead) -> bool:
    """
    Garante que o webstead tenha um par de chaves.
    Retorna True se as chaves foram geradas agora, False se já existiam.

    Não faz commit: quem provisiona o webstead decide quando persistir.
    Erros de geração propagam (KeyGenerationError) sem retry.
    """
    if webstead.private_key:
        return False

    webstead.private_key, webstead.public_key = generate_keypair()
    log.info(f"Par de chaves RSA gerado para {webstead.subdomain}")
    return True


def public_key_pem(webstead: Webstead) -> str | None:
    return webstead.public_key


def private_key_pem(webstead: Webstead) -> str | None:
    return webstead.private_key


def load_private_key(pem: str | bytes) -> rsa.RSAPrivateKey:
    if isinstance(pem, str):
        pem = pem.encode()
    return serialization.load_pem_private_key(pem, password=None)


def load_public_key(pem: str | bytes) -> rsa.RSAPublicKey:
    if isinstance(pem, str):
        pem = pem.encode()
    return serialization.load_pem_public_key(pem)
