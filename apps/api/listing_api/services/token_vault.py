from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken

from ..settings import settings


def _fernet() -> Fernet:
    key = settings.app_encryption_key or settings.token_encryption_key
    return Fernet(key.encode("utf-8"))


def encrypt_token(token: str | None) -> str | None:
    if not token:
        return None
    return _fernet().encrypt(token.encode("utf-8")).decode("utf-8")


def decrypt_token(token_enc: str | None) -> str | None:
    if not token_enc:
        return None
    try:
        return _fernet().decrypt(token_enc.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        raise ValueError("stored credential could not be decrypted") from exc
