"""Sealed-box encryption for GitHub Actions secrets."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field

from nacl.exceptions import CryptoError
from nacl.public import PublicKey, SealedBox

from tokenator._errors import UpstreamProtocolError


@dataclass(frozen=True, slots=True)
class EncryptedSecret:
    """A secret sealed for one environment's public key.

    Attributes
    ----------
    name
        Secret name as exposed to workflows.
    key_id
        Identifier of the public key the value was sealed with.
    encrypted_value
        Base64 sealed-box ciphertext.
    """

    name: str
    key_id: str
    encrypted_value: str = field(repr=False)

    def to_payload(self) -> dict[str, str]:
        return {"encrypted_value": self.encrypted_value, "key_id": self.key_id}


def seal_secret(public_key_b64: str, plaintext: str) -> str:
    """Seal ``plaintext`` for the base64 Curve25519 ``public_key_b64``.

    The ciphertext embeds an ephemeral sender key, so only the holder of the
    matching private key can open it and the sender stays anonymous.
    """

    try:
        key_bytes = base64.b64decode(public_key_b64, validate=True)
        sealed = SealedBox(PublicKey(key_bytes)).encrypt(plaintext.encode("utf-8"))
    except (binascii.Error, ValueError, TypeError, CryptoError) as exc:
        msg = f"failed to encrypt secret: invalid public key: {exc}"
        raise UpstreamProtocolError(msg) from exc
    return base64.b64encode(sealed).decode("ascii")


def encrypt_secret(name: str, key_id: str, public_key_b64: str, value: str) -> EncryptedSecret:
    """Return an :class:`EncryptedSecret` ready for upload."""

    return EncryptedSecret(
        name=name,
        key_id=key_id,
        encrypted_value=seal_secret(public_key_b64, value),
    )


__all__ = ["EncryptedSecret", "encrypt_secret", "seal_secret"]
