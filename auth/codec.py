"""
auth/codec.py -- Symmetric encryption for verification tokens.

Verification tokens are recoverable opaque strings: the server must be able
to read back which email and purpose a token was issued for, so a one-way
hash will not do.

Cipher: AES-256-GCM (cryptography). Each call draws a fresh 96-bit random
nonce, so encrypting the same plaintext twice yields different tokens and
an observer cannot tell that two links were issued for the same address.
The nonce travels in front of the ciphertext:

    token = hex( nonce[12] || ciphertext || tag[16] )

decrypt() therefore needs nothing but the token and the key. GCM's tag also
means a tampered token fails loudly instead of decrypting to garbage.

Any decode problem raises TokenDecodeError. Callers map that to a generic
"invalid token" -- the exception text never reaches a client.

Layer rule: no imports from api/ or verification/.
"""

from __future__ import annotations

import json
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from auth.models import Purpose, TokenSubject

_NONCE_BYTES = 12
_TAG_BYTES = 16
_KEY_BYTES = 32


class TokenDecodeError(ValueError):
    """Raised when a token cannot be decrypted or does not hold a TokenSubject."""


class SymmetricCodec:
    """Encrypts short UTF-8 strings into hex tokens with a pre-shared key.

    Usage:
        codec = SymmetricCodec.from_hex_key(settings.encryption_key)
        token = codec.seal(TokenSubject("a@x.com", Purpose.ACCOUNT_VERIFICATION))
        subject = codec.open(token)
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != _KEY_BYTES:
            raise ValueError(f"Encryption key must be {_KEY_BYTES} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_hex_key(cls, hex_key: str) -> SymmetricCodec:
        try:
            key = bytes.fromhex(hex_key)
        except ValueError as exc:
            raise ValueError("Encryption key must be hex encoded") from exc
        return cls(key)

    # ------------------------------------------------------------------
    # Raw strings
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> str:
        nonce = secrets.token_bytes(_NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return (nonce + sealed).hex()

    def decrypt(self, ciphertext: str) -> str:
        try:
            raw = bytes.fromhex(ciphertext)
        except (ValueError, TypeError) as exc:
            raise TokenDecodeError("Token is not valid hex") from exc
        if len(raw) < _NONCE_BYTES + _TAG_BYTES:
            raise TokenDecodeError("Token is too short")
        nonce, sealed = raw[:_NONCE_BYTES], raw[_NONCE_BYTES:]
        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            raise TokenDecodeError("Token failed authentication") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TokenDecodeError("Token payload is not UTF-8") from exc

    # ------------------------------------------------------------------
    # Tagged subjects
    # ------------------------------------------------------------------

    def seal(self, subject: TokenSubject) -> str:
        payload = json.dumps({"email": subject.email, "purpose": subject.purpose.value}, separators=(",", ":"))
        return self.encrypt(payload)

    def open(self, token: str) -> TokenSubject:
        """Decrypt a token produced by seal(). Raises TokenDecodeError on any mismatch."""
        plaintext = self.decrypt(token)
        try:
            payload = json.loads(plaintext)
            email = payload["email"]
            purpose = Purpose(payload["purpose"])
        except (ValueError, KeyError, TypeError) as exc:
            raise TokenDecodeError("Token payload is malformed") from exc
        if not isinstance(email, str) or not email:
            raise TokenDecodeError("Token payload is malformed")
        return TokenSubject(email=email, purpose=purpose)
