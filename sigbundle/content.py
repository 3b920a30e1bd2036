"""Signature and verification content carried by a bundle."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from cryptography import x509

from .errors import DecodingB64Error, DecodingJSONError, UnsupportedMediaTypeError
from .model import DsseSignature

IN_TOTO_MEDIA_TYPE = "application/vnd.in-toto+json"

_STATEMENT_KEYS = frozenset({"_type", "subject", "predicateType", "predicate_type", "predicate"})


class _KeyVerifier(Protocol):
    def public_key(self) -> Any: ...

    def valid_at_time(self, when: datetime) -> bool: ...


class _TrustedMaterial(Protocol):
    def public_key_verifier(self, hint: str) -> _KeyVerifier: ...


@dataclass(frozen=True)
class MessageSignature:
    """A signature over the digest of an artifact."""

    digest: bytes
    digest_algorithm: str
    signature: bytes


@dataclass
class Envelope:
    """A DSSE envelope; the payload is kept in its base64 form."""

    payload_type: str
    payload: str
    signatures: list[DsseSignature] = field(default_factory=list)

    @property
    def signature(self) -> bytes:
        """The first signature, or empty bytes if there is none."""
        return self.signatures[0].sig if self.signatures else b""

    def decode_payload(self) -> bytes:
        """Decode the payload; raise DecodingB64Error if it is not base64."""
        for decode in (base64.b64decode, base64.urlsafe_b64decode):
            try:
                if decode is base64.b64decode:
                    return decode(self.payload, validate=True)
                return decode(self.payload)
            except (binascii.Error, ValueError):
                continue
        raise DecodingB64Error()

    def statement(self) -> dict[str, Any]:
        """Return the in-toto statement held in the payload."""
        if self.payload_type != IN_TOTO_MEDIA_TYPE:
            raise UnsupportedMediaTypeError()
        try:
            raw = self.decode_payload()
        except DecodingB64Error as exc:
            raise DecodingB64Error() from exc
        try:
            document = json.loads(raw)
        except ValueError as exc:
            raise DecodingJSONError() from exc
        if not isinstance(document, dict) or not set(document) <= _STATEMENT_KEYS:
            raise DecodingJSONError()
        if not isinstance(document.get("subject", []), list):
            raise DecodingJSONError()
        if not isinstance(document.get("predicate", {}), (dict, type(None))):
            raise DecodingJSONError()
        return document


def _as_utc(when: datetime) -> datetime:
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when


@dataclass(frozen=True)
class Certificate:
    """A signing certificate used as verification content."""

    certificate: x509.Certificate

    def compare_key(self, key: Any, trusted_material: Optional[_TrustedMaterial] = None) -> bool:
        """Whether ``key`` is this very certificate."""
        return isinstance(key, x509.Certificate) and key == self.certificate

    def valid_at_time(
        self, when: datetime, trusted_material: Optional[_TrustedMaterial] = None
    ) -> bool:
        """Whether ``when`` lies within the certificate's validity period."""
        when = _as_utc(when)
        cert = self.certificate
        return cert.not_valid_before_utc <= when <= cert.not_valid_after_utc


@dataclass(frozen=True)
class PublicKey:
    """A public key named by a hint into trusted material."""

    hint: str = ""

    def _verifier(self, trusted_material: _TrustedMaterial) -> Optional[_KeyVerifier]:
        try:
            return trusted_material.public_key_verifier(self.hint)
        except (LookupError, ValueError):
            return None

    def compare_key(self, key: Any, trusted_material: _TrustedMaterial) -> bool:
        """Whether ``key`` equals the trusted key that the hint names."""
        verifier = self._verifier(trusted_material)
        if verifier is None:
            return False
        try:
            trusted_key = verifier.public_key()
        except (LookupError, ValueError):
            return False
        return bool(key == trusted_key)

    def valid_at_time(self, when: datetime, trusted_material: _TrustedMaterial) -> bool:
        """Whether the trusted key that the hint names is valid at ``when``."""
        verifier = self._verifier(trusted_material)
        if verifier is None:
            return False
        return bool(verifier.valid_at_time(when))