"""Sigstore bundles: loading, validation and access to their content."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Optional, Union

from cryptography import x509

from .content import Certificate, Envelope, MessageSignature, PublicKey
from .errors import (
    EmptyBundleError,
    MissingBundleContentError,
    MissingEnvelopeError,
    MissingVerificationMaterialError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from .model import DsseEnvelope, DsseSignature, ProtoBundle, TransparencyLogEntry
from .versions import compare, is_valid

MEDIA_TYPE_BASE = "application/vnd.dev.sigstore.bundle"

_LEGACY_MEDIA_TYPES = {
    f"{MEDIA_TYPE_BASE}+json;version=0.{minor}": f"v0.{minor}" for minor in (1, 2, 3)
}


class _BundleRuleError(ValidationError):
    """A version-specific rule of the bundle format is broken."""

    def __init__(self, text: str) -> None:
        super().__init__(text)
        self.args = (text,)


def _with_context(exc: ValidationError, context: str) -> ValidationError:
    return type(exc)(exc.detail, context=context)


def bundle_version(media_type: str) -> str:
    """Return the "v"-prefixed bundle version named by ``media_type``."""
    legacy = _LEGACY_MEDIA_TYPES.get(media_type)
    if legacy is not None:
        return legacy
    prefix = MEDIA_TYPE_BASE + "."
    if media_type.startswith(MEDIA_TYPE_BASE + ".v") and media_type.endswith("+json"):
        version = media_type[len(prefix) : -len("+json")]
        if is_valid(version):
            return version
        raise UnsupportedMediaTypeError(f"invalid bundle version: {version}")
    raise UnsupportedMediaTypeError(media_type)


def media_type_string(version: str) -> str:
    """Return the media type for a bundle version; raise ValueError if none fits."""
    if not version:
        raise ValueError("unable to build media type string, no version defined")
    version = version.removeprefix("v")
    bare = version.removeprefix("v")
    if version in ("0.1", "0.2"):
        media_type = f"{MEDIA_TYPE_BASE}+json;version={bare}"
    else:
        media_type = f"{MEDIA_TYPE_BASE}.v{bare}+json"
    try:
        bundle_version(media_type)
    except ValidationError as exc:
        raise ValueError(f"unable to build mediatype: {exc}") from exc
    return media_type


def _check_structure(proto: ProtoBundle) -> None:
    if proto.message_signature is None and proto.dsse_envelope is None:
        raise MissingBundleContentError()
    material = proto.verification_material
    if material is None or (
        material.public_key is None
        and material.certificate is None
        and material.x509_certificate_chain is None
    ):
        raise MissingVerificationMaterialError()


def _load_certificate(raw: bytes) -> Certificate:
    try:
        return Certificate(x509.load_der_x509_certificate(raw))
    except ValueError as exc:
        raise ValidationError(exc) from exc


def _parse_envelope(envelope: Optional[DsseEnvelope]) -> Envelope:
    if envelope is None or envelope.payload is None:
        raise MissingEnvelopeError()
    signatures = []
    for sig in envelope.signatures:
        if sig is None:
            raise MissingEnvelopeError()
        signatures.append(DsseSignature(sig=sig.sig, keyid=sig.keyid))
    return Envelope(
        payload_type=envelope.payload_type,
        payload=base64.b64encode(envelope.payload).decode("ascii"),
        signatures=signatures,
    )


@dataclass
class Bundle:
    """A bundle message with the checks and accessors that verification needs."""

    proto: ProtoBundle
    has_inclusion_promise: bool = field(default=False, init=False, compare=False)
    has_inclusion_proof: bool = field(default=False, init=False, compare=False)

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> Bundle:
        """Parse and validate a bundle from its JSON form."""
        bundle = cls(ProtoBundle.from_dict(json.loads(data)))
        bundle.validate()
        return bundle

    def to_json(self) -> str:
        """The bundle in its JSON form."""
        return json.dumps(self.proto.to_dict())

    def validate(self) -> None:
        """Raise a ValidationError if the bundle breaks the rules of its version."""
        proto = self.proto
        if proto is None:
            raise EmptyBundleError()
        try:
            version = bundle_version(proto.media_type)
        except ValidationError as exc:
            raise _with_context(exc, "error getting bundle version") from exc

        if compare(version, "v0.1") < 0:
            raise UnsupportedMediaTypeError(f"bundle version {version} is not supported")

        entries = self.tlog_entries()
        if compare(version, "v0.1") == 0:
            if entries and not self.has_inclusion_promise:
                raise _BundleRuleError(
                    "inclusion promises missing in bundle (required for bundle v0.1)"
                )
        elif entries and not self.has_inclusion_proof:
            raise _BundleRuleError(
                "inclusion proof missing in bundle (required for bundle v0.2)"
            )

        material = proto.verification_material
        if (
            compare(version, "v0.3") >= 0
            and material is not None
            and material.x509_certificate_chain is not None
        ):
            raise _BundleRuleError(
                "verification material cannot be X.509 certificate chain (for bundle v0.3)"
            )

        if compare(version, "v0.4") >= 0:
            raise UnsupportedMediaTypeError(f"bundle version {version} is not yet supported")

        try:
            _check_structure(proto)
        except ValidationError as exc:
            raise _with_context(exc, "invalid bundle") from exc

    def verification_content(self) -> Union[Certificate, PublicKey]:
        """The signing certificate or public key reference of the bundle."""
        material = self.proto.verification_material
        if material is None:
            raise MissingVerificationMaterialError()
        if material.x509_certificate_chain is not None:
            chain = material.x509_certificate_chain
            if not chain or chain[0].raw_bytes is None:
                raise MissingVerificationMaterialError()
            return _load_certificate(chain[0].raw_bytes)
        if material.certificate is not None:
            if material.certificate.raw_bytes is None:
                raise MissingVerificationMaterialError()
            return _load_certificate(material.certificate.raw_bytes)
        if material.public_key is not None:
            return PublicKey(hint=material.public_key.hint)
        raise MissingVerificationMaterialError()

    def tlog_entries(self) -> list[TransparencyLogEntry]:
        """Checked transparency log entries; records which proofs they carry."""
        material = self.proto.verification_material
        if material is None:
            return []
        entries = []
        for entry in material.tlog_entries:
            try:
                entry.check()
            except ValueError as exc:
                raise ValidationError(exc) from exc
            if entry.has_inclusion_promise():
                self.has_inclusion_promise = True
            if entry.has_inclusion_proof():
                self.has_inclusion_proof = True
            entries.append(entry)
        return entries

    def signature_content(self) -> Union[Envelope, MessageSignature]:
        """The DSSE envelope or message signature of the bundle."""
        proto = self.proto
        if proto.dsse_envelope is not None:
            return _parse_envelope(proto.dsse_envelope)
        if proto.message_signature is not None:
            message = proto.message_signature
            if message.message_digest is None:
                raise MissingVerificationMaterialError()
            return MessageSignature(
                digest=message.message_digest.digest,
                digest_algorithm=message.message_digest.algorithm,
                signature=message.signature,
            )
        raise MissingVerificationMaterialError()

    def envelope(self) -> Envelope:
        """The DSSE envelope of the bundle."""
        if self.proto.dsse_envelope is not None:
            return _parse_envelope(self.proto.dsse_envelope)
        raise MissingVerificationMaterialError()

    def timestamps(self) -> list[bytes]:
        """The signed RFC 3161 timestamps carried by the bundle."""
        material = self.proto.verification_material
        if material is None:
            raise MissingVerificationMaterialError()
        data = material.timestamp_verification_data
        if data is None:
            return []
        return [ts.signed_timestamp for ts in data.rfc3161_timestamps]

    def min_version(self, expected_version: str) -> bool:
        """Whether the bundle version is at least ``expected_version``."""
        try:
            version = bundle_version(self.proto.media_type)
        except ValidationError:
            return False
        if not expected_version.startswith("v"):
            expected_version = "v" + expected_version
        return compare(version, expected_version) >= 0


def load_json_from_path(path: Union[str, PathLike]) -> Bundle:
    """Read, parse and validate a bundle from a JSON file."""
    return Bundle.from_json(Path(path).read_bytes())