"""Build Sigstore bundles from the simple signing layer of a cosign OCI signature."""

from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass, field
from typing import Any, Union

from .bundle import Bundle, media_type_string
from .errors import ValidationError
from .model import (
    HashOutput,
    InclusionPromise,
    KindVersion,
    MessageSignatureMessage,
    ProtoBundle,
    TransparencyLogEntry,
    VerificationMaterial,
    X509Certificate,
)

SIMPLE_SIGNING_MEDIA_TYPE = "application/vnd.dev.cosign.simplesigning.v1+json"
CERTIFICATE_ANNOTATION = "dev.sigstore.cosign/certificate"
BUNDLE_ANNOTATION = "dev.sigstore.cosign/bundle"
SIGNATURE_ANNOTATION = "dev.cosignproject.cosign/signature"

_DIGEST_ALGORITHMS = {"sha256": "SHA2_256"}

_PEM_BLOCK = re.compile(
    r"-----BEGIN ([^\r\n-]*)-----\r?\n(.*?)-----END \1-----",
    re.DOTALL,
)


@dataclass
class LayerDescriptor:
    """A layer of a signature manifest: media type, digest and annotations."""

    media_type: str
    digest_algorithm: str
    digest_hex: str
    annotations: dict[str, str] = field(default_factory=dict)


def _layer_from_dict(data: Any) -> LayerDescriptor:
    if not isinstance(data, dict):
        raise ValueError("error parsing signature manifest: layer is not an object")
    media_type = data.get("mediaType", "")
    digest = data.get("digest", "")
    annotations = data.get("annotations") or {}
    if not isinstance(media_type, str) or not isinstance(digest, str):
        raise ValueError("error parsing signature manifest: malformed layer")
    if not isinstance(annotations, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in annotations.items()
    ):
        raise ValueError("error parsing signature manifest: malformed annotations")
    algorithm, sep, hex_digest = digest.partition(":")
    if not sep:
        raise ValueError(f"error parsing signature manifest: cannot parse hash: {digest!r}")
    return LayerDescriptor(media_type, algorithm, hex_digest, dict(annotations))


def select_simple_signing_layer(manifest: Union[str, bytes, dict]) -> LayerDescriptor:
    """Return the first layer of a signature manifest if it is a simple signing layer."""
    if isinstance(manifest, (str, bytes)):
        try:
            manifest = json.loads(manifest)
        except ValueError as exc:
            raise ValueError(f"error parsing signature manifest: {exc}") from exc
    if not isinstance(manifest, dict):
        raise ValueError("error parsing signature manifest: expected a JSON object")
    layers = manifest.get("layers") or []
    if not isinstance(layers, list):
        raise ValueError("error parsing signature manifest: layers is not a list")
    if not layers:
        raise ValueError("no suitable layers found in signature manifest")
    layer = _layer_from_dict(layers[0])
    if layer.media_type != SIMPLE_SIGNING_MEDIA_TYPE:
        raise ValueError("no suitable layers found in signature manifest")
    return layer


def _b64decode(text: str) -> bytes:
    return base64.b64decode(text, validate=True)


def certificate_chain_from_layer(layer: LayerDescriptor) -> list[X509Certificate]:
    """The signing certificate of the layer as a one-element certificate chain."""
    pem_text = layer.annotations.get(CERTIFICATE_ANNOTATION, "")
    match = _PEM_BLOCK.search(pem_text)
    if match is None:
        raise ValueError("failed to decode PEM block")
    try:
        der = base64.b64decode("".join(match.group(2).split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("failed to decode PEM block") from exc
    return [X509Certificate(raw_bytes=der)]


def _number(payload: dict, key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"error getting {key}")
    return int(value)


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"error getting {key}")
    return value


def tlog_entries_from_layer(layer: LayerDescriptor) -> list[TransparencyLogEntry]:
    """The transparency log entry described by the layer's cosign bundle annotation."""
    raw = layer.annotations.get(BUNDLE_ANNOTATION, "")
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ValueError(f"error unmarshaling json: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("error unmarshaling json: expected a JSON object")
    payload = data.get("Payload")
    if not isinstance(payload, dict):
        raise ValueError("error getting logIndex")

    log_index = _number(payload, "logIndex")
    log_id_hex = _text(payload, "logID")
    try:
        log_id = binascii.unhexlify(log_id_hex)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"error decoding logID: {exc}") from exc
    integrated_time = _number(payload, "integratedTime")

    set_text = _text(data, "SignedEntryTimestamp")
    try:
        signed_entry_timestamp = _b64decode(set_text)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"error decoding signedEntryTimestamp: {exc}") from exc

    body_text = _text(payload, "body")
    try:
        body = _b64decode(body_text)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"error decoding body: {exc}") from exc
    try:
        body_data = json.loads(body)
    except ValueError as exc:
        raise ValueError(f"error unmarshaling json: {exc}") from exc
    if not isinstance(body_data, dict):
        raise ValueError("error unmarshaling json: expected a JSON object")
    api_version = _text(body_data, "apiVersion")
    kind = _text(body_data, "kind")

    return [
        TransparencyLogEntry(
            log_index=log_index,
            log_id=log_id,
            kind_version=KindVersion(kind=kind, version=api_version),
            integrated_time=integrated_time,
            inclusion_promise=InclusionPromise(signed_entry_timestamp=signed_entry_timestamp),
            inclusion_proof=None,
            canonicalized_body=body,
        )
    ]


def verification_material_from_layer(layer: LayerDescriptor) -> VerificationMaterial:
    """Certificate chain and log entries of the layer as bundle verification material."""
    try:
        chain = certificate_chain_from_layer(layer)
    except ValueError as exc:
        raise ValueError(f"error getting signing certificate: {exc}") from exc
    try:
        entries = tlog_entries_from_layer(layer)
    except ValueError as exc:
        raise ValueError(f"error getting tlog entries: {exc}") from exc
    return VerificationMaterial(
        x509_certificate_chain=chain,
        tlog_entries=entries,
        timestamp_verification_data=None,
    )


def message_signature_from_layer(layer: LayerDescriptor) -> MessageSignatureMessage:
    """The layer's digest and signature as a bundle message signature."""
    algorithm = _DIGEST_ALGORITHMS.get(layer.digest_algorithm)
    if algorithm is None:
        raise ValueError(f"unknown digest algorithm: {layer.digest_algorithm}")
    try:
        digest = binascii.unhexlify(layer.digest_hex)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"error decoding digest: {exc}") from exc
    try:
        signature = _b64decode(layer.annotations.get(SIGNATURE_ANNOTATION, ""))
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"error decoding manSig: {exc}") from exc
    return MessageSignatureMessage(
        message_digest=HashOutput(algorithm=algorithm, digest=digest),
        signature=signature,
    )


def bundle_from_layer(layer: LayerDescriptor) -> tuple[Bundle, str]:
    """Build a validated v0.1 bundle and return it with the signed layer's hex digest."""
    try:
        material = verification_material_from_layer(layer)
    except ValueError as exc:
        raise ValueError(f"error getting verification material: {exc}") from exc
    try:
        message = message_signature_from_layer(layer)
    except ValueError as exc:
        raise ValueError(f"error getting message signature: {exc}") from exc
    try:
        media_type = media_type_string("0.1")
    except ValueError as exc:
        raise ValueError(f"error getting bundle media type: {exc}") from exc
    bundle = Bundle(
        ProtoBundle(
            media_type=media_type,
            verification_material=material,
            message_signature=message,
        )
    )
    try:
        bundle.validate()
    except ValidationError as exc:
        raise ValueError(f"error creating bundle: {exc}") from exc
    return bundle, layer.digest_hex