import base64
import json
from datetime import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from sigbundle.bundle import (
    Bundle,
    bundle_version,
    load_json_from_path,
    media_type_string,
)
from sigbundle.content import Certificate, Envelope, MessageSignature, PublicKey
from sigbundle.errors import (
    MissingEnvelopeError,
    MissingVerificationMaterialError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from sigbundle.model import (
    Checkpoint,
    DsseEnvelope,
    DsseSignature,
    HashOutput,
    InclusionPromise,
    InclusionProof,
    KindVersion,
    MessageSignatureMessage,
    ProtoBundle,
    PublicKeyIdentifier,
    Rfc3161Timestamp,
    TimestampVerificationData,
    TransparencyLogEntry,
    VerificationMaterial,
    X509Certificate,
)

TLOG_BODY = {
    "kind": "hashedrekord",
    "apiVersion": "0.0.1",
    "spec": {
        "signature": {
            "content": "sn/VqLMqWjDeYt93XTb6LzWIsKIn5bOvEsZQyF1elkvpur85LoDk5q/ExGWBB0Y+v8q0B04Bg2xGMOVMNyD/LQ==",
            "publicKey": {
                "content": "LS0tLS1CRUdJTiBDRVJUSUZJQ0FURS0tLS0tCk1JSUJnekNDQVMyZ0F3SUJBZ0lVS2cxZHN1OTBoS0daVW5WN1RRWFZPRjdOZCtrd0RRWUpLb1pJaHZjTkFRRUwKQlFBd0ZqRVVNQklHQTFVRUF3d0xhblZ6ZEhSeWRYTjBiV1V3SGhjTk1qUXdOakkwTWpJMU5USXpXaGNOTXpRdwpOakl5TWpJMU5USXpXakFXTVJRd0VnWURWUVFEREF0cWRYTjBkSEoxYzNSdFpUQmNNQTBHQ1NxR1NJYjNEUUVCCkFRVUFBMHNBTUVnQ1FRRGIwNjhSMkpYNStZSE5nZWVyeDlzM1k2eEp2ZVdPRGl3YnROZWtKaytTWUlDUjNYQlQKaDErNUJ1SStwTGNyTXNyQTZlOThaNkNxUkJjNDdEL05LdWgvQWdNQkFBR2pVekJSTUIwR0ExVWREZ1FXQkJTbgpKbExuNWZjeXYzNnlibHBKYTVkcmdhQlNBREFmQmdOVkhTTUVHREFXZ0JTbkpsTG41ZmN5djM2eWJscEphNWRyCmdhQlNBREFQQmdOVkhSTUJBZjhFQlRBREFRSC9NQTBHQ1NxR1NJYjNEUUVCQ3dVQUEwRUFaaTNCMTF4VDY5TjQKNnl4ODg5Rkl2Z0xIdjQvaUROR2JTUkpHanlXMXY1RFpscXBBT0dYWjc5V3d2TFJZQlAxbFhid0tGaGlzTlNsUwpNRk84c0FHZ1hRPT0KLS0tLS1FTkQgQ0VSVElGSUNBVEUtLS0tLQo=",
            },
        },
        "data": {
            "hash": {
                "algorithm": "sha256",
                "value": "bc103b4a84971ef6459b294a2b98568a2bfb72cded09d4acd1e16366a401f95b",
            },
        },
    },
}
BODY = json.dumps(TLOG_BODY).encode()
ROOT_HASH = b"b5bb9d8014a0f9b1d61e21e796d78dccdf1352f23cd32812f4850b878ae4944c"

V01 = "application/vnd.dev.sigstore.bundle+json;version=0.1"
V02 = "application/vnd.dev.sigstore.bundle+json;version=0.2"
V03 = "application/vnd.dev.sigstore.bundle+json;version=0.3"


def _b64(data):
    return base64.b64encode(data).decode("ascii")


def _entry(*, promise=False, proof=False, checkpoint=None):
    entry = TransparencyLogEntry(
        log_index=42,
        log_id=b"deadbeef",
        kind_version=KindVersion(kind="hashedrekord", version="0.0.1"),
        integrated_time=1,
        canonicalized_body=BODY,
    )
    if promise:
        entry.inclusion_promise = InclusionPromise(signed_entry_timestamp=b"1")
    if proof:
        entry.inclusion_proof = InclusionProof(
            log_index=42, root_hash=ROOT_HASH, checkpoint=checkpoint
        )
    return entry


def _with_key(media_type, entry, **material):
    material.setdefault("public_key", PublicKeyIdentifier())
    return ProtoBundle(
        media_type=media_type,
        verification_material=VerificationMaterial(tlog_entries=[entry], **material),
        message_signature=MessageSignatureMessage(),
    )


# --- bundle_version ---------------------------------------------------------


@pytest.mark.parametrize(
    "media_type, want",
    [
        ("application/vnd.dev.sigstore.bundle+json;version=0.1", "v0.1"),
        ("application/vnd.dev.sigstore.bundle+json;version=0.2", "v0.2"),
        ("application/vnd.dev.sigstore.bundle+json;version=0.3", "v0.3"),
        ("application/vnd.dev.sigstore.bundle.v0.3+json", "v0.3"),
        ("application/vnd.dev.sigstore.bundle.v0.3.1+json", "v0.3.1"),
        ("application/vnd.dev.sigstore.bundle.v0.4+json", "v0.4"),
    ],
)
def test_bundle_version(media_type, want):
    assert bundle_version(media_type) == want


@pytest.mark.parametrize(
    "media_type",
    [
        "application/vnd.dev.sigstore.bundle+json",
        "garbage",
        "application/vnd.dev.sigstore.bundle.vgarbage+json",
        "application/vnd.dev.sigstore.bundle.v0.3.1.1.1.1+json",
        "",
    ],
)
def test_bundle_version_errors(media_type):
    with pytest.raises(UnsupportedMediaTypeError):
        bundle_version(media_type)


# --- min_version ------------------------------------------------------------


@pytest.mark.parametrize(
    "media_type, expected_version, result",
    [
        (V01, "v0.1", True),
        (V01, "v0.2", False),
        (V01, "0.1", True),
        ("application/vnd.dev.sigstore.bundle.v0.3+json", "v0.1", True),
        ("application/vnd.dev.sigstore.bundle.v0.3+json", "v0.3", True),
        ("application/vnd.dev.sigstore.bundle.v0.2+json", "v0.3", False),
        ("application/vnd.dev.sigstore.bundle.v0.3+json", "0.3", True),
        ("application/vnd.dev.sigstore.bundle.v0.2+json", "0.3", False),
        ("", "", False),
        ("garbage", "v0.1", False),
    ],
    ids=[
        "old-format",
        "old-format-unexpected",
        "old-format-without-v",
        "new-format",
        "new-format-exact",
        "new-format-unexpected",
        "new-format-without-v",
        "new-format-without-v-unexpected",
        "blank",
        "invalid",
    ],
)
def test_min_version(media_type, expected_version, result):
    bundle = Bundle(ProtoBundle(media_type=media_type))
    assert bundle.min_version(expected_version) is result


# --- media_type_string ------------------------------------------------------


@pytest.mark.parametrize(
    "version, expected",
    [
        ("v0.3", "application/vnd.dev.sigstore.bundle.v0.3+json"),
        ("v0.1", "application/vnd.dev.sigstore.bundle+json;version=0.1"),
        ("v0.2", "application/vnd.dev.sigstore.bundle+json;version=0.2"),
    ],
)
def test_media_type_string(version, expected):
    assert media_type_string(version) == expected


@pytest.mark.parametrize("version", ["", "garbage"])
def test_media_type_string_errors(version):
    with pytest.raises(ValueError):
        media_type_string(version)


def test_media_type_string_round_trips_through_bundle_version():
    assert bundle_version(media_type_string("0.3")) == "v0.3"


# --- validate ---------------------------------------------------------------

VALIDATE_CASES = [
    ("invalid media type", ProtoBundle(media_type=""), ValidationError),
    (
        "version too low",
        ProtoBundle(media_type="application/vnd.dev.sigstore.bundle.v0.0.1+json"),
        ValidationError,
    ),
    (
        "version too high",
        ProtoBundle(media_type="application/vnd.dev.sigstore.bundle+json;version=0.4"),
        ValidationError,
    ),
    ("no verification material", ProtoBundle(media_type=V01), ValidationError),
    (
        "v0.1 with no inclusion promise",
        ProtoBundle(
            media_type=V01,
            verification_material=VerificationMaterial(tlog_entries=[_entry()]),
        ),
        ValidationError,
    ),
    (
        "v0.1 with inclusion promise",
        _with_key(V01, _entry(promise=True)),
        (True, False),
    ),
    (
        "v0.1 with inclusion promise & proof without checkpoint",
        _with_key(V01, _entry(promise=True, proof=True)),
        ValidationError,
    ),
    (
        "v0.1 with inclusion proof & promise",
        _with_key(
            V01,
            _entry(promise=True, proof=True, checkpoint=Checkpoint(envelope="checkpoint")),
        ),
        (True, True),
    ),
    ("v0.2 with no inclusion proof", _with_key(V02, _entry()), ValidationError),
    (
        "v0.2 with inclusion proof without checkpoint",
        _with_key(V02, _entry(proof=True)),
        ValidationError,
    ),
    (
        "v0.2 with inclusion proof with empty checkpoint",
        _with_key(V02, _entry(proof=True, checkpoint=Checkpoint())),
        ValidationError,
    ),
    (
        "v0.2 with inclusion proof",
        _with_key(V02, _entry(proof=True, checkpoint=Checkpoint(envelope="checkpoint"))),
        (False, True),
    ),
    (
        "v0.3 with x.509 certificate chain",
        _with_key(
            V03,
            _entry(proof=True, checkpoint=Checkpoint(envelope="checkpoint")),
            public_key=None,
            x509_certificate_chain=[],
        ),
        ValidationError,
    ),
    (
        "v0.3 without x.509 certificate chain",
        _with_key(
            V03,
            _entry(proof=True, checkpoint=Checkpoint(envelope="checkpoint")),
            public_key=None,
            certificate=X509Certificate(),
        ),
        (False, True),
    ),
]


@pytest.mark.parametrize(
    "proto, expected", [case[1:] for case in VALIDATE_CASES], ids=[c[0] for c in VALIDATE_CASES]
)
def test_validate(proto, expected):
    bundle = Bundle(proto)
    if isinstance(expected, tuple):
        bundle.validate()
        assert (bundle.has_inclusion_promise, bundle.has_inclusion_proof) == expected
    else:
        with pytest.raises(expected):
            bundle.validate()


def test_validate_too_low_version_message():
    bundle = Bundle(ProtoBundle(media_type="application/vnd.dev.sigstore.bundle.v0.0.1+json"))
    with pytest.raises(UnsupportedMediaTypeError, match="bundle version v0.0.1 is not supported"):
        bundle.validate()


def test_validate_v01_missing_promise_message():
    bundle = Bundle(_with_key(V01, _entry()))
    with pytest.raises(ValidationError) as info:
        bundle.validate()
    assert str(info.value) == "inclusion promises missing in bundle (required for bundle v0.1)"


# --- bundle validation messages --------------------------------------------


@pytest.mark.parametrize(
    "proto, message",
    [
        (
            ProtoBundle(
                media_type=V03,
                verification_material=VerificationMaterial(),
                message_signature=MessageSignatureMessage(),
            ),
            "invalid bundle: validation error: missing verification material",
        ),
        (
            ProtoBundle(media_type=V03),
            "invalid bundle: validation error: missing bundle content",
        ),
        (
            ProtoBundle(media_type=V03, message_signature=MessageSignatureMessage()),
            "invalid bundle: validation error: missing verification material",
        ),
    ],
    ids=["empty verification material", "no bundle content", "nil verification material"],
)
def test_bundle_validation_messages(proto, message):
    with pytest.raises(ValidationError) as info:
        Bundle(proto).validate()
    assert str(info.value) == message


def test_bundle_validation_valid():
    bundle = Bundle(
        ProtoBundle(
            media_type=V03,
            dsse_envelope=DsseEnvelope(),
            verification_material=VerificationMaterial(
                public_key=PublicKeyIdentifier(),
                timestamp_verification_data=TimestampVerificationData(),
            ),
        )
    )
    bundle.validate()
    assert bundle.has_inclusion_proof is False
    assert bundle.timestamps() == []


# --- verification content ---------------------------------------------------


@pytest.fixture(scope="module")
def certs():
    ca_key = ec.generate_private_key(ec.SECP256R1())
    leaf_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "test-ca")])
    leaf_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "test-leaf")])
    start, end = datetime(2024, 1, 1), datetime(2034, 1, 1)
    ca = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(1)
        .not_valid_before(start)
        .not_valid_after(end)
        .sign(ca_key, hashes.SHA256())
    )
    leaf = (
        x509.CertificateBuilder()
        .subject_name(leaf_name)
        .issuer_name(ca_name)
        .public_key(leaf_key.public_key())
        .serial_number(2)
        .not_valid_before(start)
        .not_valid_after(end)
        .sign(ca_key, hashes.SHA256())
    )
    return {"ca": ca, "leaf": leaf}


def _der(cert):
    from cryptography.hazmat.primitives.serialization import Encoding

    return cert.public_bytes(Encoding.DER)


def _material_bundle(**material):
    return Bundle(ProtoBundle(verification_material=VerificationMaterial(**material)))


def test_verification_content_chain_self_signed(certs):
    bundle = _material_bundle(
        x509_certificate_chain=[X509Certificate(raw_bytes=_der(certs["ca"]))]
    )
    assert bundle.verification_content() == Certificate(certs["ca"])


def test_verification_content_chain_uses_leaf(certs):
    bundle = _material_bundle(
        x509_certificate_chain=[
            X509Certificate(raw_bytes=_der(certs["leaf"])),
            X509Certificate(raw_bytes=_der(certs["ca"])),
        ]
    )
    assert bundle.verification_content().certificate == certs["leaf"]


def test_verification_content_certificate(certs):
    bundle = _material_bundle(certificate=X509Certificate(raw_bytes=_der(certs["leaf"])))
    assert bundle.verification_content().certificate == certs["leaf"]


def test_verification_content_public_key():
    bundle = _material_bundle(public_key=PublicKeyIdentifier(hint="key-hint"))
    assert bundle.verification_content() == PublicKey(hint="key-hint")


@pytest.mark.parametrize(
    "bundle, error",
    [
        (Bundle(ProtoBundle()), MissingVerificationMaterialError),
        (_material_bundle(x509_certificate_chain=[]), MissingVerificationMaterialError),
        (
            _material_bundle(x509_certificate_chain=[X509Certificate(raw_bytes=b"hello")]),
            ValidationError,
        ),
        (
            _material_bundle(x509_certificate_chain=[X509Certificate(raw_bytes=None)]),
            MissingVerificationMaterialError,
        ),
        (_material_bundle(certificate=X509Certificate(raw_bytes=b"hello")), ValidationError),
        (
            _material_bundle(certificate=X509Certificate(raw_bytes=None)),
            MissingVerificationMaterialError,
        ),
        (_material_bundle(), MissingVerificationMaterialError),
    ],
    ids=[
        "no verification material",
        "certificate chain with zero certs",
        "certificate chain with invalid cert",
        "certificate chain with nil bytes",
        "invalid certificate",
        "certificate with nil bytes",
        "nil public key",
    ],
)
def test_verification_content_errors(bundle, error):
    with pytest.raises(error):
        bundle.verification_content()


# --- signature content and envelope ----------------------------------------


def _dsse_bundle(payload=b"", signatures=None):
    if signatures is None:
        signatures = [DsseSignature(sig=b"", keyid="")]
    return Bundle(ProtoBundle(dsse_envelope=DsseEnvelope(payload=payload, signatures=signatures)))


def _message_bundle():
    return Bundle(
        ProtoBundle(message_signature=MessageSignatureMessage(message_digest=HashOutput()))
    )


def test_signature_content_dsse_envelope():
    content = _dsse_bundle().signature_content()
    assert content == Envelope(
        payload_type="", payload="", signatures=[DsseSignature(sig=b"", keyid="")]
    )
    assert content.signature == b""


def test_signature_content_dsse_envelope_with_nil_signature():
    with pytest.raises(MissingEnvelopeError):
        _dsse_bundle(signatures=[None]).signature_content()


def test_signature_content_dsse_envelope_with_nil_payload():
    with pytest.raises(MissingEnvelopeError):
        _dsse_bundle(payload=None).signature_content()


def test_signature_content_message_signature():
    assert _message_bundle().signature_content() == MessageSignature(
        digest=b"", digest_algorithm="HASH_ALGORITHM_UNSPECIFIED", signature=b""
    )


def test_signature_content_message_without_digest():
    bundle = Bundle(ProtoBundle(message_signature=MessageSignatureMessage()))
    with pytest.raises(MissingVerificationMaterialError):
        bundle.signature_content()


def test_envelope_dsse():
    envelope = _dsse_bundle(payload=b"test-payload").envelope()
    assert envelope.payload == "dGVzdC1wYXlsb2Fk"
    assert envelope.decode_payload() == b"test-payload"


def test_envelope_message_signature():
    with pytest.raises(MissingVerificationMaterialError):
        _message_bundle().envelope()


# --- timestamps -------------------------------------------------------------


def test_timestamps_missing_verification_material():
    with pytest.raises(MissingVerificationMaterialError):
        Bundle(ProtoBundle()).timestamps()


@pytest.mark.parametrize(
    "data, want",
    [
        (None, []),
        (
            TimestampVerificationData(
                rfc3161_timestamps=[Rfc3161Timestamp(signed_timestamp=b"sometime yesterday")]
            ),
            [b"sometime yesterday"],
        ),
        (
            TimestampVerificationData(
                rfc3161_timestamps=[
                    Rfc3161Timestamp(signed_timestamp=b"sometime yesterday"),
                    Rfc3161Timestamp(signed_timestamp=b"last week"),
                ]
            ),
            [b"sometime yesterday", b"last week"],
        ),
    ],
    ids=["empty timestamp data", "one timestamp", "multiple timestamps"],
)
def test_timestamps(data, want):
    bundle = _material_bundle(timestamp_verification_data=data)
    assert bundle.timestamps() == want


# --- JSON loading -----------------------------------------------------------

VALID_JSON = {
    "mediaType": V02,
    "verificationMaterial": {
        "publicKey": {"hint": "test-key"},
        "tlogEntries": [
            {
                "logIndex": "42",
                "logId": {"keyId": _b64(b"deadbeef")},
                "kindVersion": {"kind": "hashedrekord", "version": "0.0.1"},
                "integratedTime": "1",
                "inclusionProof": {
                    "logIndex": "42",
                    "rootHash": _b64(ROOT_HASH),
                    "checkpoint": {"envelope": "checkpoint"},
                },
                "canonicalizedBody": _b64(BODY),
            }
        ],
        "timestampVerificationData": {
            "rfc3161Timestamps": [{"signedTimestamp": _b64(b"sometime yesterday")}]
        },
    },
    "messageSignature": {
        "messageDigest": {"algorithm": "SHA2_256", "digest": _b64(b"\x01" * 32)},
        "signature": _b64(b"sig"),
    },
}


def test_from_json_round_trip():
    bundle = Bundle.from_json(json.dumps(VALID_JSON))
    assert json.loads(bundle.to_json()) == VALID_JSON


def test_from_json_accessors():
    bundle = Bundle.from_json(json.dumps(VALID_JSON).encode())
    assert bundle.has_inclusion_proof is True
    assert bundle.has_inclusion_promise is False
    assert bundle.min_version("0.2") is True
    assert bundle.min_version("v0.3") is False
    assert len(bundle.tlog_entries()) == 1
    assert bundle.timestamps() == [b"sometime yesterday"]
    assert bundle.verification_content() == PublicKey(hint="test-key")
    assert bundle.signature_content() == MessageSignature(
        digest=b"\x01" * 32, digest_algorithm="SHA2_256", signature=b"sig"
    )
    with pytest.raises(MissingVerificationMaterialError):
        bundle.envelope()


def test_from_json_rejects_bad_json():
    with pytest.raises(ValueError):
        Bundle.from_json("{not json")


def test_from_json_rejects_invalid_bundle():
    document = dict(VALID_JSON, mediaType="garbage")
    with pytest.raises(UnsupportedMediaTypeError) as info:
        Bundle.from_json(json.dumps(document))
    assert str(info.value).startswith("error getting bundle version: ")


def test_load_json_from_path(tmp_path):
    path = tmp_path / "bundle.json"
    path.write_text(json.dumps(VALID_JSON))
    bundle = load_json_from_path(path)
    assert bundle.proto.media_type == V02
    assert bundle.tlog_entries()[0].log_index == 42


def test_load_json_from_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_json_from_path(tmp_path / "absent.json")