"""The Sigstore bundle message and its JSON mapping."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Any, Optional

HASH_ALGORITHMS = (
    "HASH_ALGORITHM_UNSPECIFIED",
    "SHA2_256",
    "SHA2_384",
    "SHA2_512",
    "SHA3_256",
    "SHA3_384",
)

_INT_RE = re.compile(r"-?[0-9]+")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _read(data: Any, where: str, names: tuple[str, ...]) -> dict[str, Any]:
    """Map JSON keys (camelCase or snake_case) to field names, rejecting unknown keys."""
    if not isinstance(data, dict):
        raise ValueError(f"{where}: expected a JSON object")
    known: dict[str, str] = {}
    for name in names:
        known[name] = name
        known[_camel(name)] = name
    values: dict[str, Any] = {}
    for key, value in data.items():
        name = known.get(key)
        if name is None:
            raise ValueError(f"{where}: unknown field {key!r}")
        if name in values:
            raise ValueError(f"{where}: duplicate field {key!r}")
        if value is not None:
            values[name] = value
    return values


def _one_of(values: dict[str, Any], names: tuple[str, ...], where: str) -> None:
    present = [name for name in names if name in values]
    if len(present) > 1:
        raise ValueError(f"{where}: more than one of {', '.join(present)} is set")


def _string(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{where}: expected a string")
    return value


def _int64(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{where}: expected an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and _INT_RE.fullmatch(value):
        number = int(value)
    else:
        raise ValueError(f"{where}: expected an integer")
    if not -(2**63) <= number < 2**63:
        raise ValueError(f"{where}: integer out of range")
    return number


def _bytes(value: Any, where: str) -> bytes:
    text = _string(value, where)
    text = text.replace("-", "+").replace("_", "/")
    text += "=" * (-len(text) % 4)
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"{where}: invalid base64") from exc


def _list(value: Any, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"{where}: expected a JSON array")
    return value


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _hash_algorithm(value: Any, where: str) -> str:
    if isinstance(value, str) and value in HASH_ALGORITHMS:
        return value
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < len(HASH_ALGORITHMS):
        return HASH_ALGORITHMS[value]
    raise ValueError(f"{where}: unknown hash algorithm {value!r}")


@dataclass
class HashOutput:
    """A digest and the algorithm that produced it."""

    algorithm: str = HASH_ALGORITHMS[0]
    digest: bytes = b""

    @classmethod
    def _load(cls, data: Any, where: str) -> HashOutput:
        values = _read(data, where, ("algorithm", "digest"))
        out = cls()
        if "algorithm" in values:
            out.algorithm = _hash_algorithm(values["algorithm"], f"{where}.algorithm")
        if "digest" in values:
            out.digest = _bytes(values["digest"], f"{where}.digest")
        return out

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.algorithm != HASH_ALGORITHMS[0]:
            out["algorithm"] = self.algorithm
        if self.digest:
            out["digest"] = _b64(self.digest)
        return out


@dataclass
class MessageSignatureMessage:
    """A signature over a message digest."""

    message_digest: Optional[HashOutput] = None
    signature: bytes = b""

    @classmethod
    def _load(cls, data: Any, where: str) -> MessageSignatureMessage:
        values = _read(data, where, ("message_digest", "signature"))
        out = cls()
        if "message_digest" in values:
            out.message_digest = HashOutput._load(values["message_digest"], f"{where}.messageDigest")
        if "signature" in values:
            out.signature = _bytes(values["signature"], f"{where}.signature")
        return out

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.message_digest is not None:
            out["messageDigest"] = self.message_digest._dump()
        if self.signature:
            out["signature"] = _b64(self.signature)
        return out


@dataclass
class DsseSignature:
    """One signature of a DSSE envelope."""

    sig: bytes = b""
    keyid: str = ""

    @classmethod
    def _load(cls, data: Any, where: str) -> DsseSignature:
        values = _read(data, where, ("sig", "keyid"))
        out = cls()
        if "sig" in values:
            out.sig = _bytes(values["sig"], f"{where}.sig")
        if "keyid" in values:
            out.keyid = _string(values["keyid"], f"{where}.keyid")
        return out

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.sig:
            out["sig"] = _b64(self.sig)
        if self.keyid:
            out["keyid"] = self.keyid
        return out


@dataclass
class DsseEnvelope:
    """A DSSE envelope as carried in a bundle."""

    payload: Optional[bytes] = None
    payload_type: str = ""
    signatures: list[Optional[DsseSignature]] = field(default_factory=list)

    @classmethod
    def _load(cls, data: Any, where: str) -> DsseEnvelope:
        values = _read(data, where, ("payload", "payload_type", "signatures"))
        out = cls()
        if "payload" in values:
            out.payload = _bytes(values["payload"], f"{where}.payload")
        if "payload_type" in values:
            out.payload_type = _string(values["payload_type"], f"{where}.payloadType")
        if "signatures" in values:
            out.signatures = [
                DsseSignature._load(item, f"{where}.signatures")
                for item in _list(values["signatures"], f"{where}.signatures")
            ]
        return out

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.payload:
            out["payload"] = _b64(self.payload)
        if self.payload_type:
            out["payloadType"] = self.payload_type
        if self.signatures:
            out["signatures"] = [sig._dump() if sig else {} for sig in self.signatures]
        return out


@dataclass
class X509Certificate:
    """A DER-encoded X.509 certificate."""

    raw_bytes: Optional[bytes] = None

    @classmethod
    def _load(cls, data: Any, where: str) -> X509Certificate:
        values = _read(data, where, ("raw_bytes",))
        out = cls()
        if "raw_bytes" in values:
            out.raw_bytes = _bytes(values["raw_bytes"], f"{where}.rawBytes")
        return out

    def _dump(self) -> dict[str, Any]:
        return {"rawBytes": _b64(self.raw_bytes)} if self.raw_bytes else {}


@dataclass
class PublicKeyIdentifier:
    """A hint naming a public key held in trusted material."""

    hint: str = ""

    @classmethod
    def _load(cls, data: Any, where: str) -> PublicKeyIdentifier:
        values = _read(data, where, ("hint",))
        return cls(_string(values["hint"], f"{where}.hint") if "hint" in values else "")

    def _dump(self) -> dict[str, Any]:
        return {"hint": self.hint} if self.hint else {}


@dataclass
class Checkpoint:
    """A signed log checkpoint in note form."""

    envelope: str = ""

    @classmethod
    def _load(cls, data: Any, where: str) -> Checkpoint:
        values = _read(data, where, ("envelope",))
        return cls(_string(values["envelope"], f"{where}.envelope") if "envelope" in values else "")

    def _dump(self) -> dict[str, Any]:
        return {"envelope": self.envelope} if self.envelope else {}


@dataclass
class InclusionProof:
    """A Merkle inclusion proof for a log entry."""

    log_index: int = 0
    root_hash: bytes = b""
    tree_size: int = 0
    hashes: list[bytes] = field(default_factory=list)
    checkpoint: Optional[Checkpoint] = None

    @classmethod
    def _load(cls, data: Any, where: str) -> InclusionProof:
        values = _read(data, where, ("log_index", "root_hash", "tree_size", "hashes", "checkpoint"))
        out = cls()
        if "log_index" in values:
            out.log_index = _int64(values["log_index"], f"{where}.logIndex")
        if "root_hash" in values:
            out.root_hash = _bytes(values["root_hash"], f"{where}.rootHash")
        if "tree_size" in values:
            out.tree_size = _int64(values["tree_size"], f"{where}.treeSize")
        if "hashes" in values:
            out.hashes = [
                _bytes(item, f"{where}.hashes") for item in _list(values["hashes"], f"{where}.hashes")
            ]
        if "checkpoint" in values:
            out.checkpoint = Checkpoint._load(values["checkpoint"], f"{where}.checkpoint")
        return out

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.log_index:
            out["logIndex"] = str(self.log_index)
        if self.root_hash:
            out["rootHash"] = _b64(self.root_hash)
        if self.tree_size:
            out["treeSize"] = str(self.tree_size)
        if self.hashes:
            out["hashes"] = [_b64(h) for h in self.hashes]
        if self.checkpoint is not None:
            out["checkpoint"] = self.checkpoint._dump()
        return out


@dataclass
class InclusionPromise:
    """A signed entry timestamp issued by the log."""

    signed_entry_timestamp: bytes = b""

    @classmethod
    def _load(cls, data: Any, where: str) -> InclusionPromise:
        values = _read(data, where, ("signed_entry_timestamp",))
        out = cls()
        if "signed_entry_timestamp" in values:
            out.signed_entry_timestamp = _bytes(
                values["signed_entry_timestamp"], f"{where}.signedEntryTimestamp"
            )
        return out

    def _dump(self) -> dict[str, Any]:
        if self.signed_entry_timestamp:
            return {"signedEntryTimestamp": _b64(self.signed_entry_timestamp)}
        return {}


@dataclass
class KindVersion:
    """The kind and version of a log entry body."""

    kind: str = ""
    version: str = ""

    @classmethod
    def _load(cls, data: Any, where: str) -> KindVersion:
        values = _read(data, where, ("kind", "version"))
        out = cls()
        if "kind" in values:
            out.kind = _string(values["kind"], f"{where}.kind")
        if "version" in values:
            out.version = _string(values["version"], f"{where}.version")
        return out

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.kind:
            out["kind"] = self.kind
        if self.version:
            out["version"] = self.version
        return out


@dataclass
class TransparencyLogEntry:
    """An entry of a transparency log with its proofs."""

    log_index: int = 0
    log_id: Optional[bytes] = None
    kind_version: Optional[KindVersion] = None
    integrated_time: int = 0
    inclusion_promise: Optional[InclusionPromise] = None
    inclusion_proof: Optional[InclusionProof] = None
    canonicalized_body: bytes = b""

    def has_inclusion_promise(self) -> bool:
        return self.inclusion_promise is not None

    def has_inclusion_proof(self) -> bool:
        return self.inclusion_proof is not None

    def check(self) -> None:
        """Raise ValueError if an inclusion proof comes without a checkpoint."""
        if self.inclusion_proof is not None:
            checkpoint = self.inclusion_proof.checkpoint
            if checkpoint is None or not checkpoint.envelope:
                raise ValueError("inclusion proof missing required checkpoint")

    @classmethod
    def _load(cls, data: Any, where: str) -> TransparencyLogEntry:
        values = _read(
            data,
            where,
            (
                "log_index",
                "log_id",
                "kind_version",
                "integrated_time",
                "inclusion_promise",
                "inclusion_proof",
                "canonicalized_body",
            ),
        )
        out = cls()
        if "log_index" in values:
            out.log_index = _int64(values["log_index"], f"{where}.logIndex")
        if "log_id" in values:
            log_id = _read(values["log_id"], f"{where}.logId", ("key_id",))
            out.log_id = _bytes(log_id["key_id"], f"{where}.logId.keyId") if "key_id" in log_id else b""
        if "kind_version" in values:
            out.kind_version = KindVersion._load(values["kind_version"], f"{where}.kindVersion")
        if "integrated_time" in values:
            out.integrated_time = _int64(values["integrated_time"], f"{where}.integratedTime")
        if "inclusion_promise" in values:
            out.inclusion_promise = InclusionPromise._load(
                values["inclusion_promise"], f"{where}.inclusionPromise"
            )
        if "inclusion_proof" in values:
            out.inclusion_proof = InclusionProof._load(
                values["inclusion_proof"], f"{where}.inclusionProof"
            )
        if "canonicalized_body" in values:
            out.canonicalized_body = _bytes(
                values["canonicalized_body"], f"{where}.canonicalizedBody"
            )
        return out

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.log_index:
            out["logIndex"] = str(self.log_index)
        if self.log_id is not None:
            out["logId"] = {"keyId": _b64(self.log_id)} if self.log_id else {}
        if self.kind_version is not None:
            out["kindVersion"] = self.kind_version._dump()
        if self.integrated_time:
            out["integratedTime"] = str(self.integrated_time)
        if self.inclusion_promise is not None:
            out["inclusionPromise"] = self.inclusion_promise._dump()
        if self.inclusion_proof is not None:
            out["inclusionProof"] = self.inclusion_proof._dump()
        if self.canonicalized_body:
            out["canonicalizedBody"] = _b64(self.canonicalized_body)
        return out


@dataclass
class Rfc3161Timestamp:
    """A signed RFC 3161 timestamp response."""

    signed_timestamp: bytes = b""

    @classmethod
    def _load(cls, data: Any, where: str) -> Rfc3161Timestamp:
        values = _read(data, where, ("signed_timestamp",))
        out = cls()
        if "signed_timestamp" in values:
            out.signed_timestamp = _bytes(values["signed_timestamp"], f"{where}.signedTimestamp")
        return out

    def _dump(self) -> dict[str, Any]:
        return {"signedTimestamp": _b64(self.signed_timestamp)} if self.signed_timestamp else {}


@dataclass
class TimestampVerificationData:
    """Timestamps that vouch for the time of signing."""

    rfc3161_timestamps: list[Rfc3161Timestamp] = field(default_factory=list)

    @classmethod
    def _load(cls, data: Any, where: str) -> TimestampVerificationData:
        values = _read(data, where, ("rfc3161_timestamps",))
        out = cls()
        if "rfc3161_timestamps" in values:
            out.rfc3161_timestamps = [
                Rfc3161Timestamp._load(item, f"{where}.rfc3161Timestamps")
                for item in _list(values["rfc3161_timestamps"], f"{where}.rfc3161Timestamps")
            ]
        return out

    def _dump(self) -> dict[str, Any]:
        if self.rfc3161_timestamps:
            return {"rfc3161Timestamps": [ts._dump() for ts in self.rfc3161_timestamps]}
        return {}


_KEY_CONTENT = ("public_key", "x509_certificate_chain", "certificate")


@dataclass
class VerificationMaterial:
    """Key material, log entries and timestamps for verifying a bundle.

    At most one of ``public_key``, ``x509_certificate_chain`` and
    ``certificate`` is set.
    """

    public_key: Optional[PublicKeyIdentifier] = None
    x509_certificate_chain: Optional[list[X509Certificate]] = None
    certificate: Optional[X509Certificate] = None
    tlog_entries: list[TransparencyLogEntry] = field(default_factory=list)
    timestamp_verification_data: Optional[TimestampVerificationData] = None

    @classmethod
    def _load(cls, data: Any, where: str) -> VerificationMaterial:
        values = _read(
            data, where, _KEY_CONTENT + ("tlog_entries", "timestamp_verification_data")
        )
        _one_of(values, _KEY_CONTENT, where)
        out = cls()
        if "public_key" in values:
            out.public_key = PublicKeyIdentifier._load(values["public_key"], f"{where}.publicKey")
        if "x509_certificate_chain" in values:
            chain_where = f"{where}.x509CertificateChain"
            chain = _read(values["x509_certificate_chain"], chain_where, ("certificates",))
            out.x509_certificate_chain = [
                X509Certificate._load(item, f"{chain_where}.certificates")
                for item in _list(chain.get("certificates", []), f"{chain_where}.certificates")
            ]
        if "certificate" in values:
            out.certificate = X509Certificate._load(values["certificate"], f"{where}.certificate")
        if "tlog_entries" in values:
            out.tlog_entries = [
                TransparencyLogEntry._load(item, f"{where}.tlogEntries")
                for item in _list(values["tlog_entries"], f"{where}.tlogEntries")
            ]
        if "timestamp_verification_data" in values:
            out.timestamp_verification_data = TimestampVerificationData._load(
                values["timestamp_verification_data"], f"{where}.timestampVerificationData"
            )
        return out

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.public_key is not None:
            out["publicKey"] = self.public_key._dump()
        if self.x509_certificate_chain is not None:
            chain = [cert._dump() for cert in self.x509_certificate_chain]
            out["x509CertificateChain"] = {"certificates": chain} if chain else {}
        if self.certificate is not None:
            out["certificate"] = self.certificate._dump()
        if self.tlog_entries:
            out["tlogEntries"] = [entry._dump() for entry in self.tlog_entries]
        if self.timestamp_verification_data is not None:
            out["timestampVerificationData"] = self.timestamp_verification_data._dump()
        return out


_BUNDLE_CONTENT = ("message_signature", "dsse_envelope")


@dataclass
class ProtoBundle:
    """The bundle message; at most one of its two contents is set."""

    media_type: str = ""
    verification_material: Optional[VerificationMaterial] = None
    message_signature: Optional[MessageSignatureMessage] = None
    dsse_envelope: Optional[DsseEnvelope] = None

    @classmethod
    def from_dict(cls, data: Any) -> ProtoBundle:
        """Build a bundle from its JSON object form; raise ValueError if malformed."""
        where = "bundle"
        values = _read(data, where, ("media_type", "verification_material") + _BUNDLE_CONTENT)
        _one_of(values, _BUNDLE_CONTENT, where)
        out = cls()
        if "media_type" in values:
            out.media_type = _string(values["media_type"], f"{where}.mediaType")
        if "verification_material" in values:
            out.verification_material = VerificationMaterial._load(
                values["verification_material"], f"{where}.verificationMaterial"
            )
        if "message_signature" in values:
            out.message_signature = MessageSignatureMessage._load(
                values["message_signature"], f"{where}.messageSignature"
            )
        if "dsse_envelope" in values:
            out.dsse_envelope = DsseEnvelope._load(values["dsse_envelope"], f"{where}.dsseEnvelope")
        return out

    def to_dict(self) -> dict[str, Any]:
        """JSON object form, leaving out fields at their defaults."""
        out: dict[str, Any] = {}
        if self.media_type:
            out["mediaType"] = self.media_type
        if self.verification_material is not None:
            out["verificationMaterial"] = self.verification_material._dump()
        if self.message_signature is not None:
            out["messageSignature"] = self.message_signature._dump()
        if self.dsse_envelope is not None:
            out["dsseEnvelope"] = self.dsse_envelope._dump()
        return out