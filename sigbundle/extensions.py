"""Fulcio certificate extensions and their DER string decoding."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Iterable

_PREFIX = "1.3.6.1.4.1.57264.1."

OID_ISSUER = _PREFIX + "1"
OID_GITHUB_WORKFLOW_TRIGGER = _PREFIX + "2"
OID_GITHUB_WORKFLOW_SHA = _PREFIX + "3"
OID_GITHUB_WORKFLOW_NAME = _PREFIX + "4"
OID_GITHUB_WORKFLOW_REPOSITORY = _PREFIX + "5"
OID_GITHUB_WORKFLOW_REF = _PREFIX + "6"
OID_OTHER_NAME = _PREFIX + "7"
OID_ISSUER_V2 = _PREFIX + "8"
OID_BUILD_SIGNER_URI = _PREFIX + "9"
OID_BUILD_SIGNER_DIGEST = _PREFIX + "10"
OID_RUNNER_ENVIRONMENT = _PREFIX + "11"
OID_SOURCE_REPOSITORY_URI = _PREFIX + "12"
OID_SOURCE_REPOSITORY_DIGEST = _PREFIX + "13"
OID_SOURCE_REPOSITORY_REF = _PREFIX + "14"
OID_SOURCE_REPOSITORY_IDENTIFIER = _PREFIX + "15"
OID_SOURCE_REPOSITORY_OWNER_URI = _PREFIX + "16"
OID_SOURCE_REPOSITORY_OWNER_IDENTIFIER = _PREFIX + "17"
OID_BUILD_CONFIG_URI = _PREFIX + "18"
OID_BUILD_CONFIG_DIGEST = _PREFIX + "19"
OID_BUILD_TRIGGER = _PREFIX + "20"
OID_RUN_INVOCATION_URI = _PREFIX + "21"
OID_SOURCE_REPOSITORY_VISIBILITY_AT_SIGNING = _PREFIX + "22"


def _f(json_name: str) -> Any:
    return field(default="", metadata={"json": json_name})


@dataclass
class Extensions:
    """Custom X.509 extensions defined by Fulcio."""

    issuer: str = _f("issuer")
    github_workflow_trigger: str = _f("githubWorkflowTrigger")
    github_workflow_sha: str = _f("githubWorkflowSHA")
    github_workflow_name: str = _f("githubWorkflowName")
    github_workflow_repository: str = _f("githubWorkflowRepository")
    github_workflow_ref: str = _f("githubWorkflowRef")
    build_signer_uri: str = _f("buildSignerURI")
    build_signer_digest: str = _f("buildSignerDigest")
    runner_environment: str = _f("runnerEnvironment")
    source_repository_uri: str = _f("sourceRepositoryURI")
    source_repository_digest: str = _f("sourceRepositoryDigest")
    source_repository_ref: str = _f("sourceRepositoryRef")
    source_repository_identifier: str = _f("sourceRepositoryIdentifier")
    source_repository_owner_uri: str = _f("sourceRepositoryOwnerURI")
    source_repository_owner_identifier: str = _f("sourceRepositoryOwnerIdentifier")
    build_config_uri: str = _f("buildConfigURI")
    build_config_digest: str = _f("buildConfigDigest")
    build_trigger: str = _f("buildTrigger")
    run_invocation_uri: str = _f("runInvocationURI")
    source_repository_visibility_at_signing: str = _f(
        "sourceRepositoryVisibilityAtSigning"
    )

    def to_dict(self) -> dict[str, str]:
        """JSON form, leaving out empty fields."""
        return {
            f.metadata["json"]: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name)
        }


_RAW_FIELDS = {
    OID_ISSUER: "issuer",
    OID_GITHUB_WORKFLOW_TRIGGER: "github_workflow_trigger",
    OID_GITHUB_WORKFLOW_SHA: "github_workflow_sha",
    OID_GITHUB_WORKFLOW_NAME: "github_workflow_name",
    OID_GITHUB_WORKFLOW_REPOSITORY: "github_workflow_repository",
    OID_GITHUB_WORKFLOW_REF: "github_workflow_ref",
}

_DER_FIELDS = {
    OID_ISSUER_V2: "issuer",
    OID_BUILD_SIGNER_URI: "build_signer_uri",
    OID_BUILD_SIGNER_DIGEST: "build_signer_digest",
    OID_RUNNER_ENVIRONMENT: "runner_environment",
    OID_SOURCE_REPOSITORY_URI: "source_repository_uri",
    OID_SOURCE_REPOSITORY_DIGEST: "source_repository_digest",
    OID_SOURCE_REPOSITORY_REF: "source_repository_ref",
    OID_SOURCE_REPOSITORY_IDENTIFIER: "source_repository_identifier",
    OID_SOURCE_REPOSITORY_OWNER_URI: "source_repository_owner_uri",
    OID_SOURCE_REPOSITORY_OWNER_IDENTIFIER: "source_repository_owner_identifier",
    OID_BUILD_CONFIG_URI: "build_config_uri",
    OID_BUILD_CONFIG_DIGEST: "build_config_digest",
    OID_BUILD_TRIGGER: "build_trigger",
    OID_RUN_INVOCATION_URI: "run_invocation_uri",
    OID_SOURCE_REPOSITORY_VISIBILITY_AT_SIGNING: "source_repository_visibility_at_signing",
}

_STRING_TAGS = {
    12: "utf-8",  # UTF8String
    18: "ascii",  # NumericString
    19: "ascii",  # PrintableString
    20: "latin-1",  # T61String
    22: "ascii",  # IA5String
    30: "utf-16-be",  # BMPString
}


def _oid_and_value(ext: Any) -> tuple[str, Any]:
    if isinstance(ext, tuple):
        oid, value = ext
        return str(oid), value
    oid = ext.oid.dotted_string
    value = ext.value
    raw = getattr(value, "value", value)
    return oid, raw


def parse_der_string(value: bytes) -> str:
    """Decode a DER-encoded string; raise ValueError on bad or trailing bytes."""
    data = bytes(value)
    if len(data) < 2:
        raise ValueError("unexpected error unmarshalling DER-encoded string: truncated")
    tag = data[0]
    if tag not in _STRING_TAGS:
        raise ValueError(
            f"unexpected error unmarshalling DER-encoded string: unexpected tag {tag}"
        )
    first = data[1]
    offset = 2
    if first < 0x80:
        length = first
    else:
        count = first & 0x7F
        if count == 0 or len(data) < offset + count:
            raise ValueError("unexpected error unmarshalling DER-encoded string: bad length")
        length = int.from_bytes(data[offset : offset + count], "big")
        if length < 0x80 or data[offset] == 0:
            raise ValueError(
                "unexpected error unmarshalling DER-encoded string: non-minimal length"
            )
        offset += count
    end = offset + length
    if len(data) < end:
        raise ValueError("unexpected error unmarshalling DER-encoded string: truncated")
    try:
        text = data[offset:end].decode(_STRING_TAGS[tag])
    except UnicodeDecodeError as exc:
        raise ValueError(
            f"unexpected error unmarshalling DER-encoded string: {exc}"
        ) from exc
    if end != len(data):
        raise ValueError("unexpected trailing bytes in DER-encoded string")
    return text


def parse_extensions(extensions: Iterable[Any]) -> Extensions:
    """Collect Fulcio extensions from certificate extensions or (oid, bytes) pairs."""
    out = Extensions()
    for ext in extensions:
        oid, raw = _oid_and_value(ext)
        if oid in _RAW_FIELDS:
            setattr(out, _RAW_FIELDS[oid], bytes(raw).decode("utf-8", "replace"))
        elif oid in _DER_FIELDS:
            setattr(out, _DER_FIELDS[oid], parse_der_string(raw))
    return out