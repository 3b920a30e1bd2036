"""Summaries of Fulcio signing certificates."""

from __future__ import annotations

from dataclasses import dataclass, field, fields

from cryptography import x509
from cryptography.x509.oid import NameOID

from .extensions import OID_OTHER_NAME, Extensions, parse_der_string, parse_extensions

_NAME_OVERRIDES = {
    NameOID.POSTAL_CODE: "POSTALCODE",
    NameOID.STREET_ADDRESS: "STREET",
    NameOID.SERIAL_NUMBER: "SERIALNUMBER",
}


@dataclass
class Summary:
    """Issuer, identity and Fulcio extensions of a certificate."""

    certificate_issuer: str
    subject_alternative_name: str
    extensions: Extensions = field(default_factory=Extensions)

    def to_dict(self) -> dict[str, str]:
        out = {
            "certificateIssuer": self.certificate_issuer,
            "subjectAlternativeName": self.subject_alternative_name,
        }
        out.update(self.extensions.to_dict())
        return out


class ExtensionMismatchError(Exception):
    """An expected extension value differs from the actual one."""

    def __init__(self, field_name: str, expected: str, actual: str) -> None:
        super().__init__(f'expected {field_name} to be "{expected}", got "{actual}"')
        self.field = field_name
        self.expected = expected
        self.actual = actual


def _other_name_san(san: x509.SubjectAlternativeName) -> str:
    for other in san.get_values_for_type(x509.OtherName):
        if other.type_id.dotted_string == OID_OTHER_NAME:
            try:
                return parse_der_string(other.value)
            except ValueError:
                return ""
    return ""


def summarize_certificate(certificate: x509.Certificate) -> Summary:
    """Summarize a certificate; raise ValueError if it names no identity."""
    extensions = parse_extensions(certificate.extensions)
    san = ""
    try:
        san_ext = certificate.extensions.get_extension_for_class(
            x509.SubjectAlternativeName
        ).value
    except x509.ExtensionNotFound:
        san_ext = None
    if san_ext is not None:
        uris = san_ext.get_values_for_type(x509.UniformResourceIdentifier)
        emails = san_ext.get_values_for_type(x509.RFC822Name)
        if uris:
            san = uris[0]
        elif emails:
            san = emails[0]
        if not san:
            san = _other_name_san(san_ext)
    if not san:
        raise ValueError("No Subject Alternative Name found")
    issuer = certificate.issuer.rfc4514_string(_NAME_OVERRIDES)
    return Summary(issuer, san, extensions)


def _label(json_name: str) -> str:
    return json_name[:1].upper() + json_name[1:]


def compare_extensions(expected: Extensions, actual: Extensions) -> None:
    """Raise ExtensionMismatchError if a non-empty expected field differs."""
    for f in fields(expected):
        want = getattr(expected, f.name)
        if not want:
            continue
        got = getattr(actual, f.name)
        if want != got:
            raise ExtensionMismatchError(_label(f.metadata["json"]), want, got)