"""Errors raised while reading and validating Sigstore bundles."""

from __future__ import annotations

from typing import Optional


class ValidationError(Exception):
    """A bundle or one of its parts failed validation."""

    message = "validation error"

    def __init__(self, detail: object = None, *, context: Optional[str] = None) -> None:
        text = self.message if detail is None else f"{self.message}: {detail}"
        if context:
            text = f"{context}: {text}"
        super().__init__(text)
        self.detail = detail
        self.context = context


class UnsupportedMediaTypeError(ValidationError):
    """The bundle media type or version is not supported."""

    message = ValidationError.message + ": unsupported media type"


class EmptyBundleError(ValidationError):
    """No bundle was given."""

    message = ValidationError.message + ": empty protobuf bundle"


class MissingVerificationMaterialError(ValidationError):
    """The bundle lacks usable verification material."""

    message = ValidationError.message + ": missing verification material"


class MissingBundleContentError(ValidationError):
    """The bundle carries neither a message signature nor an envelope."""

    message = ValidationError.message + ": missing bundle content"


class InvalidAttestationError(ValidationError):
    """The attestation in the bundle is malformed."""

    message = ValidationError.message + ": invalid attestation"


class MissingEnvelopeError(InvalidAttestationError):
    """The DSSE envelope is absent or incomplete."""

    message = InvalidAttestationError.message + ": missing valid envelope"


class DecodingJSONError(InvalidAttestationError):
    """The attestation payload is not a valid statement document."""

    message = InvalidAttestationError.message + ": decoding json"


class DecodingB64Error(InvalidAttestationError):
    """The attestation payload is not valid base64."""

    message = InvalidAttestationError.message + ": decoding base64"