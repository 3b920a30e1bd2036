# sigbundle

`sigbundle` reads signature bundles in their JSON form, checks that they are
well formed for the bundle version they declare, and gives typed access to
what they carry: the verification material (a certificate, a certificate chain
or a public key hint), the signature content (a message signature or a DSSE
envelope), transparency log entries and RFC 3161 timestamps.

It also summarises the identity recorded in a signing certificate, including
the custom X.509 extensions that record the OIDC issuer and CI build details,
and it can assemble a bundle from the annotations of a simple-signing layer
found in an OCI signature manifest.

## Installation

```
pip install .
pip install ".[test]"   # with pytest, to run the tests
```

The only runtime dependency is `cryptography`.

## Loading and validating a bundle

```python
from sigbundle.bundle import Bundle, load_json_from_path

bundle = load_json_from_path("artifact.sigstore.json")

# Or from JSON already in memory (str or bytes):
with open("artifact.sigstore.json", "rb") as handle:
    bundle = Bundle.from_json(handle.read())

if not bundle.min_version("0.2"):
    raise SystemExit("bundle is older than v0.2")

print(bundle.to_json())
```

`Bundle.from_json` parses the JSON into a `sigbundle.model.ProtoBundle` and
then calls `Bundle.validate()`. Text that is not JSON, or a JSON document
with unknown fields, wrong types or invalid base64, raises `ValueError`.
Validation problems raise exceptions from `sigbundle.errors`, all of which
derive from `ValidationError`:

- `UnsupportedMediaTypeError`: the media type is unknown, the version is
  below v0.1, or it is v0.4 or newer.
- `MissingBundleContentError`, `MissingVerificationMaterialError`,
  `EmptyBundleError`: a required part of the bundle is absent.
- `InvalidAttestationError` and its subclasses `MissingEnvelopeError`,
  `DecodingJSONError`, `DecodingB64Error`: the DSSE envelope or its in-toto
  statement cannot be read.

The version rules are these. A v0.1 bundle with log entries must carry an
inclusion promise. From v0.2 on an inclusion proof is required. Any inclusion
proof must come with a non-empty checkpoint. From v0.3 on the verification
material must not be a certificate chain. A broken rule raises
`ValidationError`.

`Bundle` also exposes `has_inclusion_promise` and `has_inclusion_proof`,
which are set as log entries are checked.

## Media types

```python
from sigbundle.bundle import bundle_version, media_type_string

media_type_string("0.3")
# 'application/vnd.dev.sigstore.bundle.v0.3+json'
media_type_string("v0.1")
# 'application/vnd.dev.sigstore.bundle+json;version=0.1'
bundle_version("application/vnd.dev.sigstore.bundle.v0.3.1+json")
# 'v0.3.1'
```

`media_type_string` raises `ValueError` for an empty or invalid version, and
`bundle_version` raises `UnsupportedMediaTypeError` for a media type it does
not recognise. The `sigbundle.versions` module holds the semantic-version
helpers used for these checks: `is_valid` and `compare`, the latter returning
-1, 0 or 1 and ordering invalid versions below valid ones.

## Inspecting the contents

```python
content = bundle.verification_content()    # Certificate or PublicKey
signature = bundle.signature_content()     # MessageSignature or Envelope
entries = bundle.tlog_entries()            # list of TransparencyLogEntry
stamps = bundle.timestamps()               # list of raw RFC 3161 timestamps (bytes)

envelope = bundle.envelope()               # only for DSSE bundles
payload = envelope.decode_payload()        # the raw payload bytes
statement = envelope.statement()           # the in-toto statement as a dict
```

- `Certificate` wraps a `cryptography` `x509.Certificate`.
  `valid_at_time(when)` checks a moment against its validity window (a naive
  datetime is taken as UTC); `compare_key(key)` tells whether `key` is the
  same certificate.
- `PublicKey` holds a `hint`. `compare_key(key, trusted_material)` and
  `valid_at_time(when, trusted_material)` look the key up through
  `trusted_material.public_key_verifier(hint)`, an object you supply whose
  result offers `public_key()` and `valid_at_time(when)`.
- `MessageSignature` holds `digest`, `digest_algorithm` and `signature`.
- `Envelope` holds `payload_type`, the base64 `payload` and `signatures`; its
  `signature` property is the first signature or empty bytes. `statement()`
  raises `UnsupportedMediaTypeError` unless the payload type is
  `application/vnd.in-toto+json`.

## Certificate identity

```python
from sigbundle.summarize import compare_extensions, summarize_certificate

summary = summarize_certificate(certificate)   # a cryptography x509.Certificate
print(summary.to_dict())
```

A `Summary` holds the certificate issuer, the first subject alternative name
(a URI, then an e-mail address, then an OtherName), and the parsed
`Extensions`. A certificate without any of these names raises `ValueError`.
`compare_extensions(expected, actual)` raises `ExtensionMismatchError` when a
field set in `expected` differs from the same field in `actual`; fields left
empty in `expected` are ignored.

The lower-level `sigbundle.extensions.parse_extensions` accepts certificate
extensions or `(oid, bytes)` pairs, and `parse_der_string` decodes one
DER-encoded string, raising `ValueError` on malformed input or trailing bytes.

## Bundles from OCI signature layers

`sigbundle.oci` turns the simple-signing layer of a signature manifest into a
v0.1 bundle. You fetch the manifest yourself and pass it in as JSON text or a
parsed object:

```python
from sigbundle.oci import bundle_from_layer, select_simple_signing_layer

layer = select_simple_signing_layer(manifest)
bundle, digest_hex = bundle_from_layer(layer)
```

`digest_hex` is the hex digest of the layer, which is what was signed. The
individual steps are also available: `certificate_chain_from_layer`,
`tlog_entries_from_layer`, `verification_material_from_layer` and
`message_signature_from_layer`. Each raises `ValueError` describing the step
that failed. Only `sha256` layer digests are supported.

## What it does not do

`sigbundle` is a library with no command-line tool. It checks the structure
of bundles but does not verify signatures, certificate chains, transparency
log proofs or timestamps, and it does not load a trust root. It does no
network access: it neither fetches trust metadata nor pulls manifests from a
registry.