"""Payfast MD5 signature generation.

Payfast signs the ``key=value&...`` string of the submitted fields in the
order they were sent, never sorted. Checkout payloads drop empty values and
keep ``merchant_key``; ITN payloads keep empty values and drop
``merchant_key``. Values are encoded like JavaScript's ``encodeURIComponent``
with spaces as ``+``.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Sequence
from urllib.parse import quote_plus

Field = tuple[str, object]

SIGNATURE_FIELD = "signature"
ITN_EXCLUDED_FIELDS: tuple[str, ...] = ("merchant_key",)

# Characters encodeURIComponent leaves alone besides alphanumerics.
# quote_plus always emits uppercase hex, so "/" -> %2F and ":" -> %3A.
_UNRESERVED = "-_.!~*'()"


def encode_value(value: object) -> str:
    """URL-encode a single trimmed field value."""
    if value is None:
        return ""
    return quote_plus(str(value).strip(), safe=_UNRESERVED)


def build_canonical_string(
    fields: Iterable[Field],
    passphrase: str | None = None,
    *,
    include_all_fields: bool = False,
    excluded_fields: Sequence[str] = ITN_EXCLUDED_FIELDS,
) -> str:
    """Build the string Payfast hashes.

    Args:
        fields: Ordered (name, value) pairs
        passphrase: Merchant passphrase, appended when set
        include_all_fields: ITN mode; keep empty values and skip ``excluded_fields``
        excluded_fields: Fields skipped in ITN mode

    Returns:
        Canonical ``key=value&...`` string
    """
    parts: list[str] = []
    for key, value in fields:
        if key == SIGNATURE_FIELD:
            continue
        if include_all_fields:
            if key in excluded_fields:
                continue
        elif value is None or str(value).strip() == "":
            continue
        parts.append(f"{key}={encode_value(value)}")

    canonical = "&".join(parts)
    if passphrase:
        canonical += f"&passphrase={encode_value(passphrase)}"
    return canonical


def digest(canonical: str) -> str:
    """MD5 hex digest, as mandated by the Payfast protocol."""
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


def sign(
    fields: Iterable[Field],
    passphrase: str | None = None,
    *,
    exclude_shared_secret: bool = False,
) -> str:
    """Compute the signature for ``fields``.

    ``exclude_shared_secret`` selects ITN mode.
    """
    return digest(
        build_canonical_string(
            fields,
            passphrase,
            include_all_fields=exclude_shared_secret,
        )
    )


def verify(
    fields: Iterable[Field],
    claimed_signature: str | None,
    passphrase: str | None = None,
) -> bool:
    """Check an ITN signature."""
    if not claimed_signature:
        return False
    return sign(fields, passphrase, exclude_shared_secret=True) == claimed_signature.strip()
