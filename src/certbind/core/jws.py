"""ACME key-authorization helpers (RFC 8555 §8.1, RFC 7638).

Used to decode an offered challenge into the exact proof that has to
be published: the HTTP-01 resource body or the DNS-01 TXT value.
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any

# Members that take part in the RFC 7638 thumbprint, per key type.
_THUMBPRINT_MEMBERS: dict[str, tuple[str, ...]] = {
    "EC": ("crv", "kty", "x", "y"),
    "OKP": ("crv", "kty", "x"),
    "RSA": ("e", "kty", "n"),
}


def b64url_encode(data: bytes) -> str:
    """Base64url-encode *data* without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _sha256_b64url(text: str) -> str:
    return b64url_encode(hashlib.sha256(text.encode("utf-8")).digest())


def compute_thumbprint(jwk_dict: dict[str, Any]) -> str:
    """Return the base64url SHA-256 thumbprint of an account JWK.

    Only the required members of the key type are hashed; ``use``,
    ``alg``, ``kid`` and the like are ignored.

    Raises
    ------
    ValueError
        For a key type other than ``EC``, ``OKP`` or ``RSA``.

    """
    kty = jwk_dict.get("kty")
    members = _THUMBPRINT_MEMBERS.get(kty)
    if members is None:
        msg = f"Cannot compute thumbprint for kty '{kty}'"
        raise ValueError(msg)

    canonical = {name: jwk_dict[name] for name in members}
    return _sha256_b64url(json.dumps(canonical, sort_keys=True, separators=(",", ":")))


def key_authorization(token: str, jwk_dict: dict[str, Any]) -> str:
    """``token.thumbprint``, the HTTP-01 resource body."""
    return f"{token}.{compute_thumbprint(jwk_dict)}"


def dns01_txt_value(token: str, jwk_dict: dict[str, Any]) -> str:
    """Digest of the key authorization, published as the DNS-01 TXT value."""
    return _sha256_b64url(key_authorization(token, jwk_dict))
