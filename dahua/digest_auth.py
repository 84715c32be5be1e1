"""
HTTP Digest (qop=auth, MD5) helper for the Dahua eventManager stream.

Dahua firmwares answer the first attach request with a challenge such as::

    Digest realm="Login to ND021811019863",qop="auth",nonce="211955164",opaque="9a206a55e922ee7900769ec61ae49bf0c1f30242"

Some insert a space after each comma. Fields are looked up by name so neither
spacing nor field order matters.
"""

from __future__ import annotations

import hashlib
import re
import secrets
from dataclasses import dataclass
from typing import Dict, Optional

from .exceptions import DigestChallengeError

QOP = "auth"
ALGORITHM = "MD5"
CNONCE_BYTES = 24

_TOKEN_RE = re.compile(r'(\w+)\s*=\s*("[^"]*"|[^,]*)')
_SCHEME_RE = re.compile(r"^\s*([A-Za-z][\w-]*)\s+(?=\w+\s*=)")


@dataclass(frozen=True)
class AuthChallenge:
    realm: str
    nonce: str
    qop: Optional[str] = None
    opaque: Optional[str] = None
    algorithm: str = ALGORITHM


def _tokenize(header_value: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for m in _TOKEN_RE.finditer(header_value):
        out[m.group(1).lower()] = m.group(2).strip().strip('"')
    return out


def parse_www_authenticate(header_value: Optional[str]) -> AuthChallenge:
    """Parse a ``WWW-Authenticate: Digest ...`` value into an AuthChallenge."""
    if not header_value or not header_value.strip():
        raise DigestChallengeError("empty WWW-Authenticate header")

    scheme = _SCHEME_RE.match(header_value)
    if scheme and scheme.group(1).lower() != "digest":
        raise DigestChallengeError(f"unsupported authentication scheme: {header_value!r}")

    params = _tokenize(header_value)
    realm = params.get("realm")
    nonce = params.get("nonce")
    if realm is None or not nonce:
        raise DigestChallengeError(f"challenge is missing realm or nonce: {header_value!r}")

    return AuthChallenge(
        realm=realm,
        nonce=nonce,
        qop=params.get("qop"),
        opaque=params.get("opaque") or None,
        algorithm=(params.get("algorithm") or ALGORITHM).upper(),
    )


def _md5(data: str) -> str:
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def format_nonce_count(count: int) -> str:
    return f"{count:08d}"


def new_cnonce() -> str:
    return secrets.token_hex(CNONCE_BYTES)


def compute_response(
    username: str,
    password: str,
    method: str,
    uri: str,
    realm: str,
    nonce: str,
    nc: str,
    cnonce: str,
) -> str:
    ha1 = _md5(f"{username}:{realm}:{password}")
    ha2 = _md5(f"{method}:{uri}")
    return _md5(f"{ha1}:{nonce}:{nc}:{cnonce}:{QOP}:{ha2}")


def build_digest_header(
    username: str,
    password: str,
    uri: str,
    challenge: AuthChallenge,
    nonce_count: int,
    method: str = "GET",
    cnonce: Optional[str] = None,
) -> str:
    """Build the ``Authorization`` value answering ``challenge``.

    ``nonce_count`` is written as the 8-digit decimal ``nc``; a fresh 48 hex
    character ``cnonce`` is generated unless one is supplied.
    """
    if challenge.algorithm not in (ALGORITHM, ""):
        raise DigestChallengeError(f"unsupported digest algorithm {challenge.algorithm}")

    nc = format_nonce_count(nonce_count)
    cnonce = cnonce or new_cnonce()
    response = compute_response(
        username, password, method, uri, challenge.realm, challenge.nonce, nc, cnonce
    )

    header = (
        f'Digest username="{username}",realm="{challenge.realm}",'
        f'nonce="{challenge.nonce}",uri="{uri}",qop="{QOP}",algorithm="{ALGORITHM}",'
        f'response="{response}",nc="{nc}",cnonce="{cnonce}"'
    )
    if challenge.opaque:
        header += f',opaque="{challenge.opaque}"'
    return header


def solve_challenge(
    username: str,
    password: str,
    uri: str,
    www_authenticate: str,
    nonce_count: int,
    method: str = "GET",
) -> str:
    return build_digest_header(
        username, password, uri, parse_www_authenticate(www_authenticate), nonce_count, method
    )


__all__ = [
    "AuthChallenge",
    "build_digest_header",
    "compute_response",
    "format_nonce_count",
    "parse_www_authenticate",
    "solve_challenge",
]
