import hashlib
import hmac
from typing import Iterable, Mapping, Tuple, Union

from raidergo.core.exceptions import ConfigurationError

Params = Union[Mapping[str, str], Iterable[Tuple[str, str]]]

def _pairs(params: Params):
    items = params.items() if isinstance(params, Mapping) else params
    return [(str(key), "" if value is None else str(value)) for key, value in items]

def canonicalize(params: Params) -> str:
    """
    Build the provider string-to-sign: values ordered by key, each one
    prefixed with its UTF-8 byte length, with no separators.
    Repeated keys keep the order they arrived in.
    """
    pairs = sorted(_pairs(params), key=lambda pair: pair[0])
    return "".join(f"{len(value.encode('utf-8'))}{value}" for _, value in pairs)

def sign(secret: str, canonical: str) -> str:
    if not secret:
        raise ConfigurationError("Signing secret is not configured")
    return hmac.new(secret.encode("utf-8"), canonical.encode("utf-8"), hashlib.sha256).hexdigest()

def sign_params(secret: str, params: Params) -> str:
    return sign(secret, canonicalize(params))

def verify(secret: str, params: Params, digest: str) -> bool:
    if not digest:
        return False
    expected = sign_params(secret, params)
    # Compare bytes; str compare_digest raises on non-ASCII input
    return hmac.compare_digest(expected.encode("utf-8"), digest.strip().lower().encode("utf-8"))
