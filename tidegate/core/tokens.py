"""Pure functions for minting and hashing opaque session tokens.

No classes, no state. Tokens are random and carry no claims; the server looks
sessions up by an HMAC of the token, so the database never holds anything
that can be replayed as a credential.
"""

import hashlib
import hmac
import secrets

ACCESS_TOKEN_PREFIX = "tga_"
REFRESH_TOKEN_PREFIX = "tgr_"

# 32 random bytes = 256 bits of entropy.
TOKEN_BYTES = 32


def generate_token(prefix: str = ACCESS_TOKEN_PREFIX) -> str:
    """Return a new URL-safe random token with a recognizable prefix.

    The prefix lets log redaction and secret scanners spot leaked tokens.
    """
    return prefix + secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str, secret: str) -> str:
    """Keyed SHA-256 digest of *token*, hex encoded.

    Deterministic for a given secret so it can be used as a lookup key, and
    useless without the secret if the sessions table leaks.
    """
    return hmac.new(secret.encode(), token.encode(), hashlib.sha256).hexdigest()

