"""URL identity: a short stable digest used as dedup key and file name token."""

import hashlib

URL_HASH_LENGTH = 16


def identify(url: str) -> str:
    """Return the 16-hex-char identity of a URL string.

    The URL is hashed verbatim. No normalization is applied, so
    ``https://x.com/a`` and ``https://x.com/a?ref=1`` are distinct.
    """
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:URL_HASH_LENGTH]
