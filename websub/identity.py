"""Subscription identity, verify tokens and URL canonicalization."""

import hashlib
import hmac
import secrets
import urllib.parse

__all__ = ["compute_id", "generate_verify_token", "hash_token",
           "tokens_match", "canonical_url_encode", "is_valid_url"]


def compute_id(topic_url, hub_url):
    """
    return the stable subscription id for given `topic_url` at `hub_url`

    The id is persisted alongside the record and embedded in the callback
    URL so it must never change for the same pair.

        >>> len(compute_id("http://example.com/feed", "http://hub.example"))
        64

    """
    digest = hashlib.sha256(bytes(topic_url + hub_url, "utf-8"))
    return digest.hexdigest()


def generate_verify_token():
    """Return a fresh, unguessable verify token."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Return the one-way digest stored in place of `token`."""
    return hashlib.sha256(bytes(token, "utf-8")).hexdigest()


def tokens_match(token, digest):
    """Return whether plaintext `token` hashes to stored `digest`."""
    if token is None or digest is None:
        return False
    return hmac.compare_digest(hash_token(token), digest)


def canonical_url_encode(value):
    """
    return `value` percent-encoded per RFC 3986

    Every reserved character is encoded, including "/". Tilde is an
    unreserved character and stays literal.

    """
    return urllib.parse.quote(str(value), safe="").replace("%7E", "~")


def is_valid_url(url):
    """Return whether `url` is an absolute http(s) URL with a host."""
    if not isinstance(url, str) or not url:
        return False
    parts = urllib.parse.urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)
