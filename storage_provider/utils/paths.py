"""
Object key and URL derivation shared by every storage provider.

All helpers here are pure: the same arguments always give the same key or
URL, so they can be exercised without a live backend.
"""

import posixpath
import re
from typing import Optional, Tuple
from urllib.parse import urlsplit

_REPEATED_SEPARATORS = re.compile(r"/+")


def normalize_path(path: Optional[str]) -> str:
    """
    Normalizes a storage path.

    Backslashes are treated as separators, repeated separators are collapsed
    and the leading separator is removed.

    Args:
        path (str): A raw path, possibly empty or None.

    Returns:
        str: The normalized path, e.g. "media//2024/05//a.png" -> "media/2024/05/a.png".
    """
    if not path:
        return ""
    path = path.replace("\\", "/")
    return _REPEATED_SEPARATORS.sub("/", path).lstrip("/")


def build_object_key(prefix: Optional[str], directory: Optional[str], file_name: str) -> str:
    """
    Builds the backend object key for a file.

    Args:
        prefix (str): The provider's configured root inside the bucket.
        directory (str): The per-call sub-directory.
        file_name (str): The file name.

    Returns:
        str: normalize(prefix + '/' + directory + '/' + file_name)
    """
    return normalize_path(f"{prefix or ''}/{directory or ''}/{file_name}")


def build_list_prefix(prefix: Optional[str], directory: Optional[str]) -> str:
    """
    Builds the key prefix used to list the direct children of a directory.
    Returns "" for the bucket root, otherwise the scope followed by a single '/'.
    """
    scope = normalize_path(f"{prefix or ''}/{directory or ''}").rstrip("/")
    return f"{scope}/" if scope else ""


def strip_list_prefix(key: str, list_prefix: str) -> str:
    if list_prefix and key.startswith(list_prefix):
        return key[len(list_prefix):]
    return key


def join_url(base: str, key: str) -> str:
    return f"{base.rstrip('/')}/{key}"


def build_public_url(key: str, default_base_url: str, cdn_domain: Optional[str] = None) -> str:
    """
    Builds the public URL of an object key.
    A configured CDN domain always takes precedence over the backend's own URL.
    """
    return join_url(cdn_domain or default_base_url, key)


def split_endpoint(endpoint: str, default_scheme: str = "https") -> Tuple[str, str]:
    """
    Splits an endpoint that may or may not carry a scheme.

    Returns:
        Tuple[str, str]: (scheme, host[:port][/path]) without a trailing slash.
    """
    endpoint = endpoint.strip().rstrip("/")
    if "://" not in endpoint:
        return default_scheme, endpoint
    parts = urlsplit(endpoint)
    return parts.scheme, f"{parts.netloc}{parts.path}".rstrip("/")


def split_path(path: str) -> Tuple[str, str]:
    """
    Splits a combined path into (directory, file_name).

    Args:
        path (str): e.g. "/media\\2024//a.png"

    Returns:
        Tuple[str, str]: e.g. ("media/2024", "a.png"); the directory is "" for root files.
    """
    normalized = normalize_path(path)
    return posixpath.dirname(normalized), posixpath.basename(normalized)
