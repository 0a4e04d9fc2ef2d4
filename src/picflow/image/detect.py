"""Locator classification.

Decides whether an image locator (the ``src`` of ``![alt](src)``) points at
the network or at a local file, and whether a path or URL names an image
by its extension.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from picflow.models import LocatorType

_NETWORK_SCHEMES = ("http://", "https://")

IMAGE_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".bmp", ".gif", ".svg",
    ".tiff", ".tif", ".webp", ".ico", ".avif",
})


def classify_locator(locator: str) -> LocatorType:
    """Return :attr:`LocatorType.NETWORK` for ``http(s)://`` locators,
    :attr:`LocatorType.LOCAL` for everything else.
    """
    if locator.strip().lower().startswith(_NETWORK_SCHEMES):
        return LocatorType.NETWORK
    return LocatorType.LOCAL


def is_network(locator: str) -> bool:
    return classify_locator(locator) is LocatorType.NETWORK


def is_image_path(path: str) -> bool:
    """True when *path* ends in a known image extension (case-insensitive)."""
    return PurePosixPath(path.replace("\\", "/")).suffix.lower() in IMAGE_EXTENSIONS


def url_asset(url: str) -> str:
    """Return the last path segment of *url*, without query or fragment.

    Malformed URLs have no asset and give ``""``.

    >>> url_asset("https://cdn.example.com/a/b/photo.png?w=300#x")
    'photo.png'
    """
    try:
        path = urlparse(url).path
    except ValueError:
        return ""
    return PurePosixPath(path).name


def url_host(url: str) -> str:
    """Lowercased host of *url*, or ``""`` when it has none or is malformed."""
    try:
        host = urlparse(url.strip()).hostname
    except ValueError:
        return ""
    return (host or "").lower()


def locator_file_name(locator: str) -> str:
    """File name a local locator refers to, percent-decoded."""
    return PurePosixPath(unquote(locator).replace("\\", "/")).name
