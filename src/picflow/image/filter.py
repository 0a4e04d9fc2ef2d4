"""Reference filtering policy.

Narrows the extracted references down to the ones an upload run should
touch.  Everything here is a pure function of its arguments: the same
references and the same config always give the same worklist.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from picflow.config import PicflowConfig
from picflow.models import ImageReference

from .detect import is_network, url_host


def is_blacklisted(url: str, domains: Iterable[str]) -> bool:
    """True when the host of *url* is one of *domains* or a subdomain of one.

    Matching is on domain boundaries: ``evil.com`` blocks ``evil.com`` and
    ``img.evil.com`` but not ``notevil.com``.
    """
    host = url_host(url)
    if not host:
        return False
    for domain in domains:
        domain = domain.strip().lower().lstrip(".")
        if not domain:
            continue
        if host == domain or host.endswith("." + domain):
            return True
    return False


def filter_references(
    references: Sequence[ImageReference],
    config: PicflowConfig,
) -> list[ImageReference]:
    """Return the subsequence of *references* that should be uploaded.

    * Network references are dropped when ``config.work_on_network`` is
      off.
    * Network references on a blacklisted domain are always dropped.
    * Local references always pass; missing files are dealt with when
      the orchestrator resolves them.

    Input order is preserved.
    """
    kept: list[ImageReference] = []
    for ref in references:
        if is_network(ref.locator):
            if not config.work_on_network:
                continue
            if is_blacklisted(ref.locator, config.network_blacklist_domains):
                continue
        kept.append(ref)
    return kept


def should_upload_clipboard(
    has_image: bool,
    has_text: bool,
    config: PicflowConfig,
) -> bool:
    """Decide whether a paste should go through the clipboard upload.

    An image on its own is always uploaded.  When the clipboard also
    carries text (for example a copied spreadsheet range that includes a
    rendered bitmap), the image is uploaded only if
    ``config.upload_on_text_and_image`` is on.
    """
    if not has_image:
        return False
    if has_text:
        return config.upload_on_text_and_image
    return True
