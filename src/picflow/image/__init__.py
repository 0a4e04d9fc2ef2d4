"""Image pipeline: extract, classify, filter, substitute, and placeholders.

Exports
-------
extract_image_references
    Find every ``![name](locator)`` in document text.
classify_locator / is_network / is_image_path / url_asset
    Locator classification helpers.
filter_references / is_blacklisted / should_upload_clipboard
    Upload policy.
replace_first / replace_first_in_editor / format_image
    First-occurrence substitution.
PlaceholderTracker
    Lifecycle of interactive "uploading" placeholders.
"""

from .detect import (
    IMAGE_EXTENSIONS,
    classify_locator,
    is_image_path,
    is_network,
    locator_file_name,
    url_asset,
    url_host,
)
from .extract import extract_image_references
from .filter import filter_references, is_blacklisted, should_upload_clipboard
from .placeholder import FAILURE_MARKER, PlaceholderTracker, progress_text_for
from .substitute import find_first, format_image, replace_first, replace_first_in_editor

__all__ = [
    "FAILURE_MARKER",
    "IMAGE_EXTENSIONS",
    "PlaceholderTracker",
    "classify_locator",
    "extract_image_references",
    "filter_references",
    "find_first",
    "format_image",
    "is_blacklisted",
    "is_image_path",
    "is_network",
    "locator_file_name",
    "progress_text_for",
    "replace_first",
    "replace_first_in_editor",
    "should_upload_clipboard",
    "url_asset",
    "url_host",
]
