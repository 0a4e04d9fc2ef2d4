"""Uploader backends behind a single port.

Exports
-------
UploaderPort
    Protocol the orchestrators depend on.
create_uploader
    Pick a backend from :class:`PicflowConfig`.
PicGoUploader
    HTTP client for the PicGo desktop app.
PicGoCoreUploader
    Subprocess client for the ``picgo`` CLI.
"""

from .base import UploaderPort, check_result_count, create_uploader
from .picgo import PicGoUploader
from .picgo_core import PicGoCoreUploader, parse_urls

__all__ = [
    "PicGoCoreUploader",
    "PicGoUploader",
    "UploaderPort",
    "check_result_count",
    "create_uploader",
    "parse_urls",
]
