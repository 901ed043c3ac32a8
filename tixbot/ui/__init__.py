"""Control UI attachment and surfaces"""

from tixbot.ui.attach import (
    AttachmentController,
    LoadFailure,
    RetryState,
    UISurface,
    build_url,
    is_loopback_url,
)

__all__ = [
    "AttachmentController",
    "LoadFailure",
    "RetryState",
    "UISurface",
    "build_url",
    "is_loopback_url",
]
