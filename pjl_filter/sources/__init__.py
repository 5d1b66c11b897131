"""Page sources: where the consumer loop gets its next ready page."""

from .listed import ListedPageSource
from .watched import WatchedPageSource, watch_supported

__all__ = ["ListedPageSource", "WatchedPageSource", "watch_supported"]
