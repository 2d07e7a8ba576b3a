from __future__ import annotations

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ImageResolver = Callable[[str, str], Optional[str]]

DEFAULT_IMAGE_BASE_URL = "https://picsum.photos"


def title_seed(title: str) -> int:
    return sum(ord(ch) for ch in title)


class PicsumImageResolver:
    """Deterministic placeholder banner per title; same title, same picture."""

    def __init__(self, base_url: str = DEFAULT_IMAGE_BASE_URL, *, width: int = 1200, height: int = 400):
        self.base_url = base_url.rstrip("/")
        self.width = width
        self.height = height

    def __call__(self, title: str, summary: str) -> Optional[str]:
        _ = summary
        return f"{self.base_url}/seed/{title_seed(title)}/{self.width}/{self.height}"


def resolve_image_url(resolver: ImageResolver | None, title: str, summary: str) -> Optional[str]:
    if resolver is None:
        return None
    try:
        url = resolver(title, summary)
    except Exception:
        logger.warning("Image lookup failed for %r; saving presentation without image", title, exc_info=True)
        return None
    return url or None
