from __future__ import annotations

import hashlib
import io
import re
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Dict, Optional, Tuple, Union
from urllib.parse import unquote

import requests
from PIL import Image, UnidentifiedImageError

from mdrender.logger import get_logger

LOGGER = get_logger(__name__)

POINTS_PER_PIXEL = 72.0 / 96.0
DEFAULT_TIMEOUT = 30
REMOTE_PATTERN = re.compile(r"^https?://", flags=re.IGNORECASE)


@dataclass(frozen=True)
class DecodedImage:
    """Raw samples of a decoded raster plus its colour model.

    ``data`` holds interleaved 8-bit samples for ``mode``; ``alpha`` holds
    one 8-bit opacity sample per pixel when the source had transparency.
    """

    width: int
    height: int
    mode: str
    data: bytes
    alpha: Optional[bytes] = None
    source: Optional[str] = None

    @cached_property
    def digest(self) -> str:
        hasher = hashlib.sha256()
        hasher.update(f"{self.mode}:{self.width}x{self.height}:".encode("ascii"))
        hasher.update(self.data)
        if self.alpha is not None:
            hasher.update(b"alpha:")
            hasher.update(self.alpha)
        return hasher.hexdigest()

    @property
    def size_in_points(self) -> Tuple[float, float]:
        return self.width * POINTS_PER_PIXEL, self.height * POINTS_PER_PIXEL


def _normalize(image: Image.Image) -> Tuple[Image.Image, Optional[Image.Image]]:
    mode = image.mode
    if mode == "P":
        image = image.convert("RGBA" if "transparency" in image.info else "RGB")
        mode = image.mode
    if mode == "RGBA":
        return image.convert("RGB"), image.getchannel("A")
    if mode == "LA":
        return image.convert("L"), image.getchannel("A")
    if mode == "1":
        return image.convert("L"), None
    return image, None


def decode_image(raw: bytes, source: Optional[str] = None) -> DecodedImage:
    """Decode encoded image bytes with Pillow.

    Palette, bilevel and alpha modes become ``RGB`` or ``L`` with a separate
    alpha plane. Other colour models are kept as they are.
    """
    with Image.open(io.BytesIO(raw)) as opened:
        opened.load()
        image, alpha = _normalize(opened)
        return DecodedImage(
            width=image.width,
            height=image.height,
            mode=image.mode,
            data=image.tobytes(),
            alpha=alpha.tobytes() if alpha is not None else None,
            source=source,
        )


class ImageLoader:
    """Loads image sources relative to a markdown file's directory."""

    def __init__(
        self,
        base_dir: Union[str, Path, None] = None,
        allow_remote: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.allow_remote = allow_remote
        self.timeout = timeout
        self._cache: Dict[str, DecodedImage] = {}

    def read(self, src: str) -> bytes:
        if REMOTE_PATTERN.match(src):
            if not self.allow_remote:
                raise OSError(f"Remote images are disabled: {src}")
            response = requests.get(src, timeout=self.timeout)
            response.raise_for_status()
            return response.content

        candidate = Path(unquote(src))
        if not candidate.is_absolute():
            candidate = (self.base_dir / candidate).resolve()
        with candidate.open("rb") as handle:
            return handle.read()

    def load(self, src: str) -> DecodedImage:
        src = src.strip()
        if src.startswith("!"):
            src = src[1:].strip()
        cached = self._cache.get(src)
        if cached is not None:
            return cached
        image = decode_image(self.read(src), source=src)
        self._cache[src] = image
        LOGGER.debug("Loaded image %s (%dx%d %s)", src, image.width, image.height, image.mode)
        return image

    def try_load(self, src: str) -> Optional[DecodedImage]:
        """Like :meth:`load` but logs and returns ``None`` on failure."""
        if not src.strip():
            LOGGER.warning("Image without a source; rendering alt text")
            return None
        try:
            return self.load(src)
        except (requests.RequestException, UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            LOGGER.warning("Failed to load image '%s': %s; rendering alt text", src, exc)
            return None
