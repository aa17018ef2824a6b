"""Photo preparation and size-constrained encoding."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from gallevr_sync.adapters.encoders import EncoderStrategy
from gallevr_sync.domain.photos import EncodedImage
from gallevr_sync.errors import (
    EncoderUnavailableError,
    EncodingError,
    PhotoRejectedError,
    PhotoUnavailableError,
)

_logger = logging.getLogger(__name__)

_ACCEPTED_ASPECT_RATIOS = (16 / 9, 9 / 16)
_ASPECT_TOLERANCE = 0.01
# (size ratio upper bound, quality reduction)
_QUALITY_STEPS = ((0.5, 25), (0.7, 15), (0.9, 10))
_FINAL_QUALITY_STEP = 5
_MIN_QUALITY = 5


def load_photo(
    path: Path, max_dimension: int = 1080, require_widescreen: bool = True
) -> Image.Image:
    """Decode a photo, check its shape and shrink it to ``max_dimension``.

    The short side of the result is at most ``max_dimension`` pixels.
    """
    try:
        with Image.open(path) as source:
            source.load()
            mode = "RGBA" if _has_alpha(source) else "RGB"
            image = source.convert(mode)
    except FileNotFoundError as exc:
        raise PhotoUnavailableError(f"Photo no longer exists: {path}") from exc
    except (OSError, SyntaxError) as exc:
        # Truncated or locked files are retried by the upload worker.
        raise EncodingError(f"Photo cannot be decoded yet: {path}") from exc

    width, height = image.size
    if require_widescreen and not is_accepted_aspect_ratio(width, height):
        raise PhotoRejectedError(
            f"Photo must be 16:9 or 9:16, got {width}x{height}: {path.name}"
        )

    short_side = min(width, height)
    if short_side > max_dimension:
        scale = max_dimension / short_side
        size = (round(width * scale), round(height * scale))
        _logger.info("Resizing %s from %sx%s to %sx%s", path.name, width, height, *size)
        image = image.resize(size, Image.Resampling.BICUBIC)
    return image


def is_accepted_aspect_ratio(width: int, height: int) -> bool:
    if width <= 0 or height <= 0:
        return False
    ratio = width / height
    return any(
        abs(ratio - accepted) <= _ASPECT_TOLERANCE
        for accepted in _ACCEPTED_ASPECT_RATIOS
    )


def next_quality(quality: int, size_bytes: int, limit_bytes: int) -> int:
    """Lower quality more aggressively the further the output is over budget."""
    ratio = limit_bytes / size_bytes
    reduction = _FINAL_QUALITY_STEP
    for upper_bound, step in _QUALITY_STEPS:
        if ratio < upper_bound:
            reduction = step
            break
    return max(_MIN_QUALITY, quality - reduction)


@dataclass
class EncoderService:
    """Runs the encoder strategy chain, degrading to the next on failure."""

    strategies: Sequence[EncoderStrategy]
    max_size_kb: int = 150
    max_attempts: int = 5
    quality: int = 85
    method: int = 6
    max_dimension: int = 1080
    require_widescreen: bool = True

    def encode_file(self, path: Path) -> EncodedImage:
        """Load, validate and encode the photo at ``path``."""
        image = load_photo(path, self.max_dimension, self.require_widescreen)
        return self.encode(image)

    def encode(
        self, image: Image.Image, quality: int | None = None, method: int | None = None
    ) -> EncodedImage:
        """Encode with the first strategy that works.

        Raises ``EncodingError`` only when every strategy failed.
        """
        start_quality = self.quality if quality is None else quality
        effort = self.method if method is None else method
        for strategy in self.strategies:
            try:
                return self._encode_within_budget(
                    strategy, image, start_quality, effort
                )
            except EncoderUnavailableError as exc:
                _logger.info("Encoder %s unavailable: %s", strategy.name, exc)
            except Exception:
                _logger.exception("Encoder %s failed, trying next", strategy.name)
        raise EncodingError("No encoder strategy produced output")

    def _encode_within_budget(
        self, strategy: EncoderStrategy, image: Image.Image, quality: int, method: int
    ) -> EncodedImage:
        limit = self.max_size_kb * 1024
        attempts = self.max_attempts if strategy.adjustable_quality else 1
        current = quality
        data = strategy.encode(image, current, method)
        for _ in range(attempts - 1):
            if len(data) <= limit:
                break
            lowered = next_quality(current, len(data), limit)
            if lowered == current:
                break
            current = lowered
            data = strategy.encode(image, current, method)

        if len(data) > limit:
            _logger.warning(
                "Encoder %s output is %.1f KB, above the %s KB target",
                strategy.name,
                len(data) / 1024,
                self.max_size_kb,
            )
        encoded = EncodedImage(
            data=data,
            format=strategy.format,
            width=image.width,
            height=image.height,
            quality=current,
            strategy=strategy.name,
        )
        _logger.info(
            "Encoded %sx%s with %s at quality %s: %.1f KB",
            encoded.width,
            encoded.height,
            encoded.strategy,
            encoded.quality,
            encoded.size_kb,
        )
        return encoded


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
