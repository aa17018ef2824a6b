"""Image encoder strategies: Pillow WebP, bundled cwebp and PNG."""

import io
import logging
import shutil
import stat
import subprocess
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from PIL import Image, features

from gallevr_sync.errors import EncoderUnavailableError, EncodingError

_logger = logging.getLogger(__name__)


class EncoderStrategy(Protocol):
    """One way of turning a decoded image into compressed bytes."""

    name: str
    format: str
    adjustable_quality: bool

    def encode(self, image: Image.Image, quality: int, method: int) -> bytes:
        """Return the encoded image.

        Raises ``EncoderUnavailableError`` when the strategy cannot run here.
        """


@dataclass
class PillowWebpEncoder(EncoderStrategy):
    """WebP through Pillow's linked libwebp."""

    name = "native"
    format = "webp"
    adjustable_quality = True

    def encode(self, image: Image.Image, quality: int, method: int) -> bytes:
        if not features.check("webp"):
            raise EncoderUnavailableError("Pillow was built without WebP support")
        buffer = io.BytesIO()
        image.save(buffer, format="WEBP", quality=quality, method=method)
        return buffer.getvalue()


@dataclass
class CwebpEncoder(EncoderStrategy):
    """WebP through the ``cwebp`` command-line encoder.

    The binary is copied once from ``bundle_path`` (or the first ``cwebp`` on
    ``PATH``) into ``install_dir`` and reused for every later call.
    """

    install_dir: Path
    scratch_dir: Path
    bundle_path: Path | None = None
    target_size_kb: int | None = None
    timeout_seconds: float = 60.0
    _executable: Path | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    name = "bundled"
    format = "webp"
    adjustable_quality = True

    def executable(self) -> Path:
        """Return the installed binary, extracting it on first use."""
        with self._lock:
            if self._executable is not None and self._executable.exists():
                return self._executable
            source = self._locate_source()
            target = self.install_dir / source.name
            if not target.exists():
                self.install_dir.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, target)
                mode = target.stat().st_mode
                target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
                _logger.info("Installed cwebp to %s", target)
            self._executable = target
            return target

    def encode(self, image: Image.Image, quality: int, method: int) -> bytes:
        executable = self.executable()
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        token = uuid.uuid4().hex
        input_path = self.scratch_dir / f"cwebp_in_{token}.png"
        output_path = self.scratch_dir / f"cwebp_out_{token}.webp"
        try:
            image.save(input_path, format="PNG")
            command = [str(executable), "-q", str(quality), "-m", str(method)]
            if self.target_size_kb is not None:
                command += ["-size", str(self.target_size_kb * 1024)]
            command += ["-o", str(output_path), str(input_path)]
            try:
                result = subprocess.run(  # noqa: S603
                    command,
                    capture_output=True,
                    timeout=self.timeout_seconds,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                raise EncodingError(f"cwebp could not run: {exc}") from exc
            if result.returncode != 0:
                stderr = result.stderr.decode("utf-8", errors="replace").strip()
                raise EncodingError(f"cwebp exited with {result.returncode}: {stderr}")
            if not output_path.exists():
                raise EncodingError("cwebp produced no output file")
            return output_path.read_bytes()
        finally:
            input_path.unlink(missing_ok=True)
            output_path.unlink(missing_ok=True)

    def _locate_source(self) -> Path:
        if self.bundle_path is not None:
            if self.bundle_path.is_file():
                return self.bundle_path
            raise EncoderUnavailableError(
                f"cwebp bundle not found at {self.bundle_path}"
            )
        found = shutil.which("cwebp")
        if found is None:
            raise EncoderUnavailableError("cwebp is not installed")
        return Path(found)


@dataclass
class PngEncoder(EncoderStrategy):
    """Lossless PNG; always available."""

    name = "fallback"
    format = "png"
    adjustable_quality = False

    def encode(self, image: Image.Image, quality: int, method: int) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG", optimize=True)
        return buffer.getvalue()

