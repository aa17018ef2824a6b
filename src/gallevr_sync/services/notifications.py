"""User-facing reactions to pipeline events."""

import asyncio
import logging
import os
from dataclasses import dataclass

from gallevr_sync.domain.events import (
    PhotoDetected,
    PipelineEvent,
    PipelineNotice,
    UploadFailed,
    UploadSucceeded,
)
from gallevr_sync.services.events import EventBus

_logger = logging.getLogger(__name__)


@dataclass
class SoundCuePlayer:
    """Runs an external command to play the upload-complete cue.

    The volume is passed to the command as ``GALLEVR_SOUND_VOLUME``.
    """

    command: list[str] | None
    enabled: bool = True
    volume: float = 0.5

    async def play(self) -> bool:
        """Play the cue; return whether a command was run successfully."""
        if not self.enabled or not self.command:
            return False
        env = {**os.environ, "GALLEVR_SOUND_VOLUME": f"{self.volume:.2f}"}
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                env=env,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            return_code = await process.wait()
        except OSError:
            _logger.exception("Failed to play sound cue")
            return False
        if return_code != 0:
            _logger.warning("Sound command exited with %s", return_code)
            return False
        return True


@dataclass
class NotificationService:
    """Logs pipeline events for the user and plays the completion cue."""

    events: EventBus
    sound: SoundCuePlayer

    async def run(self) -> None:
        queue = self.events.subscribe()
        try:
            while True:
                event = await queue.get()
                try:
                    await self.handle(event)
                except Exception:
                    _logger.exception("Failed to handle event %s", event)
        finally:
            self.events.unsubscribe(queue)

    async def handle(self, event: PipelineEvent) -> None:
        if isinstance(event, UploadSucceeded):
            _logger.info(
                "Photo %s uploaded: %s", event.file_path.name, event.gallery_url
            )
            await self.sound.play()
        elif isinstance(event, UploadFailed):
            _logger.warning(
                "Photo %s failed to upload after %s attempts: %s",
                event.file_path.name,
                event.attempt_count,
                event.reason,
            )
        elif isinstance(event, PipelineNotice):
            level = logging.WARNING if event.level == "warning" else logging.INFO
            _logger.log(level, "%s", event.message)
        elif isinstance(event, PhotoDetected):
            _logger.debug("Photo detected: %s", event.file_path)
