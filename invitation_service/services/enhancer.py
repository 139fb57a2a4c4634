from __future__ import annotations

import logging
import shutil
from pathlib import Path

from invitation_service.errors import EnhancementError, TranscoderError
from invitation_service.media.transcoder import Transcoder
from invitation_service.models.domain import Customization


class Enhancer:
    """Post-composition touches: fade in/out and an optional music track.

    The input video is never modified; the result is always a new file.
    """

    def __init__(
        self,
        transcoder: Transcoder,
        fade_seconds: float = 1.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.transcoder = transcoder
        self.fade_seconds = fade_seconds
        self.log = logger or logging.getLogger(__name__)

    def enhance(self, base_video_path: Path, customization: Customization, output_path: Path) -> Path:
        base = Path(base_video_path)
        output = Path(output_path)
        if output.resolve() == base.resolve():
            raise ValueError("enhancement output must differ from the base video")
        music = Path(customization.background_music) if customization.background_music else None
        if music is not None and not music.is_file():
            raise EnhancementError(f"background music not found: {music}")

        if not customization.fades_enabled and music is None:
            shutil.copyfile(base, output)
            return output

        intermediate: Path | None = None
        current = base
        try:
            if customization.fades_enabled:
                info = self.transcoder.probe(base, stage="enhancing")
                fade = min(self.fade_seconds, info.duration / 2)
                target = output
                if music is not None:
                    intermediate = output.with_name(f"{output.stem}.faded{output.suffix}")
                    target = intermediate
                current = self.transcoder.apply_fades(current, target, fade_seconds=fade, duration=info.duration)
            if music is not None:
                current = self.transcoder.mux_audio(current, music, output)
        except TranscoderError as exc:
            output.unlink(missing_ok=True)
            raise EnhancementError(str(exc)) from exc
        finally:
            if intermediate is not None:
                intermediate.unlink(missing_ok=True)
        self.log.info(
            "video enhanced",
            extra={"fades": customization.fades_enabled, "music": str(music) if music else None, "output": str(output)},
        )
        return current
