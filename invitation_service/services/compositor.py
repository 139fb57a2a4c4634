from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from invitation_service.errors import IncompatibleClipFormat
from invitation_service.media.transcoder import Transcoder


class Compositor:
    """Joins scene clips into the base video in exactly the order given."""

    def __init__(
        self,
        transcoder: Transcoder,
        delete_inputs: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self.transcoder = transcoder
        self.delete_inputs = delete_inputs
        self.log = logger or logging.getLogger(__name__)

    def concat(self, ordered_clip_paths: Sequence[Path], output_path: Path) -> Path:
        clips = [Path(path) for path in ordered_clip_paths]
        if not clips:
            raise IncompatibleClipFormat("no clips to concatenate")
        infos = [self.transcoder.probe(clip, stage="composing") for clip in clips]
        reference = infos[0]
        for clip, info in zip(clips[1:], infos[1:]):
            if info.format_key != reference.format_key:
                raise IncompatibleClipFormat(
                    f"{clip.name} is {info.describe()}, expected {reference.describe()} like {clips[0].name}"
                )
        output = self.transcoder.concat(clips, Path(output_path))
        self.log.info(
            "base video composed",
            extra={
                "clips": len(clips),
                "expected_duration": round(sum(info.duration for info in infos), 3),
                "output": str(output),
            },
        )
        if self.delete_inputs:
            for clip in clips:
                clip.unlink(missing_ok=True)
        return output
