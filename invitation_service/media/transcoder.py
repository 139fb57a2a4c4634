from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np
from moviepy import CompositeVideoClip, ImageClip, VideoFileClip, vfx

from invitation_service.config import Settings
from invitation_service.errors import PipelineError, StageTimeout, TranscoderError


@dataclass
class VideoLayer:
    path: Path
    position: Tuple[int, int]
    size: Tuple[int, int]


@dataclass
class ScenePlan:
    """Everything needed to encode one scene, with text and media already resolved."""

    scene_id: str
    duration: float
    fps: int
    size: Tuple[int, int]
    base_frame: np.ndarray
    overlay: Optional[np.ndarray] = None
    video_layers: List[VideoLayer] = field(default_factory=list)
    fade_in: float = 0.0
    tags: Tuple[str, ...] = ()
    skipped_slots: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ClipInfo:
    codec: str
    width: int
    height: int
    fps: str
    pixel_format: str
    duration: float
    has_audio: bool = False

    @property
    def format_key(self) -> Tuple[str, int, int, str, str]:
        return (self.codec, self.width, self.height, self.fps, self.pixel_format)

    def describe(self) -> str:
        return f"{self.codec} {self.width}x{self.height} @ {self.fps}fps {self.pixel_format}"


class Transcoder:
    """Media-processing capability the pipeline depends on."""

    def render_scene(self, plan: ScenePlan, output_path: Path) -> Path: ...  # pragma: no cover

    def probe(self, path: Path, stage: str = "probing") -> ClipInfo: ...  # pragma: no cover

    def concat(self, clips: Sequence[Path], output_path: Path) -> Path: ...  # pragma: no cover

    def apply_fades(
        self, video_path: Path, output_path: Path, fade_seconds: float, duration: float
    ) -> Path: ...  # pragma: no cover

    def mux_audio(self, video_path: Path, audio_path: Path, output_path: Path) -> Path: ...  # pragma: no cover


class FFmpegTranscoder(Transcoder):
    """Scenes are encoded with moviepy; every other step shells out to ffmpeg / ffprobe."""

    def __init__(
        self,
        ffmpeg_binary: str = "ffmpeg",
        ffprobe_binary: str = "ffprobe",
        timeout: float = 300.0,
        video_codec: str = "libx264",
        audio_codec: str = "aac",
        pixel_format: str = "yuv420p",
        preset: str = "medium",
        logger: logging.Logger | None = None,
    ) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary
        self.timeout = timeout
        self.video_codec = video_codec
        self.audio_codec = audio_codec
        self.pixel_format = pixel_format
        self.preset = preset
        self.log = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings: Settings, logger: logging.Logger | None = None) -> "FFmpegTranscoder":
        return cls(
            ffmpeg_binary=settings.ffmpeg_binary,
            ffprobe_binary=settings.ffprobe_binary,
            timeout=settings.ffmpeg_timeout_seconds,
            video_codec=settings.video_codec,
            audio_codec=settings.audio_codec,
            pixel_format=settings.pixel_format,
            preset=settings.video_preset,
            logger=logger,
        )

    def render_scene(self, plan: ScenePlan, output_path: Path) -> Path:
        layers = [ImageClip(plan.base_frame, duration=plan.duration)]
        try:
            for layer in plan.video_layers:
                layers.append(self._video_layer(layer, plan.duration))
            if plan.overlay is not None:
                layers.append(ImageClip(plan.overlay, transparent=True, duration=plan.duration))
            if len(layers) == 1:
                clip = layers[0]
            else:
                clip = CompositeVideoClip(layers, size=plan.size, use_bgclip=True).with_duration(plan.duration)
            if plan.fade_in > 0:
                clip = clip.with_effects([vfx.FadeIn(plan.fade_in)])
            clip.write_videofile(
                str(output_path),
                fps=plan.fps,
                codec=self.video_codec,
                audio=False,
                preset=self.preset,
                logger=None,
                ffmpeg_params=["-pix_fmt", self.pixel_format],
            )
        except Exception:
            Path(output_path).unlink(missing_ok=True)
            raise
        finally:
            for layer in layers:
                layer.close()
        return Path(output_path)

    def probe(self, path: Path, stage: str = "probing") -> ClipInfo:
        cmd = [
            self.ffprobe_binary,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        completed = self._run(cmd, stage)
        try:
            data = json.loads(completed.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise TranscoderError(stage, f"unreadable ffprobe output for {Path(path).name}") from exc
        streams = data.get("streams") or []
        video = next((stream for stream in streams if stream.get("codec_type") == "video"), None)
        if video is None:
            raise TranscoderError(stage, f"{Path(path).name} has no video stream")
        duration = data.get("format", {}).get("duration") or video.get("duration") or 0
        return ClipInfo(
            codec=video.get("codec_name", ""),
            width=int(video.get("width") or 0),
            height=int(video.get("height") or 0),
            fps=_frame_rate(video.get("r_frame_rate")),
            pixel_format=video.get("pix_fmt", ""),
            duration=float(duration),
            has_audio=any(stream.get("codec_type") == "audio" for stream in streams),
        )

    def concat(self, clips: Sequence[Path], output_path: Path) -> Path:
        output_path = Path(output_path)
        list_path = output_path.with_suffix(".concat.txt")
        lines = []
        for clip in clips:
            escaped = str(Path(clip).resolve()).replace("'", "'\\''")
            lines.append(f"file '{escaped}'")
        list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        cmd = [
            self.ffmpeg_binary,
            "-y",
            "-hide_banner",
            "-loglevel",
            "error",
            "-f",
            "concat",
            "-safe",
            "0",
            "-i",
            str(list_path),
            "-c",
            "copy",
            "-an",
            "-movflags",
            "+faststart",
            str(output_path),
        ]
        try:
            return self._produce(cmd, output_path, "composing")
        finally:
            list_path.unlink(missing_ok=True)

    def apply_fades(self, video_path: Path, output_path: Path, fade_seconds: float, duration: float) -> Path:
        fade_out_start = max(0.0, duration - fade_seconds)
        filters = f"fade=t=in:st=0:d={fade_seconds:.3f},fade=t=out:st={fade_out_start:.3f}:d={fade_seconds:.3f}"
        cmd = [
            self.ffmpeg_binary,
            "-y",
            "-hide_banner",
            "-loglevel",
            "error",
            "-i",
            str(video_path),
            "-vf",
            filters,
            "-c:v",
            self.video_codec,
            "-preset",
            self.preset,
            "-pix_fmt",
            self.pixel_format,
            "-an",
            "-movflags",
            "+faststart",
            str(output_path),
        ]
        return self._produce(cmd, Path(output_path), "enhancing")

    def mux_audio(self, video_path: Path, audio_path: Path, output_path: Path) -> Path:
        # apad + shortest: the music is cut or padded to the video, never the other way round
        cmd = [
            self.ffmpeg_binary,
            "-y",
            "-hide_banner",
            "-loglevel",
            "error",
            "-i",
            str(video_path),
            "-i",
            str(audio_path),
            "-map",
            "0:v:0",
            "-map",
            "1:a:0",
            "-c:v",
            "copy",
            "-c:a",
            self.audio_codec,
            "-af",
            "apad",
            "-shortest",
            "-movflags",
            "+faststart",
            str(output_path),
        ]
        return self._produce(cmd, Path(output_path), "enhancing")

    def _video_layer(self, layer: VideoLayer, duration: float):
        clip = VideoFileClip(str(layer.path), audio=False).resized(new_size=layer.size)
        if clip.duration >= duration:
            clip = clip.subclipped(0, duration)
        else:
            clip = clip.with_effects([vfx.Loop(duration=duration)])
        return clip.with_position(layer.position)

    def _produce(self, cmd: List[str], output_path: Path, stage: str) -> Path:
        try:
            self._run(cmd, stage)
        except PipelineError:
            output_path.unlink(missing_ok=True)
            raise
        return output_path

    def _run(self, cmd: List[str], stage: str) -> subprocess.CompletedProcess:
        program = Path(cmd[0]).name
        self.log.debug("running %s", program, extra={"stage": stage, "cmd": " ".join(cmd)})
        try:
            return subprocess.run(cmd, check=True, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as exc:
            raise StageTimeout(stage, f"{program} timed out after {self.timeout:g}s") from exc
        except subprocess.CalledProcessError as exc:
            raise TranscoderError(stage, f"{program} exited with code {exc.returncode}: {_tail(exc.stderr)}") from exc
        except OSError as exc:
            raise TranscoderError(stage, f"{program} could not be started: {exc}") from exc


def _frame_rate(value: str | None) -> str:
    try:
        rate = Fraction(value or "0")
    except (ValueError, ZeroDivisionError):
        return "0"
    return str(rate)


def _tail(stderr: str | None, limit: int = 400) -> str:
    text = (stderr or "").strip()
    return text[-limit:] if text else "no output"
