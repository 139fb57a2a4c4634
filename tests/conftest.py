import json
from pathlib import Path

import pytest

from invitation_service.config import Settings
from invitation_service.errors import StyleUnavailable, TranscoderError
from invitation_service.media.transcoder import ClipInfo, Transcoder
from invitation_service.services.video_service import VideoService
from invitation_service.storage.repository import GenerationJobRepository


class FakeTranscoder(Transcoder):
    """Writes small JSON descriptors instead of real video so the pipeline runs without ffmpeg."""

    def __init__(self, fail_scenes=(), scene_sizes=None, fail_enhance=False):
        self.fail_scenes = set(fail_scenes)
        self.scene_sizes = scene_sizes or {}
        self.fail_enhance = fail_enhance
        self.plans = []
        self.calls = []

    def render_scene(self, plan, output_path):
        self.calls.append(("render_scene", plan.scene_id))
        self.plans.append(plan)
        if plan.scene_id in self.fail_scenes:
            raise RuntimeError(f"encoder crashed on {plan.scene_id}")
        width, height = self.scene_sizes.get(plan.scene_id, plan.size)
        self._write(
            output_path,
            {
                "codec": "h264",
                "width": width,
                "height": height,
                "fps": str(plan.fps),
                "pixel_format": "yuv420p",
                "duration": plan.duration,
                "scenes": [plan.scene_id],
            },
        )
        return Path(output_path)

    def probe(self, path, stage="probing"):
        data = json.loads(Path(path).read_text())
        return ClipInfo(
            codec=data["codec"],
            width=data["width"],
            height=data["height"],
            fps=data["fps"],
            pixel_format=data["pixel_format"],
            duration=data["duration"],
            has_audio=data.get("has_audio", False),
        )

    def concat(self, clips, output_path):
        self.calls.append(("concat", [Path(clip).name for clip in clips]))
        parts = [json.loads(Path(clip).read_text()) for clip in clips]
        merged = dict(parts[0])
        merged["duration"] = sum(part["duration"] for part in parts)
        merged["scenes"] = [scene for part in parts for scene in part["scenes"]]
        self._write(output_path, merged)
        return Path(output_path)

    def apply_fades(self, video_path, output_path, fade_seconds, duration):
        self.calls.append(("apply_fades", fade_seconds, duration))
        if self.fail_enhance:
            raise TranscoderError("enhancing", "ffmpeg exited with code 1: broken filter")
        data = json.loads(Path(video_path).read_text())
        data["fades"] = fade_seconds
        self._write(output_path, data)
        return Path(output_path)

    def mux_audio(self, video_path, audio_path, output_path):
        self.calls.append(("mux_audio", Path(audio_path).name))
        if self.fail_enhance:
            raise TranscoderError("enhancing", "ffmpeg exited with code 1: invalid data")
        data = json.loads(Path(video_path).read_text())
        data["has_audio"] = True
        self._write(output_path, data)
        return Path(output_path)

    def call_names(self):
        return [call[0] for call in self.calls]

    def _write(self, path, data):
        Path(path).write_text(json.dumps(data))


class FakeStyleClient:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def apply_style(self, video_path, style_tag, prompt):
        self.calls.append((style_tag, prompt))
        if self.error is not None:
            raise self.error
        styled = Path(video_path).with_name(f"styled-{style_tag}.mp4")
        styled.write_text(Path(video_path).read_text())
        return styled


@pytest.fixture
def settings(tmp_path):
    return Settings(
        outputs_dir=tmp_path / "outputs",
        themes_dir=tmp_path / "themes",
        fonts_dir=tmp_path / "fonts",
        video_width=320,
        video_height=180,
        video_fps=10,
        style_api_token="",
        kafka_enabled=False,
        s3_bucket="",
    )


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def style_client():
    return FakeStyleClient()


@pytest.fixture
def service(settings, transcoder, style_client):
    return VideoService(
        repo=GenerationJobRepository(),
        settings=settings,
        transcoder=transcoder,
        style_client=style_client,
    )


@pytest.fixture
def unavailable_style():
    return FakeStyleClient(error=StyleUnavailable("provider is down"))
