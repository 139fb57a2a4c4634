from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Literal, Mapping, Sequence, Tuple

import numpy as np
from PIL import Image

from invitation_service.errors import SceneRenderError, StageTimeout
from invitation_service.media import frames
from invitation_service.media.text import resolve_placeholders
from invitation_service.media.transcoder import ScenePlan, Transcoder, VideoLayer
from invitation_service.models.domain import (
    GradientBackground,
    ImageBackground,
    MediaFile,
    ProjectData,
    Scene,
    SolidBackground,
    Template,
    VideoBackground,
)

# Animation tags the renderer knows how to express; everything else is ignored.
FADE_IN_TAGS = {"fadeIn": 1.0, "minimal-fade": 0.8}


class SceneRenderer:
    def __init__(
        self,
        transcoder: Transcoder,
        size: Tuple[int, int] = frames.DESIGN_SIZE,
        fps: int = 30,
        themes_dir: Path = Path("assets/themes"),
        fonts_dir: Path = Path("assets/fonts"),
        missing_fields: Literal["empty", "keep"] = "empty",
        logger: logging.Logger | None = None,
    ) -> None:
        self.transcoder = transcoder
        self.size = size
        self.fps = fps
        self.themes_dir = Path(themes_dir)
        self.fonts_dir = Path(fonts_dir)
        self.missing_fields = missing_fields
        self.log = logger or logging.getLogger(__name__)

    def render(
        self,
        scene: Scene,
        project_data: ProjectData,
        media_slots: Mapping[str, MediaFile],
        output_path: Path,
    ) -> Path:
        try:
            plan = self.build_plan(scene, project_data, media_slots)
            clip_path = self.transcoder.render_scene(plan, Path(output_path))
        except StageTimeout:
            raise
        except Exception as exc:
            raise SceneRenderError(scene.id, exc) from exc
        self.log.info(
            "scene rendered",
            extra={"scene_id": scene.id, "duration": scene.duration, "skipped_slots": plan.skipped_slots},
        )
        return clip_path

    def build_plan(
        self,
        scene: Scene,
        project_data: ProjectData,
        media_slots: Mapping[str, MediaFile],
    ) -> ScenePlan:
        base, video_layers = self._background(scene)
        overlay = Image.new("RGBA", self.size, (0, 0, 0, 0))
        skipped: List[str] = []
        for element in scene.media_elements:
            media = media_slots.get(element.placeholder)
            if media is None or media.kind != element.type:
                self.log.debug(
                    "media slot not filled, skipping element",
                    extra={"scene_id": scene.id, "slot": element.placeholder},
                )
                skipped.append(element.placeholder)
                continue
            box = frames.scale_box(element, self.size)
            if element.type == "image":
                frames.paste_image(overlay, Path(media.path), box)
            else:
                video_layers.append(VideoLayer(path=Path(media.path), position=box[:2], size=box[2:]))
        for element in scene.text_elements:
            text = resolve_placeholders(element.content, project_data, missing=self.missing_fields)
            frames.draw_text(overlay, element, text, self.fonts_dir)

        overlay_array = None
        if video_layers:
            overlay_array = np.asarray(overlay)
        else:
            base.paste(overlay, (0, 0), overlay)
        tags = tuple(scene.animations) + tuple(scene.effects)
        fade_in = max((FADE_IN_TAGS[tag] for tag in scene.animations if tag in FADE_IN_TAGS), default=0.0)
        return ScenePlan(
            scene_id=scene.id,
            duration=scene.duration,
            fps=self.fps,
            size=self.size,
            base_frame=np.asarray(base.convert("RGB")),
            overlay=overlay_array,
            video_layers=video_layers,
            fade_in=min(fade_in, scene.duration / 2),
            tags=tags,
            skipped_slots=skipped,
        )

    def _background(self, scene: Scene) -> Tuple[Image.Image, List[VideoLayer]]:
        background = scene.background
        if isinstance(background, SolidBackground):
            return frames.solid_frame(self.size, background.color), []
        if isinstance(background, GradientBackground):
            return frames.gradient_frame(self.size, background.colors), []
        if isinstance(background, ImageBackground):
            asset = frames.find_theme_asset(self.themes_dir, background.theme, frames.IMAGE_EXTENSIONS)
            if asset is not None:
                return frames.themed_frame(self.size, asset), []
        elif isinstance(background, VideoBackground):
            asset = frames.find_theme_asset(self.themes_dir, background.theme, frames.VIDEO_EXTENSIONS)
            if asset is not None:
                fallback = frames.gradient_frame(self.size, frames.FALLBACK_GRADIENT)
                return fallback, [VideoLayer(path=asset, position=(0, 0), size=self.size)]
        self.log.warning(
            "theme asset missing, using fallback gradient",
            extra={"scene_id": scene.id, "theme": getattr(background, "theme", None), "themes_dir": str(self.themes_dir)},
        )
        return frames.gradient_frame(self.size, frames.FALLBACK_GRADIENT), []


def assign_media_slots(template: Template, media_files: Sequence[MediaFile]) -> Dict[str, MediaFile]:
    """Map template media slots to uploaded files.

    Files pinned with ``slot`` win; remaining slots are filled in template
    order from the unpinned files of the matching kind, in upload order.
    """
    slots: Dict[str, str] = {}
    for scene in template.scenes:
        for element in scene.media_elements:
            slots.setdefault(element.placeholder, element.type)

    assigned: Dict[str, MediaFile] = {}
    for media in media_files:
        if media.slot and slots.get(media.slot) == media.kind and media.slot not in assigned:
            assigned[media.slot] = media
    pinned = {id(media) for media in assigned.values()}
    pools: Dict[str, List[MediaFile]] = {"image": [], "video": []}
    for media in media_files:
        if id(media) not in pinned and not media.slot and media.kind in pools:
            pools[media.kind].append(media)
    for slot, kind in slots.items():
        if slot not in assigned and pools[kind]:
            assigned[slot] = pools[kind].pop(0)
    return assigned
