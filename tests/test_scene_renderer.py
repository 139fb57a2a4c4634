import pytest
from PIL import Image

from invitation_service.catalog.catalog import TemplateCatalog
from invitation_service.errors import SceneRenderError
from invitation_service.media import frames
from invitation_service.models.domain import MediaFile, ProjectData, Scene, Template
from invitation_service.services.scene_renderer import SceneRenderer, assign_media_slots

from conftest import FakeTranscoder

SIZE = (320, 180)


def make_renderer(tmp_path, transcoder=None):
    return SceneRenderer(
        transcoder or FakeTranscoder(),
        size=SIZE,
        fps=10,
        themes_dir=tmp_path / "themes",
        fonts_dir=tmp_path / "fonts",
    )


def photo(tmp_path, name="couple.png", color=(255, 0, 0), slot=None):
    path = tmp_path / name
    Image.new("RGB", (10, 10), color).save(path)
    return MediaFile(id=name, mimetype="image/png", path=str(path), original_name=name, slot=slot)


def photo_scene():
    return Scene.model_validate(
        {
            "id": "photo",
            "duration": 2,
            "background": {"type": "solid", "color": "#000000"},
            "media_elements": [
                {"type": "image", "x": 0, "y": 0, "width": 960, "height": 540, "placeholder": "couple-photo"}
            ],
        }
    )


def test_scene_without_media_still_renders(tmp_path):
    transcoder = FakeTranscoder()
    renderer = make_renderer(tmp_path, transcoder)
    scene = TemplateCatalog.builtin().get("elegant-engagement").scenes[1]

    clip = renderer.render(scene, ProjectData(bride="Anna", groom="Ivan"), {}, tmp_path / "scene.mp4")

    assert clip.exists()
    plan = transcoder.plans[0]
    assert plan.skipped_slots == ["couple-photo"]
    assert plan.base_frame.shape == (180, 320, 3)
    assert plan.duration == 4


def test_text_placeholders_are_resolved(tmp_path, monkeypatch):
    drawn = []
    monkeypatch.setattr(frames, "draw_text", lambda layer, element, text, fonts_dir: drawn.append(text))
    renderer = make_renderer(tmp_path)
    scene = TemplateCatalog.builtin().get("elegant-engagement").scenes[2]

    renderer.build_plan(scene, ProjectData(date="June 1", venue="Old Mill"), {})

    assert drawn == ["Save the Date", "June 1", "Old Mill"]


def test_missing_fields_render_empty(tmp_path, monkeypatch):
    drawn = []
    monkeypatch.setattr(frames, "draw_text", lambda layer, element, text, fonts_dir: drawn.append(text))
    renderer = make_renderer(tmp_path)
    scene = TemplateCatalog.builtin().get("elegant-engagement").scenes[1]

    renderer.build_plan(scene, ProjectData(bride="Anna"), {})

    assert drawn == ["Anna & "]


def test_image_is_placed_in_its_box(tmp_path):
    renderer = make_renderer(tmp_path)
    media = photo(tmp_path)

    plan = renderer.build_plan(photo_scene(), ProjectData(), {"couple-photo": media})

    assert plan.skipped_slots == []
    assert plan.overlay is None
    assert tuple(plan.base_frame[45, 80]) == (255, 0, 0)
    assert tuple(plan.base_frame[135, 240]) == (0, 0, 0)


def test_wrong_media_kind_is_skipped(tmp_path):
    renderer = make_renderer(tmp_path)
    clip = MediaFile(id="clip", mimetype="video/mp4", path=str(tmp_path / "clip.mp4"))

    plan = renderer.build_plan(photo_scene(), ProjectData(), {"couple-photo": clip})

    assert plan.skipped_slots == ["couple-photo"]
    assert plan.video_layers == []


def test_fade_in_tag_sets_fade(tmp_path):
    renderer = make_renderer(tmp_path)
    intro = TemplateCatalog.builtin().get("elegant-engagement").scenes[0]

    plan = renderer.build_plan(intro, ProjectData(), {})

    assert plan.fade_in == pytest.approx(1.0)
    assert "slideUp" in plan.tags


def test_missing_theme_falls_back_to_gradient(tmp_path):
    renderer = make_renderer(tmp_path)
    scene = Scene.model_validate({"id": "themed", "duration": 1, "background": {"type": "image", "theme": "nowhere"}})

    plan = renderer.build_plan(scene, ProjectData(), {})

    expected = frames.gradient_frame(SIZE, frames.FALLBACK_GRADIENT)
    assert tuple(plan.base_frame[0, 0]) == expected.getpixel((0, 0))


def test_theme_image_is_used_when_present(tmp_path):
    themes = tmp_path / "themes"
    themes.mkdir()
    Image.new("RGB", (64, 36), (0, 128, 0)).save(themes / "garden.png")
    renderer = make_renderer(tmp_path)
    scene = Scene.model_validate({"id": "themed", "duration": 1, "background": {"type": "image", "theme": "garden"}})

    plan = renderer.build_plan(scene, ProjectData(), {})

    assert tuple(plan.base_frame[90, 160]) == (0, 128, 0)


def test_encoder_failure_is_wrapped(tmp_path):
    renderer = make_renderer(tmp_path, FakeTranscoder(fail_scenes={"photo"}))

    with pytest.raises(SceneRenderError) as excinfo:
        renderer.render(photo_scene(), ProjectData(), {}, tmp_path / "scene.mp4")

    assert excinfo.value.scene_id == "photo"
    assert excinfo.value.stage == "rendering"


def test_assign_media_slots_prefers_pinned_files(tmp_path):
    template = Template.model_validate(
        {
            "id": "two-photos",
            "scenes": [
                {
                    "id": "a",
                    "duration": 1,
                    "media_elements": [
                        {"type": "image", "x": 0, "y": 0, "width": 10, "height": 10, "placeholder": "first"},
                        {"type": "image", "x": 0, "y": 0, "width": 10, "height": 10, "placeholder": "second"},
                    ],
                }
            ],
        }
    )
    loose = photo(tmp_path, "loose.png")
    pinned = photo(tmp_path, "pinned.png", slot="first")
    music = MediaFile(id="song", mimetype="audio/mpeg", path=str(tmp_path / "song.mp3"))

    slots = assign_media_slots(template, [loose, music, pinned])

    assert slots["first"].id == "pinned.png"
    assert slots["second"].id == "loose.png"


def test_assign_media_slots_fills_in_template_order(tmp_path):
    template = TemplateCatalog.builtin().get("cinematic-save-date")
    files = [photo(tmp_path, f"p{index}.png") for index in range(10)]

    slots = assign_media_slots(template, files)

    image_slots = [
        element.placeholder
        for scene in template.scenes
        for element in scene.media_elements
        if element.type == "image"
    ]
    assert [slots[slot].id for slot in image_slots] == [f"p{index}.png" for index in range(len(image_slots))]
