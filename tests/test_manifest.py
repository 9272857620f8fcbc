"""Tests for reelcompose manifest loaders."""

import tempfile

import pytest
import yaml

from reelcompose.errors import ManifestError
from reelcompose.manifest import (
    load_clips_manifest,
    load_reel_manifest,
    overlays_from_manifest,
    scenes_from_manifest,
    validate_paths,
)
from reelcompose.models import LogoSettings, VisualLayers


def _write_manifest(content) -> str:
    """Write a manifest dict to a temp YAML file, return path."""
    f = tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False)
    yaml.dump(content, f, allow_unicode=True)
    f.close()
    return f.name


def _minimal_manifest(**overrides):
    """Return a minimal valid reel manifest dict."""
    m = {
        "ally": {"name": "Inmobiliaria Sol", "logo": "/tmp/logo.png"},
        "property": {"modality": "arriendo", "rent": 2500000, "location": "Chapinero"},
        "photos": ["/tmp/a.jpg", "/tmp/b.jpg"],
    }
    m.update(overrides)
    return m


def _clips_manifest(**overrides):
    m = _minimal_manifest(clips=["/tmp/a.mp4", {"path": "/tmp/b.mp4", "subtitle": "Cocina"}])
    del m["photos"]
    m.update(overrides)
    return m


def _load(**overrides):
    return load_reel_manifest(_write_manifest(_minimal_manifest(**overrides)))


class TestLoadReelManifest:
    def test_defaults(self):
        config = _load()
        assert config["video"] == {}
        assert config["layers"] == VisualLayers()
        assert config["logo"] == LogoSettings()
        assert config["durations"] == {"photo_ms": 2000, "summary_ms": 2500}
        assert config["summary"] == {"include": True, "background": "solid", "footer_text": ""}
        assert config["footer_mark"] is None

    def test_parses_video_section(self):
        config = _load(video={"resolution": [720, 1280], "fps": 30, "format": "webm"})
        assert config["video"] == {"resolution": (720, 1280), "fps": 30, "format": "webm"}

    def test_prices_become_strings(self):
        assert _load()["property"].rent == "2500000"

    def test_subtitles_become_tuple(self):
        prop = _load(property={"modality": "arriendo", "rent": 1,
                               "subtitles": ["Sala", "Cocina"]})["property"]
        assert prop.subtitles == ("Sala", "Cocina")

    def test_resolves_path_variables(self):
        config = _load(
            paths={"media": "/data/listing"},
            ally={"name": "Sol", "logo": "${media}/logo.png"},
            photos=["${media}/a.jpg"],
            footer_mark="${media}/mark.png",
        )
        assert config["photos"] == ["/data/listing/a.jpg"]
        assert config["ally"].logo == "/data/listing/logo.png"
        assert config["footer_mark"] == "/data/listing/mark.png"

    def test_sections_parsed_into_records(self):
        config = _load(
            layers={"show_price": False},
            logo={"position": "top-left", "opacity": 60},
            text={"typography_scale": 25},
            gradient={"direction": "top", "intensity": 50},
            durations={"photo_ms": 1500},
            summary={"include": False, "background": "mosaic"},
        )
        assert config["layers"].show_price is False
        assert config["layers"].show_photo is True
        assert config["logo"].position == "top-left"
        assert config["logo"].opacity == 60
        assert config["text"].typography_scale == 25
        assert config["gradient"].direction == "top"
        assert config["durations"] == {"photo_ms": 1500, "summary_ms": 2500}
        assert config["summary"]["include"] is False
        assert config["summary"]["background"] == "mosaic"

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_reel_manifest("/nonexistent/manifest.yaml")

    def test_not_a_mapping(self):
        with pytest.raises(ManifestError, match="YAML mapping"):
            load_reel_manifest(_write_manifest(["a", "b"]))


class TestReelManifestErrors:
    @pytest.mark.parametrize("overrides, message", [
        ({"ally": {"logo": "x.png"}}, "ally: missing required field 'name'"),
        ({"ally": {"name": "Sol", "primary_color": "blue"}}, "'primary_color' must be a #RRGGBB"),
        ({"ally": {"name": "Sol", "slogan": "x"}}, "ally: unknown field"),
        ({"property": {"modality": "alquiler", "rent": 1}}, "property: modality"),
        ({"property": {"modality": "venta", "rent": 1}}, "'sale_price' is required"),
        ({"property": {"modality": "arriendo"}}, "'rent' is required"),
        ({"property": {"rent": 1, "bedrooms": -1}}, "'bedrooms' must be a non-negative"),
        ({"layers": {"show_price": "yes"}}, "layers: 'show_price' must be true or false"),
        ({"layers": {"show_watermark": True}}, "layers: unknown field"),
        ({"logo": {"size": "xlarge"}}, "logo: size"),
        ({"logo": {"opacity": 150}}, "logo: opacity"),
        ({"gradient": {"direction": "left"}}, "gradient: direction"),
        ({"text": {"badge_scale": 200}}, "text: 'badge_scale'"),
        ({"photos": []}, "photos: at least one photo"),
        ({"photos": ["a.jpg", ""]}, "photos, item 1"),
        ({"durations": {"summary_ms": 0}}, "durations: 'summary_ms'"),
        ({"summary": {"background": "video"}}, "summary: invalid background"),
        ({"video": {"format": "avi"}}, "video: format"),
        ({"video": {"resolution": [1080]}}, "video: 'resolution'"),
        ({"video": {"fps": 0}}, "video: 'fps'"),
    ])
    def test_invalid(self, overrides, message):
        with pytest.raises(ManifestError, match=message):
            _load(**overrides)

    def test_manifest_error_is_value_error(self):
        with pytest.raises(ValueError):
            _load(photos=[])


class TestLoadClipsManifest:
    def test_parses_clips(self):
        config = load_clips_manifest(_write_manifest(_clips_manifest()))
        clips = config["clips"]
        assert [c.source for c in clips] == ["/tmp/a.mp4", "/tmp/b.mp4"]
        assert [c.subtitle for c in clips] == [None, "Cocina"]

    def test_resolves_clip_paths(self):
        config = load_clips_manifest(_write_manifest(_clips_manifest(
            paths={"v": "/videos"}, clips=["${v}/a.mp4", {"path": "${v}/b.mp4"}],
        )))
        assert [c.source for c in config["clips"]] == ["/videos/a.mp4", "/videos/b.mp4"]

    def test_needs_two_clips(self):
        with pytest.raises(ManifestError, match="at least 2 clips"):
            load_clips_manifest(_write_manifest(_clips_manifest(clips=["/tmp/a.mp4"])))

    def test_item_without_path(self):
        with pytest.raises(ManifestError, match="clips, item 1: missing required field 'path'"):
            load_clips_manifest(_write_manifest(_clips_manifest(
                clips=["/tmp/a.mp4", {"subtitle": "Sala"}])))

    def test_subtitle_must_be_string(self):
        with pytest.raises(ManifestError, match="'subtitle' must be a string"):
            load_clips_manifest(_write_manifest(_clips_manifest(
                clips=["/tmp/a.mp4", {"path": "/tmp/b.mp4", "subtitle": 3}])))


class TestBuilders:
    def test_scenes_from_manifest(self):
        scenes = scenes_from_manifest(_load(durations={"photo_ms": 1000, "summary_ms": 3000}))
        assert [s.kind for s in scenes] == ["photo", "photo", "summary"]
        assert [s.duration_ms for s in scenes] == [1000, 1000, 3000]
        assert scenes[0].text.price == "$ 2.500.000"

    def test_scenes_without_summary(self):
        scenes = scenes_from_manifest(_load(summary={"include": False}))
        assert len(scenes) == 2

    def test_overlays_from_manifest(self):
        config = load_clips_manifest(_write_manifest(_clips_manifest(footer_mark="/tmp/m.png")))
        overlays = overlays_from_manifest(config)
        assert [o.subtitle for o in overlays] == ["", "Cocina"]
        assert all(o.footer_mark == "/tmp/m.png" for o in overlays)


class TestValidatePaths:
    def test_all_present(self, tmp_path):
        for name in ("logo.png", "a.jpg"):
            (tmp_path / name).write_bytes(b"x")
        config = _load(ally={"name": "Sol", "logo": str(tmp_path / "logo.png")},
                       photos=[str(tmp_path / "a.jpg"), "https://cdn.example.com/b.jpg"])
        validate_paths(config)

    def test_reports_every_missing_file(self, tmp_path):
        config = _load(ally={"name": "Sol", "logo": str(tmp_path / "logo.png")},
                       photos=[str(tmp_path / "a.jpg"), str(tmp_path / "b.jpg")])
        with pytest.raises(FileNotFoundError) as exc_info:
            validate_paths(config)
        message = str(exc_info.value)
        assert "Missing 3 file(s):" in message
        assert f"  - {tmp_path / 'b.jpg'}" in message

    def test_clip_sources_checked(self, tmp_path):
        config = load_clips_manifest(_write_manifest(_clips_manifest(
            ally={"name": "Sol"},
            clips=[str(tmp_path / "a.mp4"), str(tmp_path / "b.mp4")],
        )))
        with pytest.raises(FileNotFoundError, match="Missing 2 file"):
            validate_paths(config)

    def test_non_media_paths_ignored(self):
        validate_paths({"photos": ["/nonexistent/notes.txt"]})
