"""Tests for the render and concat command lines."""

import io

import imageio_ffmpeg
import pytest
import yaml

from reelcompose import cli
from reelcompose.cli import ProgressPrinter, settings_for
from reelcompose.concat_cli import main as concat_main
from reelcompose.errors import EngineLoadError, ReelGenerationError


@pytest.fixture(autouse=True)
def _no_engine_override(monkeypatch):
    monkeypatch.delenv("REELCOMPOSE_FFMPEG", raising=False)


@pytest.fixture
def reel_manifest(tmp_path, photo_path, logo_path):
    """A tiny reel manifest: two photos, short durations, 108x192 @ 10fps."""
    manifest = {
        "video": {"resolution": [108, 192], "fps": 10},
        "paths": {"media": str(tmp_path)},
        "ally": {"name": "Inmobiliaria Sol", "logo": "${media}/logo.png"},
        "property": {"modality": "arriendo", "rent": 2500000, "bedrooms": 2},
        "photos": ["${media}/photo.png", "${media}/photo.png"],
        "durations": {"photo_ms": 500, "summary_ms": 500},
    }
    path = tmp_path / "reel.yaml"
    path.write_text(yaml.dump(manifest))
    return path


@pytest.fixture
def clips_manifest(tmp_path, make_video):
    manifest = {
        "video": {"resolution": [108, 192], "fps": 10},
        "ally": {"name": "Inmobiliaria Sol"},
        "property": {"modality": "venta", "sale_price": 350000000},
        "clips": [
            str(make_video("a.mp4", size=(160, 90))),
            {"path": str(make_video("b.mp4", size=(90, 160), color="green")),
             "subtitle": "Terraza"},
        ],
    }
    path = tmp_path / "clips.yaml"
    path.write_text(yaml.dump(manifest))
    return path


class TestProgressPrinter:
    def test_formats_and_skips_repeats(self):
        out = io.StringIO()
        printer = ProgressPrinter(out)
        printer(4.6, "Loading")
        printer(4.9, "Loading")
        printer(100, "Video ready")
        assert out.getvalue().splitlines() == ["[  5%] Loading", "[100%] Video ready"]


class TestSettingsFor:
    def test_manifest_and_flag_override_settings_file(self, tmp_path):
        settings_file = tmp_path / "settings.yaml"
        settings_file.write_text(yaml.dump({"video": {"fps": 24, "format": "webm"}}))
        settings = settings_for({"video": {"fps": 30}}, str(settings_file), "gif")
        assert settings.fps == 30
        assert settings.format == "gif"

    def test_defaults(self):
        settings = settings_for({"video": {}}, None, None)
        assert settings.resolution == (1080, 1920)


class TestRenderCommand:
    def test_validate(self, reel_manifest, capsys):
        cli.main(["--manifest", str(reel_manifest), "--validate"])
        out = capsys.readouterr().out
        assert "Manifest valid: 3 scenes" in out
        assert "2: summary 0.5s" in out
        assert "All paths verified." in out

    def test_validate_reports_missing_files(self, reel_manifest, tmp_path):
        (tmp_path / "logo.png").unlink()
        with pytest.raises(FileNotFoundError, match="Missing 1 file"):
            cli.main(["--manifest", str(reel_manifest), "--validate"])

    def test_output_required(self, reel_manifest):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--manifest", str(reel_manifest)])
        assert exc_info.value.code == 2

    def test_renders_with_frame_export(self, reel_manifest, tmp_path, capsys):
        output = tmp_path / "out" / "reel.mp4"
        cli.main(["--manifest", str(reel_manifest), "--output", str(output),
                  "--strategy", "frames"])
        out = capsys.readouterr().out
        assert "Resolution: 108x192, 10fps, mp4" in out
        assert f"  START  reel -> {output}" in out
        assert "(frames," in out
        assert "[100%] Video ready" in out
        assert f"Done: {output}" in out
        frames, _ = imageio_ffmpeg.count_frames_and_secs(str(output))
        assert 14 <= frames <= 16

    def test_generation_failure_exits_1(self, reel_manifest, tmp_path, monkeypatch, capsys):
        async def failing(scenes, opts=None, **kwargs):
            raise ReelGenerationError(failures=[("frames", EngineLoadError("no engine"))])

        monkeypatch.setattr(cli, "generate_reel", failing)
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--manifest", str(reel_manifest), "--output", str(tmp_path / "r.mp4")])
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "frames: EngineLoadError: no engine" in err
        assert not (tmp_path / "r.mp4").exists()


class TestConcatCommand:
    def test_validate(self, clips_manifest, capsys):
        concat_main(["--manifest", str(clips_manifest), "--validate"])
        out = capsys.readouterr().out
        assert "Manifest valid: 2 clips" in out
        assert "Terraza" in out

    def test_joins_clips(self, clips_manifest, tmp_path, capsys):
        output = tmp_path / "joined.mp4"
        concat_main(["--manifest", str(clips_manifest), "--output", str(output)])
        out = capsys.readouterr().out
        assert "Joining 2 clips" in out
        assert "(engine," in out
        frames, _ = imageio_ffmpeg.count_frames_and_secs(str(output))
        assert 18 <= frames <= 22

    def test_output_required(self, clips_manifest):
        with pytest.raises(SystemExit):
            concat_main(["--manifest", str(clips_manifest)])
