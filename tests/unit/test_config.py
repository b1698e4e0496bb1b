"""Tests for configuration loading."""

import os

import pytest

from assetdrm.config import AppConfig, PreviewSettings, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # .env loading writes to os.environ; give each test a private copy
    environ = {k: v for k, v in os.environ.items() if not k.startswith("ASSETDRM_")}
    monkeypatch.setattr(os, "environ", environ)
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self):
        config = load_config(use_env=False)
        assert config == AppConfig()
        assert config.preview.image_max_width == 600
        assert config.preview.image_max_height == 450
        assert config.preview.audio_max_seconds == 20.0
        assert config.max_upload_mb == 500


class TestYaml:
    """YAML files override defaults, strictly."""

    def test_overrides(self, tmp_path):
        path = tmp_path / "assetdrm.yaml"
        path.write_text(
            "chunk_size: 4096\n"
            "log_level: info\n"
            "preview:\n"
            "  image_quality: 20\n"
            "  model_views: [front, top]\n"
        )
        config = load_config(str(path), use_env=False)
        assert config.chunk_size == 4096
        assert config.log_level == "info"
        assert config.preview.image_quality == 20
        assert config.preview.model_views == ("front", "top")
        assert config.preview.audio_max_seconds == PreviewSettings().audio_max_seconds

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path), use_env=False) == AppConfig()

    @pytest.mark.parametrize("text", [
        "nonsense: 1\n",
        "preview:\n  bogus: 2\n",
        "chunk_size: big\n",
        "chunk_size: 0\n",
        "max_upload_mb: -5\n",
        "log_level: LOUD\n",
        "preview: 3\n",
        "- a\n- b\n",
        "chunk_size: [1\n",
    ])
    def test_invalid(self, tmp_path, text):
        path = tmp_path / "bad.yaml"
        path.write_text(text)
        with pytest.raises(ValueError):
            load_config(str(path), use_env=False)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(str(tmp_path / "nope.yaml"), use_env=False)


class TestEnvironment:
    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "cfg.yaml"
        path.write_text("max_upload_mb: 100\n")
        monkeypatch.setenv("ASSETDRM_CONFIG", str(path))
        monkeypatch.setenv("ASSETDRM_MAX_UPLOAD_MB", "50")
        monkeypatch.setenv("ASSETDRM_FFMPEG", "/opt/ffmpeg/bin/ffmpeg")
        config = load_config()
        assert config.max_upload_mb == 50
        assert config.preview.ffmpeg_binary == "/opt/ffmpeg/bin/ffmpeg"
        assert config.preview.ffprobe_binary == "ffprobe"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("ASSETDRM_LOG_LEVEL=DEBUG\n")
        config = load_config()
        assert config.log_level == "DEBUG"
