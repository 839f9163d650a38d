import pytest

from m3u8_cli.exceptions import ConfigurationError
from m3u8_cli.models.config import AppConfig
from m3u8_cli.storage.config_manager import ConfigManager


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "m3u8-cli" / "config.ini"


def test_missing_file_uses_defaults(config_file):
    config = ConfigManager(config_file).load_config()
    assert config.max_concurrency == 4
    assert config.container == "mp4"
    assert config.effective_video_codec == "libx264"
    assert config.config_path == str(config_file.parent)
    assert not config_file.exists()


def test_saved_settings_are_loaded_back(config_file):
    manager = ConfigManager(config_file)
    manager.save_new_config(
        {
            "max_concurrency": 2,
            "use_gpu": True,
            "output_directory": "/tmp/videos",
            "naming_pattern": "show",
            "container": "MKV",
        }
    )
    text = config_file.read_text()
    assert "use_gpu = true" in text
    assert "container = mkv" in text

    config = ConfigManager(config_file).load_config()
    assert config.max_concurrency == 2
    assert config.use_gpu is True
    assert config.effective_video_codec == "h264_nvenc"
    assert config.naming_pattern == "show"


def test_cli_options_override_file(config_file):
    ConfigManager(config_file).save_new_config({"max_concurrency": 2})
    config = ConfigManager(config_file).load_config({"max_concurrency": 8})
    assert config.max_concurrency == 8


def test_missing_keys_are_migrated(config_file):
    config_file.parent.mkdir(parents=True)
    config_file.write_text("[DEFAULT]\nmax_concurrency = 3\n")

    config = ConfigManager(config_file).load_config()
    assert config.max_concurrency == 3

    text = config_file.read_text()
    for key in AppConfig.get_ini_keys():
        assert f"{key} =" in text


@pytest.mark.parametrize(
    "content",
    [
        "[DEFAULT]\nmax_concurrency = lots\n",
        "[DEFAULT]\nmax_concurrency = 0\n",
        "[DEFAULT]\ncontainer = avi\n",
        "[DEFAULT]\nuse_gpu = true\nvideo_codec = libx265\n",
        "not an ini file",
    ],
)
def test_invalid_files_raise(config_file, content):
    config_file.parent.mkdir(parents=True)
    config_file.write_text(content)
    with pytest.raises(ConfigurationError):
        ConfigManager(config_file).load_config()


def test_invalid_settings_are_not_saved(config_file):
    with pytest.raises(ConfigurationError):
        ConfigManager(config_file).save_new_config({"max_concurrency": 99})
    assert not config_file.exists()


def test_ini_keys_exclude_internal_fields():
    keys = AppConfig.get_ini_keys()
    assert "config_path" not in keys
    assert {"max_concurrency", "ffmpeg_path", "use_gpu", "container"} <= keys
