import pytest

from visionchat.config.settings import (
    LLMConfig,
    LoggingConfig,
    PipelineConfig,
    VisionChatConfig,
    load_settings,
)
from visionchat.exceptions import ConfigurationException


def test_pipeline_defaults():
    config = PipelineConfig()
    assert config.max_frames == 10
    assert config.max_duration_seconds == 120
    assert config.max_video_size_bytes == 200 * 1024 * 1024
    assert "mp4" in config.allowed_extensions and "mov" in config.allowed_extensions


def test_limits_cannot_be_relaxed():
    for overrides in ({"max_frames": 11}, {"max_duration_seconds": 121}, {"max_video_size_mb": 201}):
        with pytest.raises(ConfigurationException) as exc_info:
            load_settings(PipelineConfig, **overrides)
        assert exc_info.value.error_code == "INVALID_CONFIG"


def test_pipeline_reads_environment(monkeypatch):
    monkeypatch.setenv("PIPELINE_MAX_FRAMES", "5")
    monkeypatch.setenv("PIPELINE_CAPTION_CONCURRENCY", "2")
    config = load_settings(PipelineConfig)
    assert config.max_frames == 5
    assert config.caption_concurrency == 2


def test_invalid_environment_surfaces_as_configuration_error(monkeypatch):
    monkeypatch.setenv("PIPELINE_MAX_FRAMES", "twelve")
    with pytest.raises(ConfigurationException):
        VisionChatConfig().pipeline


def test_llm_provider_is_normalized(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", " Azure ")
    assert LLMConfig().provider == "azure"


def test_main_config_composes_sections(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    config = VisionChatConfig()
    assert config.app_name == "VisionChat"
    assert isinstance(config.llm, LLMConfig)
    assert isinstance(config.logging, LoggingConfig)
    assert config.logging.level == "DEBUG"
    assert config.pipeline is config.pipeline
