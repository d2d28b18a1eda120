import pytest

from visionchat.config.settings import PipelineConfig
from visionchat.tests.fakes import FakeGateway, write_test_video


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def video_file(tmp_path):
    return write_test_video(tmp_path / "clip.avi", seconds=3.0)


@pytest.fixture
def pipeline_config(tmp_path):
    return PipelineConfig(media_folder=str(tmp_path / "media"), num_workers=2)
