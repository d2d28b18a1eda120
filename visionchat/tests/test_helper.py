import hashlib
import os

from visionchat.video_pipeline.core.models import ChatTurn
from visionchat.video_pipeline.core.progress import ProgressTracker
from visionchat.video_pipeline.utils.helper import (
    format_chat_history,
    get_bytes_hash,
    get_media_folder,
    remove_file,
    to_data_uri,
    write_media_file,
)


async def test_media_file_lifecycle(tmp_path):
    folder = str(tmp_path / "media")
    path = await write_media_file(b"video-bytes", "abc.mp4", folder)

    assert path == os.path.join(await get_media_folder(folder), "abc.mp4")
    assert get_bytes_hash(b"video-bytes") == hashlib.sha256(b"video-bytes").hexdigest()

    assert await remove_file(path) is True
    assert await remove_file(path) is False


def test_data_uri():
    assert to_data_uri(b"hi", "video/mp4") == "data:video/mp4;base64,aGk="


def test_chat_history_format():
    turns = [ChatTurn("user", "What is it?"), ChatTurn("assistant", "A cat."), ChatTurn("user", "Color?")]
    assert format_chat_history(turns) == "User: What is it?\nAssistant: A cat.\nUser: Color?"
    assert format_chat_history([]) == ""


def test_progress_is_monotonic_and_capped():
    progress = ProgressTracker()
    seen = []
    progress.subscribe(lambda percent, status: seen.append(percent))

    progress.advance(30)
    progress.advance_to(20)
    progress.advance(-5)
    progress.advance(90)

    assert progress.percent == 100.0
    assert seen == [30.0, 100.0]


def test_broken_progress_listener_does_not_break_tracking():
    def broken(percent, status):
        raise RuntimeError("ui went away")

    progress = ProgressTracker([broken])
    progress.advance(10)
    assert progress.percent == 10.0
