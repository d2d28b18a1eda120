import os
import hashlib
from typing import Iterable

import aiofiles
import aiofiles.os
from loguru import logger

from visionchat.video_pipeline.core.models import ChatTurn, to_data_uri

__all__ = [
    "get_bytes_hash",
    "get_media_folder",
    "write_media_file",
    "remove_file",
    "to_data_uri",
    "format_chat_history",
]


def get_bytes_hash(data: bytes, hash_algorithm: str = "sha256") -> str:
    """Hash an in-memory payload."""
    hash_func = hashlib.new(hash_algorithm)
    hash_func.update(data)
    return hash_func.hexdigest()


async def get_media_folder(folder: str = "media") -> str:
    """
    Returns the path to the media folder, relative to the current working
    directory unless absolute. Ensures the folder exists.
    """
    media_path = folder if os.path.isabs(folder) else os.path.join(os.getcwd(), folder)
    await aiofiles.os.makedirs(media_path, exist_ok=True)
    return media_path


async def write_media_file(data: bytes, filename: str, folder: str = "media") -> str:
    """Write ``data`` into the media folder and return the full path."""
    base_dir = await get_media_folder(folder)
    local_path = os.path.join(base_dir, filename)
    async with aiofiles.open(local_path, "wb") as f:
        await f.write(data)
    logger.debug(f"Wrote {len(data)} bytes to {local_path}")
    return local_path


async def remove_file(path: str) -> bool:
    """Delete a media file. Returns False when it was already gone."""
    try:
        await aiofiles.os.remove(path)
        logger.debug(f"Removed file: {path}")
        return True
    except FileNotFoundError:
        return False


def format_chat_history(turns: Iterable[ChatTurn]) -> str:
    """Serialize turns as ``User: ...`` / ``Assistant: ...`` lines."""
    return "\n".join(f"{turn.label}: {turn.content}" for turn in turns)
