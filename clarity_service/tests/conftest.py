import base64
import io
from typing import List, Optional, Tuple, Union

import pytest
from PIL import Image

from clarity_service.app.config import Settings


class FakeAssistant:
    """Replays scripted replies in order; an Exception entry is raised instead."""

    def __init__(self, replies: List[Union[str, Exception]]):
        self.replies = list(replies)
        self.calls: List[Tuple[str, Optional[bytes], str]] = []

    async def ask(self, prompt, image=None, mime_type="image/jpeg"):
        self.calls.append((prompt, image, mime_type))
        if not self.replies:
            raise AssertionError(f"unexpected assistant call #{len(self.calls)}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def cfg():
    return Settings(gemini_api_key="test-key")


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (32, 24), (240, 240, 240)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_b64(png_bytes):
    return base64.b64encode(png_bytes).decode()
