import asyncio
import json
import logging
from io import BytesIO
from typing import Any, Dict, Optional

import aiohttp
from PIL import Image, UnidentifiedImageError

from config.settings import settings

logger = logging.getLogger(__name__)


class ProxyRequestError(Exception):
    """The generation proxy answered with an error or an unreadable body."""


class PreloadError(Exception):
    """The generated image could not be downloaded or decoded."""


def parse_proxy_response(status: int, text: str) -> Optional[str]:
    """
    Turn a /api/generate response into the result URL.
    Raises ProxyRequestError on a non-JSON body or a non-2xx status.
    """
    fallback = f"Request failed ({status})"
    try:
        data = json.loads(text)
    except ValueError:
        raise ProxyRequestError(fallback)
    if not isinstance(data, dict):
        raise ProxyRequestError(fallback)

    if not 200 <= status < 300:
        raise ProxyRequestError(data.get("error") or fallback)
    return data.get("url")


def decode_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise PreloadError(f"Could not decode generated image: {e}")
    return img


class ProxyClient:
    """Calls the generation proxy and preloads the images it returns."""

    def __init__(self, base_url: str = settings.BACKEND_URL, request_timeout: Optional[float] = None):
        self.base_url = base_url.rstrip("/")
        # None: generation may legitimately take longer than any fixed timeout
        self.request_timeout = request_timeout

    async def generate(self, body: Dict[str, Any]) -> Optional[str]:
        url = f"{self.base_url}/api/generate"
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=body) as resp:
                    text = await resp.text()
                    status = resp.status
        except aiohttp.ClientError as e:
            raise ProxyRequestError(f"Request failed: {e}")
        except asyncio.TimeoutError:
            raise ProxyRequestError(f"Request timed out after {self.request_timeout}s")
        return parse_proxy_response(status, text)

    async def preload(self, image_url: str) -> Image.Image:
        """Download the image and wait for it to decode before it is shown."""
        timeout = aiohttp.ClientTimeout(total=60)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(image_url) as resp:
                    resp.raise_for_status()
                    data = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PreloadError(f"Could not load generated image: {e}")
        return decode_image(data)
