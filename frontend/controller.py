"""
Client-side state machine for one FLUX.2 klein generation at a time.

States: IDLE -> SUBMITTING -> SUCCEEDED | FAILED -> IDLE.
A trigger while not IDLE is dropped, which is the only concurrency control
needed under a single asyncio loop.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from config.settings import settings

from .credentials import CredentialStore, MemoryCredentialStore
from .ingest import (
    DragTracker,
    DroppedFile,
    ImageReference,
    LocalImage,
    RemoteImage,
    file_to_base64,
    first_image,
)
from .proxy_client import PreloadError, ProxyClient
from .timer import ElapsedTimer, format_elapsed

logger = logging.getLogger(__name__)

MISSING_KEY_WARNING = "Please enter your BFL API key"

MODEL_VARIANTS = ("9b", "4b")


class SessionStatus(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class GenerationProxy(Protocol):
    async def generate(self, body: Dict[str, Any]) -> Optional[str]: ...

    async def preload(self, image_url: str) -> Any: ...


class GenerationSessionController:
    def __init__(
        self,
        proxy: Optional[GenerationProxy] = None,
        credentials: Optional[CredentialStore] = None,
        notify: Optional[Callable[[str], None]] = None,
        on_readout: Optional[Callable[[str], None]] = None,
        timer_factory: Callable[..., ElapsedTimer] = ElapsedTimer,
        timer_interval: float = settings.TIMER_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.proxy = proxy or ProxyClient()
        self.credentials = credentials or MemoryCredentialStore()
        self.notify = notify or (lambda message: logger.warning("%s", message))
        self.on_readout = on_readout
        self.timer_factory = timer_factory
        self.timer_interval = timer_interval
        self.clock = clock

        self.api_key = ""
        self.model_variant = "9b"
        self.edit_mode = False
        self.status = SessionStatus.IDLE
        self.start_timestamp: Optional[float] = None
        self.last_error: Optional[str] = None

        self.current_image: Optional[ImageReference] = None
        self.previous_image: Optional[ImageReference] = None
        self.current_preview: Any = None
        self.previous_preview: Any = None
        self.show_current = False

        self.gen_time = ""
        self.show_loading = False
        self.loading_complete = False

        self.drag = DragTracker()
        # base64 of the last dropped file, reused while edit mode may need it
        self._reference_base64: Optional[str] = None

    @property
    def has_image(self) -> bool:
        return self.current_image is not None

    @property
    def is_generating(self) -> bool:
        return self.status is not SessionStatus.IDLE

    # --- settings -------------------------------------------------------

    async def load_credentials(self) -> None:
        saved = await self.credentials.get()
        if saved:
            self.api_key = saved

    async def set_api_key(self, value: str) -> None:
        self.api_key = value
        await self.credentials.set(value)

    def set_model_variant(self, variant: str) -> None:
        if variant not in MODEL_VARIANTS:
            raise ValueError(f"unknown model variant: {variant}")
        self.model_variant = variant

    def toggle_edit_mode(self) -> None:
        if self.has_image:
            self.edit_mode = not self.edit_mode

    # --- generation -----------------------------------------------------

    def build_request(self, prompt: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "prompt": prompt,
            "apiKey": self.api_key,
            "variant": self.model_variant,
        }
        if self.edit_mode and self.current_image is not None:
            if isinstance(self.current_image, LocalImage):
                body["image"] = self._reference_base64
            else:
                body["imageUrl"] = self.current_image.url
        return body

    async def trigger(self, prompt_text: str) -> Optional[str]:
        """
        Start one generation. Returns the new image URL, or None when the
        trigger was ignored or the attempt failed.
        """
        prompt = (prompt_text or "").strip()
        if not prompt or self.status is not SessionStatus.IDLE:
            return None

        if not self.api_key:
            self.notify(MISSING_KEY_WARNING)
            return None

        self.status = SessionStatus.SUBMITTING
        self.start_timestamp = self.clock()
        self.last_error = None
        self.show_loading = True
        self.loading_complete = False
        body = self.build_request(prompt)
        logger.info("Generating (variant=%s, edit=%s)", self.model_variant, "image" in body or "imageUrl" in body)

        try:
            async with self.timer_factory(self._set_readout, self.timer_interval, self.clock) as timer:
                image_url = await self.proxy.generate(body)

                # Readout stops when the proxy answers, not when the image loads
                timer.stop()
                self._set_readout(format_elapsed(self.clock() - self.start_timestamp))
                self.loading_complete = True

                if not image_url:
                    raise PreloadError("No image URL in response")
                preview = await self.proxy.preload(image_url)
        except Exception as e:
            self._fail(str(e) or "Generation failed")
            return None

        self._promote(RemoteImage(image_url), preview)
        self.show_loading = False
        self.loading_complete = False
        self.status = SessionStatus.SUCCEEDED
        logger.info("Generation succeeded in %s", self.gen_time)
        self.status = SessionStatus.IDLE
        return image_url

    def _set_readout(self, readout: str) -> None:
        self.gen_time = readout
        if self.on_readout is not None:
            self.on_readout(readout)

    def _fail(self, message: str) -> None:
        logger.error("Generation failed: %s", message)
        self.status = SessionStatus.FAILED
        self._set_readout("")
        self.last_error = message
        self.show_loading = False
        self.loading_complete = False
        self.notify(message)
        self.status = SessionStatus.IDLE

    # --- images ---------------------------------------------------------

    def _promote(self, image: ImageReference, preview: Any) -> None:
        """Demote the shown image to previous and crossfade the new one in."""
        if self.current_image is not None:
            self.previous_image = self.current_image
            self.previous_preview = self.current_preview
            self.show_current = False
        self.current_image = image
        self.current_preview = preview
        self._schedule_reveal()

    def _schedule_reveal(self) -> None:
        # Two loop turns so the hidden state is rendered before the fade starts
        loop = asyncio.get_running_loop()
        loop.call_soon(loop.call_soon, self.reveal)

    def reveal(self) -> None:
        self.show_current = True

    # --- drag and drop --------------------------------------------------

    def drag_enter(self) -> None:
        self.drag.enter()

    def drag_leave(self) -> None:
        self.drag.leave()

    async def ingest_drop(self, files: Sequence[DroppedFile]) -> bool:
        """
        Make the first dropped image the current image and turn edit mode on.
        Non-image files are ignored. Returns True if an image was taken.
        """
        self.drag.drop()
        file = first_image(files)
        if file is None:
            return False

        self._reference_base64 = file_to_base64(file)
        self._promote(LocalImage(file.name, file.mime_type, file.data), file.data)
        self.edit_mode = True
        logger.info("Reference image %s loaded (%d bytes)", file.name, len(file.data))
        return True
