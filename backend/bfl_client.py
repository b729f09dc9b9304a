import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError as SchemaError

from config.settings import settings

from .errors import (
    FetchError,
    GenerationError,
    GenerationFailure,
    PollingTimeout,
    ProtocolError,
    ProviderError,
    ValidationError,
)
from .model import (
    GenerateRequest,
    GenerationResult,
    InlineImage,
    PollOutcome,
    PollStatus,
    ProviderPayload,
    SourceUrlImage,
    SubmissionOutcome,
    endpoint_for,
)
from .utils import encode_base64, extract_error_message, poll_failure_message

logger = logging.getLogger(__name__)


class BFLClient:
    """
    Forwards generation requests to Black Forest Labs and waits for the result.

    Holds no per-request state; one instance can serve every request.
    `max_attempts=None` polls until the provider reports a terminal status,
    an integer caps the number of polls and raises PollingTimeout after it.
    """

    def __init__(
        self,
        poll_interval: float = settings.POLL_INTERVAL,
        max_attempts: Optional[int] = settings.MAX_POLL_ATTEMPTS,
        timeout: float = settings.REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def submit(self, req: GenerateRequest) -> GenerationResult:
        """Run one generation and fold every failure into a GenerationResult."""
        try:
            url = await self.generate(req)
        except GenerationError as e:
            logger.warning("Generation failed (%s): %s", e.status_code, e.message)
            return GenerationResult.failure(e.message, e.status_code)
        return GenerationResult.success(url)

    async def generate(self, req: GenerateRequest) -> str:
        prompt = (req.prompt or "").strip()
        if not prompt or not req.apiKey:
            raise ValidationError("Missing prompt or API key")

        variant = req.model_variant
        api_url = endpoint_for(variant)

        async with self._client() as client:
            payload = ProviderPayload(
                prompt=req.prompt,
                input_image=await self._resolve_reference(client, req),
            )
            logger.info(
                "Submitting to %s (variant=%s, input_image=%s)",
                api_url,
                variant.value,
                f"{len(payload.input_image)} chars" if payload.input_image else "none",
            )
            submission = await self._submit(client, api_url, payload, req.apiKey)

            if submission.sample:
                logger.info("Provider returned a direct result")
                return submission.sample

            if not submission.polling_url:
                raise ProtocolError("no polling handle in response")

            return await self.wait_for_result(client, submission.polling_url, req.apiKey)

    async def _resolve_reference(self, client: httpx.AsyncClient, req: GenerateRequest) -> Optional[str]:
        reference = req.reference
        if isinstance(reference, InlineImage):
            return reference.data
        if isinstance(reference, SourceUrlImage):
            return await self.url_to_base64(client, reference.url)
        return None

    async def url_to_base64(self, client: httpx.AsyncClient, url: str) -> str:
        """Download the reference image once and encode it as base64."""
        try:
            r = await client.get(url)
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to fetch reference image: {e}")
        if r.is_error:
            raise FetchError(f"Failed to fetch reference image ({r.status_code})", r.status_code)
        return encode_base64(r.content)

    async def _submit(
        self, client: httpx.AsyncClient, api_url: str, payload: ProviderPayload, api_key: str
    ) -> SubmissionOutcome:
        headers = {"Content-Type": "application/json", "X-Key": api_key}
        try:
            r = await client.post(api_url, headers=headers, json=payload.to_json())
        except httpx.HTTPError as e:
            raise ProviderError(f"BFL API unreachable: {e}")

        if r.is_error:
            raise ProviderError(
                extract_error_message(r, f"BFL API error ({r.status_code})"), r.status_code
            )
        try:
            return SubmissionOutcome.model_validate(self._json_body(r))
        except SchemaError:
            raise ProtocolError("malformed submission response")

    async def wait_for_result(self, client: httpx.AsyncClient, polling_url: str, api_key: str) -> str:
        """
        Poll `polling_url` until a terminal status.
        Pending keeps polling, Ready with a sample succeeds, anything else fails.
        """
        headers = {"X-Key": api_key}
        attempts = 0

        while self.max_attempts is None or attempts < self.max_attempts:
            attempts += 1
            await asyncio.sleep(self.poll_interval)

            try:
                r = await client.get(polling_url, headers=headers)
            except httpx.HTTPError as e:
                raise ProviderError(f"BFL poll unreachable: {e}")

            if r.is_error:
                raise ProviderError(
                    extract_error_message(r, f"Poll error ({r.status_code})"), r.status_code
                )

            try:
                outcome = PollOutcome.model_validate(self._json_body(r))
            except SchemaError:
                raise ProtocolError("malformed poll response")
            logger.debug("Poll %d: status=%s", attempts, outcome.status)

            if outcome.status == PollStatus.PENDING:
                continue

            if outcome.status == PollStatus.READY and outcome.sample:
                logger.info("Result ready after %d poll(s)", attempts)
                return outcome.sample

            raise GenerationFailure(poll_failure_message(outcome))

        raise PollingTimeout(f"polling timeout after {attempts} attempts")

    @staticmethod
    def _json_body(r: httpx.Response) -> Dict[str, Any]:
        try:
            data = r.json()
        except ValueError:
            raise ProtocolError("invalid JSON in provider response")
        if not isinstance(data, dict):
            raise ProtocolError("unexpected provider response")
        return data
