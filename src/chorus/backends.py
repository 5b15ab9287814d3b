"""Upstream calls for the Chorus gateway."""

import asyncio
import json
import logging
import random
from typing import Any, Tuple

import httpx
from pydantic import ValidationError as PydanticValidationError

from .errors import (
    EmptyContentError,
    GatewayError,
    ParseError,
    TransportError,
    UpstreamError,
)
from .models import ChatCompletionResponse, ChatRequest, RequestOutcome
from .utils import build_endpoint_url, encode_request_body, uniquify_request_body

logger = logging.getLogger(__name__)


def build_upstream_headers(chat_request: ChatRequest) -> httpx.Headers:
    """
    Headers for one upstream call. Custom headers from the request are
    applied last and replace earlier values regardless of case.
    """
    headers = httpx.Headers()
    headers["Content-Type"] = "application/json"
    headers["Authorization"] = f"Bearer {chat_request.api_key}"
    if chat_request.organization:
        headers["OpenAI-Organization"] = chat_request.organization
    for key, value in (chat_request.headers or {}).items():
        headers[key] = value
    return headers


async def send_request(
    url: str, body: bytes, headers: httpx.Headers, timeout: float
) -> Tuple[int, str, bytes]:
    """
    POST the body and read the whole reply within ``timeout`` seconds.

    Returns:
        Status code, reason phrase and raw response body

    Raises:
        TransportError: connection, DNS, read or timeout failure
    """

    async def _post() -> Tuple[int, str, bytes]:
        client = httpx.AsyncClient()
        try:
            response = await client.post(
                url,
                content=body,
                headers=headers,
                timeout=timeout,
            )
            content = await response.aread()
            return response.status_code, response.reason_phrase, content
        finally:
            await client.aclose()

    try:
        return await asyncio.wait_for(_post(), timeout)
    except asyncio.TimeoutError as e:
        raise TransportError(f"Request timed out after {timeout}s") from e
    except (httpx.HTTPError, OSError) as e:
        raise TransportError(f"Request failed: {type(e).__name__}: {e}") from e


def parse_completion(status_code: int, reason: str, raw: bytes) -> Tuple[str, Any]:
    """
    Pull the first choice's content and the usage block out of a reply.

    Raises:
        UpstreamError: status is not 200
        ParseError: body is not a chat completion payload
        EmptyContentError: the payload has no choices
    """
    text = raw.decode("utf-8", errors="replace")
    if status_code != 200:
        raise UpstreamError(status_code, reason, text)

    try:
        completion = ChatCompletionResponse.model_validate(json.loads(text))
    except (ValueError, PydanticValidationError) as e:
        raise ParseError(f"Failed to parse upstream response: {e}") from e

    if not completion.choices:
        raise EmptyContentError("No valid reply content found in upstream response")

    message = completion.choices[0].message
    content = message.content if message and message.content is not None else ""
    return content, completion.usage


async def call_upstream(
    chat_request: ChatRequest, request_index: int, rng: random.Random
) -> RequestOutcome:
    """
    Make one upstream chat completion call.

    Args:
        chat_request: Normalized inbound request
        request_index: Zero-based position of this call in the fan-out
        rng: Random source used to regenerate the task id marker

    Returns:
        A RequestOutcome; failures are reported in it, never raised
    """
    api_url = build_endpoint_url(chat_request.base_url)

    try:
        try:
            body = uniquify_request_body(
                chat_request.request_body, request_index, rng
            )
        except ParseError as e:
            logger.warning(
                f"Could not build unique body for request #{request_index + 1}: {e}"
            )
            body = encode_request_body(chat_request.request_body)

        headers = build_upstream_headers(chat_request)
        logger.info(f"Sending request #{request_index + 1} to {api_url}")

        status_code, reason, raw = await send_request(
            api_url, body, headers, chat_request.request_timeout
        )
        content, usage = parse_completion(status_code, reason, raw)
    except (GatewayError, ValueError) as e:
        logger.error(f"Request #{request_index + 1} failed: {str(e)}")
        return RequestOutcome(
            success=False, error=str(e), request_index=request_index
        )

    logger.info(
        f"Request #{request_index + 1} completed, content length: {len(content)}"
    )
    return RequestOutcome(
        success=True, content=content, usage=usage, request_index=request_index
    )
