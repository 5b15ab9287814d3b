"""Request dispatch: validation, single call or fan-out, response status."""

import logging
import random
from typing import Optional, Tuple

from .config import TIMEOUT
from .aggregation import UpstreamCaller, run_concurrent_requests
from .backends import call_upstream
from .errors import ValidationError
from .models import AggregateResponse, ChatRequest

logger = logging.getLogger(__name__)


def validate_chat_request(chat_request: ChatRequest) -> None:
    """Raise ValidationError unless both base URL and API key are present."""
    if not chat_request.base_url:
        raise ValidationError("baseUrl must not be empty")
    if not chat_request.api_key:
        raise ValidationError("apiKey must not be empty")


async def dispatch_chat_request(
    chat_request: ChatRequest,
    rng: Optional[random.Random] = None,
    caller: UpstreamCaller = call_upstream,
) -> Tuple[AggregateResponse, int]:
    """
    Execute an inbound request and pick the HTTP status for the reply.

    A concurrency of one makes a single call with index 0; anything higher
    fans out. The status is 200 when at least one call succeeded, else 500.

    Raises:
        ValidationError: base URL or API key is empty
    """
    validate_chat_request(chat_request)
    chat_request = chat_request.normalized(default_timeout=TIMEOUT)
    if rng is None:
        rng = random.Random()

    logger.info(
        f"Received request - concurrency: {chat_request.concurrent_count}, "
        f"baseUrl: {chat_request.base_url}, userMessageId: {chat_request.user_message_id}"
    )

    if chat_request.concurrent_count == 1:
        outcome = await caller(chat_request, 0, rng)
        response = AggregateResponse.from_outcome(
            outcome, chat_request.user_message_id
        )
        return response, 200 if outcome.success else 500

    response = await run_concurrent_requests(chat_request, rng, caller=caller)
    return response, 200 if response.success_count > 0 else 500
