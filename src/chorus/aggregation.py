"""Concurrent fan-out and result aggregation for the Chorus gateway."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional

from .config import MAX_CONCURRENCY, get_fanout_logger
from .backends import call_upstream
from .models import AggregateResponse, ChatRequest, RequestOutcome

logger = logging.getLogger(__name__)

ALL_FAILED_MESSAGE = "All concurrent requests failed"

UpstreamCaller = Callable[[ChatRequest, int, random.Random], Awaitable[RequestOutcome]]


async def fan_out(
    chat_request: ChatRequest,
    rng: random.Random,
    caller: UpstreamCaller = call_upstream,
    max_in_flight: Optional[int] = None,
) -> List[RequestOutcome]:
    """
    Run ``chat_request.concurrent_count`` upstream calls at once and wait for
    every one of them.

    Args:
        chat_request: Normalized inbound request
        rng: Request-level random source; each call gets its own child generator
        caller: Coroutine performing a single call
        max_in_flight: Cap on simultaneous calls, 0 or None for no cap

    Returns:
        One outcome per call, position i holding call i
    """
    total = chat_request.concurrent_count
    if max_in_flight is None:
        max_in_flight = MAX_CONCURRENCY
    semaphore = asyncio.Semaphore(max_in_flight) if max_in_flight > 0 else None

    async def run_one(index: int, call_rng: random.Random) -> RequestOutcome:
        if semaphore is None:
            return await caller(chat_request, index, call_rng)
        async with semaphore:
            return await caller(chat_request, index, call_rng)

    get_fanout_logger().info(f"Starting {total} concurrent requests")

    tasks = [
        asyncio.create_task(run_one(i, random.Random(rng.getrandbits(64))))
        for i in range(total)
    ]
    responses = await asyncio.gather(*tasks, return_exceptions=True)

    outcomes: List[RequestOutcome] = [None] * total
    for i, response in enumerate(responses):
        if isinstance(response, BaseException):
            logger.error(f"Request #{i + 1} raised: {str(response)}")
            outcomes[i] = RequestOutcome(
                success=False, error=str(response), request_index=i
            )
        else:
            outcomes[i] = response
            get_fanout_logger().info(
                f"Request #{i + 1} finished: {'ok' if response.success else 'failed'}"
            )
    return outcomes


def aggregate_outcomes(
    outcomes: List[RequestOutcome], user_message_id: Optional[str] = None
) -> AggregateResponse:
    """
    Fold per-call outcomes into one response.

    The representative content and usage come from the lowest-index success.
    When everything failed, the error of call 0 is reported.
    """
    success_count = sum(1 for outcome in outcomes if outcome.success)
    first_success = next((outcome for outcome in outcomes if outcome.success), None)

    response = AggregateResponse(
        concurrent_results=outcomes,
        success_count=success_count,
        total_count=len(outcomes),
        user_message_id=user_message_id,
        is_final_result=True,
    )

    if first_success is not None:
        response.success = True
        response.content = first_success.content
        response.usage = first_success.usage
        response.request_index = first_success.request_index
    else:
        response.success = False
        response.error = outcomes[0].error if outcomes else ALL_FAILED_MESSAGE

    get_fanout_logger().info(
        f"Concurrent requests done: {success_count}/{len(outcomes)} succeeded"
    )
    return response


async def run_concurrent_requests(
    chat_request: ChatRequest,
    rng: random.Random,
    caller: UpstreamCaller = call_upstream,
) -> AggregateResponse:
    """Fan out, then aggregate, echoing the caller's message id."""
    outcomes = await fan_out(chat_request, rng, caller=caller)
    return aggregate_outcomes(outcomes, chat_request.user_message_id)
