"""FastAPI application and routes for the Chorus gateway."""

import json
import logging
import time
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as PydanticValidationError

from .config import CORS_ORIGINS, HOST, PORT, SERVICE_NAME, SHUTDOWN_TIMEOUT
from .dispatcher import dispatch_chat_request
from .errors import ValidationError
from .models import AggregateResponse, ChatRequest
from .utils import extract_raw_field

logger = logging.getLogger(__name__)

app = FastAPI(title="Chorus Gateway")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Origin", "Content-Length", "Content-Type", "Authorization"],
)


def json_response(response: AggregateResponse, status_code: int) -> Response:
    return Response(
        content=json.dumps(response.to_payload(), ensure_ascii=False),
        status_code=status_code,
        media_type="application/json",
    )


@app.post("/chat")
@app.post("/api/chat")
async def chat(request: Request) -> Response:
    """
    Fan-out chat endpoint:
    - Validates the gateway envelope (baseUrl, apiKey, requestBody, ...)
    - Makes one upstream call, or concurrentCount calls in parallel
    - Returns 200 if any call succeeded, 500 otherwise
    """
    body = await request.body()

    try:
        chat_request = ChatRequest.model_validate(json.loads(body))
    except PydanticValidationError as e:
        logger.error(f"Invalid request parameters: {str(e)}")
        return json_response(
            AggregateResponse(
                success=False, error=f"Invalid request parameters: {e}"
            ),
            400,
        )
    except ValueError as e:
        logger.error(f"Invalid JSON in request: {str(e)}")
        return json_response(
            AggregateResponse(success=False, error=f"Invalid JSON: {e}"), 400
        )

    # Forward requestBody as the exact text the client sent
    if not isinstance(chat_request.request_body, str):
        try:
            raw_body = extract_raw_field(body.decode("utf-8"), "requestBody")
        except UnicodeDecodeError:
            raw_body = None
        if raw_body is not None:
            chat_request = chat_request.model_copy(update={"request_body": raw_body})

    try:
        response, status_code = await dispatch_chat_request(chat_request)
    except ValidationError as e:
        logger.error(f"Rejected request: {str(e)}")
        return json_response(AggregateResponse(success=False, error=str(e)), 400)

    return json_response(response, status_code)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok", "timestamp": int(time.time()), "service": SERVICE_NAME}


def main():
    """Serve the app; uvicorn drains open connections on SIGINT/SIGTERM."""
    import uvicorn

    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        timeout_graceful_shutdown=SHUTDOWN_TIMEOUT,
    )


if __name__ == "__main__":
    main()
