"""Utility functions for the Chorus gateway."""

import json
import logging
import random
import re
import string
from typing import Any, Optional

from .errors import ParseError

logger = logging.getLogger(__name__)

TASK_ID_PREFIX = "请忽略该行内容，唯一随机任务id："
TASK_ID_PATTERN = re.compile(r"\[" + re.escape(TASK_ID_PREFIX) + r"[^\]]+\]")

ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
MIN_ID_LENGTH = 16


def build_endpoint_url(base_url: str) -> str:
    """
    Derive the chat completions endpoint from a base URL.

    A trailing slash is ensured, ``v1/`` is added unless the URL already
    contains ``/v1`` anywhere, and ``chat/completions`` is appended.
    """
    url = base_url if base_url.endswith("/") else base_url + "/"
    if "/v1" not in url:
        url += "v1/"
    return url + "chat/completions"


def generate_unique_id(content_length: int, rng: random.Random) -> str:
    """Random alphanumeric id, at least 16 chars and half the content length."""
    id_length = MIN_ID_LENGTH
    if content_length > 0:
        id_length = max(MIN_ID_LENGTH, content_length // 2)
    return "".join(rng.choice(ID_ALPHABET) for _ in range(id_length))


def encode_request_body(request_body: Any) -> bytes:
    """Bytes to send when the body is forwarded unmodified."""
    if isinstance(request_body, bytes):
        return request_body
    if isinstance(request_body, str):
        return request_body.encode("utf-8")
    return json.dumps(request_body, ensure_ascii=False, allow_nan=False).encode("utf-8")


def extract_raw_field(document: str, key: str) -> Optional[str]:
    """
    Source text of a top-level member of a JSON object, exactly as written.

    Returns None when the document is not an object or lacks the key. As with
    json.loads, the last occurrence of a duplicated key wins.
    """
    decoder = json.JSONDecoder()
    whitespace = re.compile(r"\s*")

    def skip(pos: int) -> int:
        return whitespace.match(document, pos).end()

    raw = None
    try:
        pos = skip(0)
        if document[pos:pos + 1] != "{":
            return None
        pos = skip(pos + 1)
        if document[pos:pos + 1] == "}":
            return None
        while True:
            name, pos = decoder.raw_decode(document, pos)
            pos = skip(pos)
            if document[pos:pos + 1] != ":":
                return None
            start = skip(pos + 1)
            _, end = decoder.raw_decode(document, start)
            if name == key:
                raw = document[start:end]
            pos = skip(end)
            if document[pos:pos + 1] == ",":
                pos = skip(pos + 1)
                continue
            if document[pos:pos + 1] == "}":
                return raw
            return None
    except ValueError:
        return None


def uniquify_request_body(
    request_body: Any, request_index: int, rng: random.Random
) -> bytes:
    """
    Give the latest user message a fresh task id so identical concurrent
    requests are not served from an upstream cache.

    Only the last user message with string content is considered. When it
    carries a task id marker, the id is replaced by a random token suffixed
    with ``_C<request_index + 1>``; otherwise the body is re-serialized as is.
    Bodies without a ``messages`` array come back byte for byte.

    Raises:
        ParseError: the body is not a JSON object
    """
    original = encode_request_body(request_body)
    try:
        request_data = json.loads(original)
    except ValueError as e:
        raise ParseError(f"Request body is not valid JSON: {e}") from e

    if not isinstance(request_data, dict):
        raise ParseError("Request body is not a JSON object")

    messages = request_data.get("messages")
    if not isinstance(messages, list):
        return original

    for message in reversed(messages):
        if not isinstance(message, dict) or message.get("role") != "user":
            continue
        content = message.get("content")
        if not isinstance(content, str):
            continue

        if TASK_ID_PATTERN.search(content):
            new_id = generate_unique_id(
                len(content.encode("utf-8")), rng
            ) + f"_C{request_index + 1}"
            message["content"] = TASK_ID_PATTERN.sub(
                lambda _: f"[{TASK_ID_PREFIX}{new_id}]", content
            )
            logger.info(f"Generated task id for request #{request_index + 1}: {new_id}")
        break

    try:
        return json.dumps(request_data, ensure_ascii=False, allow_nan=False).encode(
            "utf-8"
        )
    except ValueError as e:
        raise ParseError(f"Request body cannot be re-serialized: {e}") from e
