import json
import re

import pytest
import yaml
from fastapi.testclient import TestClient
from pathlib import Path

# Mock response payloads
MOCK_COMPLETION_RESPONSE = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "created": 1677652288,
    "model": "gpt-4o-mini",
    "system_fingerprint": "fp_44709d6fcb",
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "Hello there, how may I assist you today?",
            },
            "logprobs": None,
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 9, "completion_tokens": 12, "total_tokens": 21},
}

MOCK_COMPLETION_RESPONSE_2 = {
    "id": "chatcmpl-456",
    "object": "chat.completion",
    "created": 1677652288,
    "model": "gpt-4o-mini",
    "system_fingerprint": "fp_44709d6fcb",
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "I'm the second assistant, ready to help!",
            },
            "logprobs": None,
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 10, "completion_tokens": 15, "total_tokens": 25},
}

MOCK_EMPTY_CHOICES_RESPONSE = {
    "id": "chatcmpl-789",
    "object": "chat.completion",
    "created": 1677652288,
    "model": "gpt-4o-mini",
    "choices": [],
    "usage": {"prompt_tokens": 9, "completion_tokens": 0, "total_tokens": 9},
}

TASK_MARKER = "[请忽略该行内容，唯一随机任务id：OLD123]"

MARKED_REQUEST_BODY = {
    "model": "gpt-4o-mini",
    "temperature": 0.7,
    "messages": [
        {"role": "system", "content": "You are a helpful assistant."},
        {"role": "user", "content": "What is 2+2?\n" + TASK_MARKER},
    ],
}

MOCK_CONFIG = {
    "server": {"host": "0.0.0.0", "port": 9000},
    "settings": {"timeout": 45, "max_concurrency": 4},
}

CALL_SUFFIX = re.compile(r"_C(\d+)\]")


def call_number(content: bytes) -> int:
    """1-based call number embedded in the task id of an outbound body."""
    body = json.loads(content)
    match = CALL_SUFFIX.search(body["messages"][-1]["content"])
    return int(match.group(1))


def make_payload(**overrides):
    """Inbound /chat payload with sensible defaults."""
    payload = {
        "baseUrl": "http://test.example.com",
        "apiKey": "test-key",
        "requestBody": MARKED_REQUEST_BODY,
    }
    payload.update(overrides)
    return payload


class MockResponse:
    """Base mock response class with proper async methods"""

    def __init__(self, status_code, content=None, headers=None, reason_phrase=None):
        self.status_code = status_code
        self._content = content if content is not None else b""
        self.headers = headers or {"content-type": "application/json"}
        self.reason_phrase = reason_phrase or ("OK" if status_code == 200 else "Error")

    async def aread(self):
        if isinstance(self._content, (dict, list)):
            return json.dumps(self._content).encode()
        return (
            self._content
            if isinstance(self._content, bytes)
            else str(self._content).encode()
        )

    def json(self):
        """Synchronous json method to match httpx.Response behavior"""
        if isinstance(self._content, (dict, list)):
            return self._content
        content_str = (
            self._content.decode()
            if isinstance(self._content, bytes)
            else self._content
        )
        return json.loads(content_str)


# Shared fixtures
@pytest.fixture
def mock_config(monkeypatch):
    """Mock config file with a custom timeout and concurrency cap"""

    def mock_read_text(*args, **kwargs):
        return yaml.dump(MOCK_CONFIG)

    monkeypatch.setattr(Path, "read_text", mock_read_text)
    return MOCK_CONFIG


@pytest.fixture
def test_client():
    """Create a test client for the gateway app"""
    from chorus.api import app

    return TestClient(app)
