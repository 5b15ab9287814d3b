"""A local gateway that fans one chat request out to N OpenAI-compatible calls."""

__version__ = "0.1.0"

from .config import load_config
from .api import app, main
from .models import ChatRequest, RequestOutcome, AggregateResponse

from .backends import call_upstream
from .aggregation import fan_out, aggregate_outcomes
from .dispatcher import dispatch_chat_request
