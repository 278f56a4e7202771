"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .pricing import *  # noqa: F403
from .quote_request import *  # noqa: F403
from .refund import *  # noqa: F403
