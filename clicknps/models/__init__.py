"""ClickNPS database models."""

from .base import Base
from .business import ApiKey, Business
from .survey import Survey, SurveyLink
from .response import Response
from .webhook import WebhookDelivery, WebhookQueueEntry

__all__ = [
    "Base",
    "Business",
    "ApiKey",
    "Survey",
    "SurveyLink",
    "Response",
    "WebhookQueueEntry",
    "WebhookDelivery",
]
