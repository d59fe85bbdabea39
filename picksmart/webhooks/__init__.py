from picksmart.webhooks.topics import WebhookTopic, TopicFamily
from picksmart.webhooks.security import verify_signature, compute_signature
from picksmart.webhooks.dispatcher import WebhookDispatcher
from picksmart.webhooks.monitor import WebhookMonitor, DeliveryLedger

__all__ = [
    "WebhookTopic",
    "TopicFamily",
    "verify_signature",
    "compute_signature",
    "WebhookDispatcher",
    "WebhookMonitor",
    "DeliveryLedger",
]
