"""Alerting - multi-channel fraud notifications."""

from fraud_sentinel.alerts.schema import (
    AlertChannel,
    AlertOutcome,
    AlertRequest,
    DispatchResult,
    ProviderReceipt,
)
from fraud_sentinel.alerts.providers import (
    NotificationProvider,
    SimulatedProvider,
    TwilioClient,
    build_providers,
)
from fraud_sentinel.alerts.dispatcher import AlertDispatcher

__all__ = [
    "AlertChannel",
    "AlertOutcome",
    "AlertRequest",
    "DispatchResult",
    "ProviderReceipt",
    "NotificationProvider",
    "SimulatedProvider",
    "TwilioClient",
    "build_providers",
    "AlertDispatcher",
]
