"""Alert Dispatcher - concurrent, independently retried fan-out to notification channels.

Execution model:
1. Channels for this dispatch are submitted together to a thread pool
2. Each channel runs its own retry loop; no channel waits on another
3. The call joins with a bounded wait; a channel still running at the
   deadline is reported as timed out

Every channel settles exactly once and produces exactly one audit entry,
ALERT_SENT or ALERT_FAILED.
"""

import atexit
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, Optional

from fraud_sentinel.alerts.providers import (
    NotificationProvider,
    SimulatedProvider,
    build_providers,
)
from fraud_sentinel.alerts.schema import (
    AlertChannel,
    AlertOutcome,
    AlertRequest,
    DispatchResult,
)
from fraud_sentinel.alerts.templates import render_alert
from fraud_sentinel.common.config import Config
from fraud_sentinel.common.constants import AlertConstants, AuditActions
from fraud_sentinel.common.exceptions import UpstreamError
from fraud_sentinel.common.retry import RetryPolicy
from fraud_sentinel.governance.audit.trail import AuditTrail
from fraud_sentinel.governance.schemas import AuditLevel

logger = logging.getLogger(__name__)


class _ChannelSlot:
    """Settle-once result holder for one channel of one dispatch."""

    def __init__(self, channel: AlertChannel):
        self.channel = channel
        self.attempts = 0
        self.outcome: Optional[AlertOutcome] = None
        self._lock = threading.Lock()

    def count_attempt(self) -> None:
        with self._lock:
            self.attempts += 1

    def settle(self, outcome: AlertOutcome) -> bool:
        """Store the outcome if none was stored yet. Returns True if stored."""
        with self._lock:
            if self.outcome is not None:
                return False
            self.outcome = outcome
            return True


class AlertDispatcher:
    """Sends fraud alerts to a customer over SMS, rich message and voice.

    Features:
    - Channels run concurrently; total latency is bounded by the slowest channel
    - Voice only at or above the voice risk threshold
    - Destination-less calls are skipped with a single audit entry
    - Injectable providers, retry policy and executor for testing
    """

    def __init__(
        self,
        providers: Optional[Dict[AlertChannel, NotificationProvider]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        audit: Optional[AuditTrail] = None,
        dispatch_timeout: float = AlertConstants.DISPATCH_TIMEOUT_SECONDS,
        voice_threshold: int = AlertConstants.VOICE_RISK_THRESHOLD,
        max_workers: int = AlertConstants.MAX_WORKERS * 4,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize dispatcher.

        Args:
            providers: Provider per channel. Missing channels are simulated.
            retry_policy: Retry policy applied per channel
            audit: Audit trail for per-channel outcomes
            dispatch_timeout: Upper bound on one dispatch call, in seconds
            voice_threshold: Minimum risk score for a voice call
            max_workers: Pool size when no executor is given
            executor: Custom executor. Owned by the caller if provided.
        """
        providers = dict(providers or {})
        for channel in AlertChannel:
            providers.setdefault(channel, SimulatedProvider(channel))
        self.providers = providers
        self.retry_policy = retry_policy or RetryPolicy()
        self.audit = audit
        self.dispatch_timeout = dispatch_timeout
        self.voice_threshold = voice_threshold

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="AlertChannel",
        )
        if self._owns_executor:
            atexit.register(self.shutdown)

    @classmethod
    def from_config(
        cls,
        config: Config,
        audit: Optional[AuditTrail] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "AlertDispatcher":
        """Build a dispatcher with Twilio providers when configured."""
        return cls(
            providers=build_providers(config),
            retry_policy=retry_policy or RetryPolicy.from_config(config),
            audit=audit,
            dispatch_timeout=config.dispatch_timeout_seconds,
            voice_threshold=config.voice_risk_threshold,
        )

    def channels_for(self, risk_score: int) -> List[AlertChannel]:
        """Channels to attempt for a risk score."""
        channels = [AlertChannel.SMS, AlertChannel.RICH_MESSAGE]
        if risk_score >= self.voice_threshold:
            channels.append(AlertChannel.VOICE)
        return channels

    def dispatch(
        self,
        destination: Optional[str],
        request: AlertRequest,
        session_ref: Optional[str] = None,
    ) -> DispatchResult:
        """Fan an alert out to every applicable channel.

        Never raises for provider failures; those are reported per channel.
        """
        if not destination or not destination.strip():
            self._audit(
                AuditLevel.INFO, AuditActions.ALERT_SKIPPED,
                "No destination address, alerts skipped",
                session_ref=session_ref,
                incident_id=request.incident_id,
                risk_score=request.risk_score,
            )
            return DispatchResult()

        destination = destination.strip()
        slots: Dict[AlertChannel, _ChannelSlot] = {}
        futures = {}
        for channel in self.channels_for(request.risk_score):
            slot = _ChannelSlot(channel)
            slots[channel] = slot
            message = render_alert(channel, request)
            future = self._executor.submit(
                self._run_channel, slot, destination, message, request, session_ref
            )
            futures[future] = channel

        done, not_done = wait(futures, timeout=self.dispatch_timeout)

        for future in not_done:
            channel = futures[future]
            slot = slots[channel]
            future.cancel()
            outcome = AlertOutcome(
                channel=channel,
                delivered=False,
                attempts=slot.attempts,
                simulated=self.providers[channel].simulated,
                error="timed out",
            )
            if slot.settle(outcome):
                logger.warning(f"{channel.value} alert timed out after {self.dispatch_timeout}s")
                self._audit_outcome(outcome, destination, request, session_ref)

        for future in done:
            # _run_channel handles its own errors; this guards executor failures
            exc = future.exception()
            if exc is not None:
                channel = futures[future]
                outcome = AlertOutcome(
                    channel=channel,
                    delivered=False,
                    attempts=slots[channel].attempts,
                    simulated=self.providers[channel].simulated,
                    error=f"{type(exc).__name__}: {exc}",
                )
                if slots[channel].settle(outcome):
                    self._audit_outcome(outcome, destination, request, session_ref)

        return DispatchResult(**{
            channel.value: slot.outcome for channel, slot in slots.items()
        })

    def _run_channel(
        self,
        slot: _ChannelSlot,
        destination: str,
        message: str,
        request: AlertRequest,
        session_ref: Optional[str],
    ) -> None:
        provider = self.providers[slot.channel]

        def attempt():
            slot.count_attempt()
            return provider.send(destination, message, request.language)

        try:
            receipt, attempts = self.retry_policy.call(
                attempt, operation=f"{slot.channel.value} alert"
            )
            outcome = AlertOutcome(
                channel=slot.channel,
                delivered=True,
                attempts=attempts,
                provider_ref=receipt.provider_ref,
                simulated=receipt.simulated,
            )
        except UpstreamError as e:
            outcome = AlertOutcome(
                channel=slot.channel,
                delivered=False,
                attempts=e.attempts or slot.attempts,
                simulated=provider.simulated,
                error=e.message,
            )
        except Exception as e:
            logger.exception(f"Unexpected error in {slot.channel.value} provider")
            outcome = AlertOutcome(
                channel=slot.channel,
                delivered=False,
                attempts=slot.attempts,
                simulated=provider.simulated,
                error=f"{type(e).__name__}: {e}",
            )

        if slot.settle(outcome):
            self._audit_outcome(outcome, destination, request, session_ref)
        else:
            logger.info(
                f"{slot.channel.value} alert finished after its deadline "
                f"(delivered={outcome.delivered}), result discarded"
            )

    def _audit_outcome(
        self,
        outcome: AlertOutcome,
        destination: str,
        request: AlertRequest,
        session_ref: Optional[str],
    ) -> None:
        meta = {
            "channel": outcome.channel.value,
            "to": destination,
            "attempts": outcome.attempts,
            "provider_ref": outcome.provider_ref,
            "simulated": outcome.simulated,
            "incident_id": request.incident_id,
        }
        if outcome.delivered:
            self._audit(
                AuditLevel.INFO, AuditActions.ALERT_SENT,
                f"{outcome.channel.value} alert sent to {destination}",
                session_ref=session_ref, **meta,
            )
        else:
            self._audit(
                AuditLevel.ERROR, AuditActions.ALERT_FAILED,
                f"{outcome.channel.value} alert to {destination} failed: {outcome.error}",
                session_ref=session_ref, error=outcome.error, **meta,
            )

    def _audit(self, level: AuditLevel, action: str, message: str, session_ref=None, **meta) -> None:
        if self.audit is not None:
            self.audit.record(level, action, message, session_ref=session_ref, meta=meta)

    def shutdown(self, wait: bool = True) -> None:
        """Release the owned executor and provider HTTP clients."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait, cancel_futures=True)
        for provider in self.providers.values():
            client = getattr(provider, "client", None)
            if client is not None:
                client.close()
