#!/usr/bin/env python3
"""Main entry point for Fraud Sentinel: runs a demo scam conversation."""

from fraud_sentinel.common.logging import get_logger
from fraud_sentinel.common.config import get_config
from fraud_sentinel.core.types import SessionMeta
from fraud_sentinel.governance.schemas import AuditFilter
from fraud_sentinel.orchestration.engine import RiskEngine

logger = get_logger(__name__)


DEMO_CONVERSATION = [
    ("Hello, I need some help with my account", "neutral"),
    ("My name is Rahul", "neutral"),
    ("Please transfer ₹60,000 to this account", "neutral"),
    ("The bank officer on the phone asked me to share the otp", "fearful"),
    ("He said it is urgent, the otp is needed now", "fearful"),
    ("I am Amit, transfer rs 150000 immediately", "angry"),
]


def main():
    """Main entry point."""
    config = get_config()
    get_logger(__name__, config.log_level.value)
    logger.info(f"Fraud Sentinel initialized in {config.environment.value} mode")

    engine = RiskEngine.from_config(config)
    meta = SessionMeta(customer_id="CUST-1001", customer_name="Rahul", phone="+919800000000")
    session_id = "demo-session"

    try:
        for text, emotion in DEMO_CONVERSATION:
            result = engine.analyze(session_id, text, emotion=emotion, session_meta=meta)
            logger.info(
                f"[{result.risk_level.value:>6} {result.risk_score:>3}] {text!r} "
                f"-> {result.control_state.value} {result.triggers}"
            )
            if result.reply:
                logger.info(f"  reply: {result.reply}")

        engine.flush(timeout=config.dispatch_timeout_seconds)

        snapshot = engine.get_risk_snapshot(session_id)
        if snapshot.incident_id:
            incident = engine.get_incident(snapshot.incident_id)
            logger.info(
                f"Incident {incident.id} ({incident.priority.value}) "
                f"SLA {incident.sla_deadline.isoformat()} simulated={incident.simulated}"
            )

        for entry in reversed(engine.query_audit(AuditFilter(session_ref=session_id), limit=50)):
            logger.info(f"  audit {entry.level.value:<8} {entry.action}: {entry.message}")
    finally:
        engine.shutdown()


if __name__ == "__main__":
    main()
