"""Example: a customer coached by a scammer into sharing an OTP."""

from fraud_sentinel.common.logging import get_logger
from fraud_sentinel.core.types import SessionMeta
from fraud_sentinel.orchestration.engine import RiskEngine

logger = get_logger(__name__, "INFO")


def example_scam_call_scenario():
    """
    Example scenario: remote-access scam in Hinglish.

    1. Customer asks for a transfer while stressed
    2. Repeated OTP mentions and a "bank officer" on the line raise risk
    3. Medium risk on a transfer asks for step-up verification
    4. High risk blocks the session, opens an incident and alerts the customer
    """
    engine = RiskEngine()
    meta = SessionMeta(customer_name="Sunita", phone="+919811111111")

    turns = [
        ("Mujhe paise bhejne hai, jaldi karo", "fearful"),
        ("Bank officer bol raha hai ki account band ho jayega", "fearful"),
        ("Woh otp maang raha hai, rs 75000 transfer karna hai", "fearful"),
        ("Anydesk install kar diya, otp bata du?", "surprised"),
    ]

    results = []
    for text, emotion in turns:
        result = engine.analyze("sess_hinglish_01", text, emotion=emotion, session_meta=meta)
        logger.info(
            f"{result.risk_score:>3} {result.risk_level.value:<6} "
            f"{result.control_state.value:<18} {result.language.value} {result.triggers}"
        )
        results.append(result)

    engine.flush(timeout=10)
    engine.shutdown()
    return results


if __name__ == "__main__":
    final = example_scam_call_scenario()[-1]
    print(f"Final state: {final.control_state.value}, incident {final.incident_id}")
