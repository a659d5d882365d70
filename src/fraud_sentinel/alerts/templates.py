"""Multilingual fraud alert message templates."""

from typing import Optional

from fraud_sentinel.alerts.schema import AlertChannel, AlertRequest
from fraud_sentinel.core.types import Language


ALERT_TEMPLATES = {
    "en": {
        AlertChannel.SMS: (
            "🚨 SecureBank FRAUD ALERT\n\nDear {name},\n\n"
            "Suspicious activity detected on your account.\n"
            "Risk Score: {score}/100\nIncident: {incident}\n\n"
            "✅ Account temporarily secured\n✅ Fraud Investigation Team alerted\n\n"
            "⚠️ DO NOT share OTP, PIN or password with anyone.\n\n"
            "Call us: 1800-XXX-XXXX\n— SecureBank Security Team"
        ),
        AlertChannel.RICH_MESSAGE: (
            "🚨 *SecureBank FRAUD ALERT*\n\nDear *{name}*,\n\n"
            "Suspicious activity has been detected on your account.\n\n"
            "📊 *Risk Score:* {score}/100\n🎫 *Incident:* {incident}\n\n"
            "✅ Your account has been temporarily secured\n"
            "✅ Our Fraud Investigation Team has been alerted\n"
            "✅ SLA monitoring activated (2-hour target)\n\n"
            "⚠️ *DO NOT share OTP, PIN, or password with anyone.*\n\n"
            "If you did not initiate this activity, reply *HELP* or call "
            "*1800-XXX-XXXX* immediately.\n\n— SecureBank Security Team"
        ),
        AlertChannel.VOICE: (
            "Alert from SecureBank. Dear {name}, suspicious activity has been detected "
            "on your account. Your risk score is {score} out of 100. Incident number "
            "{incident} has been created. Your account has been temporarily secured. "
            "Please do not share your OTP, PIN, or password with anyone. If you did not "
            "initiate this activity, please contact us immediately at 1800 XXX XXXX."
        ),
    },
    "hi": {
        AlertChannel.SMS: (
            "🚨 SecureBank फ्रॉड अलर्ट\n\nप्रिय {name},\n\n"
            "आपके खाते पर संदिग्ध गतिविधि पाई गई।\n"
            "रिस्क स्कोर: {score}/100\nइंसीडेंट: {incident}\n\n"
            "✅ खाता अस्थायी रूप से सुरक्षित\n✅ फ्रॉड जांच टीम को सूचित किया\n\n"
            "⚠️ OTP, PIN या पासवर्ड किसी से शेयर न करें।\n\n"
            "कॉल करें: 1800-XXX-XXXX\n— SecureBank सुरक्षा टीम"
        ),
        AlertChannel.RICH_MESSAGE: (
            "🚨 *SecureBank फ्रॉड अलर्ट*\n\nप्रिय *{name}*,\n\n"
            "आपके खाते पर संदिग्ध गतिविधि पाई गई है।\n\n"
            "📊 *रिस्क स्कोर:* {score}/100\n🎫 *इंसीडेंट:* {incident}\n\n"
            "✅ खाता अस्थायी रूप से सुरक्षित किया गया\n"
            "✅ फ्रॉड जांच टीम को सूचित किया गया\n\n"
            "⚠️ *OTP, PIN या पासवर्ड किसी से शेयर न करें।*\n\n— SecureBank सुरक्षा टीम"
        ),
        AlertChannel.VOICE: (
            "सिक्योरबैंक से अलर्ट। प्रिय {name}, आपके खाते पर संदिग्ध गतिविधि पाई गई है। "
            "आपका रिस्क स्कोर 100 में से {score} है। इंसीडेंट नंबर {incident} बनाया गया है। "
            "कृपया अपना OTP, PIN या पासवर्ड किसी से शेयर न करें।"
        ),
    },
    "mr": {
        AlertChannel.SMS: (
            "🚨 SecureBank फसवणूक अलर्ट\n\nप्रिय {name},\n\n"
            "तुमच्या खात्यावर संशयास्पद हालचाल आढळली.\n"
            "रिस्क स्कोर: {score}/100\nइन्सिडंट: {incident}\n\n"
            "✅ खाते तात्पुरते सुरक्षित\n✅ फसवणूक तपास टीमला सूचित केले\n\n"
            "⚠️ OTP, PIN किंवा पासवर्ड कोणालाही सांगू नका.\n\n"
            "कॉल करा: 1800-XXX-XXXX\n— SecureBank सुरक्षा टीम"
        ),
        AlertChannel.RICH_MESSAGE: (
            "🚨 *SecureBank फसवणूक अलर्ट*\n\nप्रिय *{name}*,\n\n"
            "तुमच्या खात्यावर संशयास्पद हालचाल आढळली आहे.\n\n"
            "📊 *रिस्क स्कोर:* {score}/100\n🎫 *इन्सिडंट:* {incident}\n\n"
            "✅ खाते तात्पुरते सुरक्षित केले\n✅ फसवणूक तपास टीमला सूचित केले\n\n"
            "⚠️ *OTP, PIN किंवा पासवर्ड कोणालाही सांगू नका.*\n\n— SecureBank सुरक्षा टीम"
        ),
        AlertChannel.VOICE: (
            "सिक्योरबँकचा अलर्ट. प्रिय {name}, तुमच्या खात्यावर संशयास्पद हालचाल आढळली आहे. "
            "तुमचा रिस्क स्कोर 100 पैकी {score} आहे. इन्सिडंट नंबर {incident} तयार केला आहे. "
            "कृपया तुमचा OTP, PIN किंवा पासवर्ड कोणालाही सांगू नका."
        ),
    },
}


def template_language(language: Optional[Language]) -> str:
    """Template key for a conversation language. Hinglish uses English."""
    if language in (Language.HINDI, Language.MARATHI):
        return language.value
    return "en"


def render_alert(channel: AlertChannel, request: AlertRequest) -> str:
    """Render the alert text for one channel."""
    templates = ALERT_TEMPLATES[template_language(request.language)]
    return templates[channel].format(
        name=request.customer_name or "Customer",
        score=request.risk_score,
        incident=request.incident_id or "N/A",
    )
