"""Localized protective responses returned instead of the normal reply."""

from fraud_sentinel.core.types import Language, ResponseKind


STEP_UP_VERIFY = {
    Language.ENGLISH: (
        "For your security, additional verification is required. Could you please "
        "confirm your registered phone number and date of birth?"
    ),
    Language.HINDI: (
        "आपकी सुरक्षा के लिए अतिरिक्त सत्यापन आवश्यक है। कृपया अपना रजिस्टर्ड फोन नंबर "
        "और जन्म तिथि बताएं।"
    ),
    Language.MARATHI: (
        "तुमच्या सुरक्षिततेसाठी अतिरिक्त पडताळणी आवश्यक आहे. कृपया तुमचा नोंदणीकृत फोन "
        "नंबर आणि जन्मतारीख सांगा."
    ),
    Language.HINGLISH: (
        "Aapki security ke liye additional verification zaruri hai. Apna registered "
        "phone number aur date of birth bataiye."
    ),
}

HIGH_RISK_BLOCK = {
    Language.ENGLISH: (
        "For your security, additional verification is required. 🔐 I have alerted our "
        "Fraud Investigation Team. They will contact you shortly. For your protection, "
        "this transaction has been paused."
    ),
    Language.HINDI: (
        "आपकी सुरक्षा के लिए अतिरिक्त सत्यापन आवश्यक है। 🔐 मैंने हमारी फ्रॉड जांच टीम को "
        "सूचित कर दिया है। वे जल्द ही आपसे संपर्क करेंगे। आपकी सुरक्षा के लिए यह "
        "ट्रांज़ैक्शन रोक दिया गया है।"
    ),
    Language.MARATHI: (
        "तुमच्या सुरक्षिततेसाठी अतिरिक्त पडताळणी आवश्यक आहे. 🔐 मी आमच्या फसवणूक तपास "
        "टीमला सूचित केले आहे. ते लवकरच तुमच्याशी संपर्क करतील. तुमच्या संरक्षणासाठी हा "
        "व्यवहार थांबवला आहे."
    ),
    Language.HINGLISH: (
        "Aapki security ke liye additional verification zaruri hai. 🔐 Maine hamari Fraud "
        "Investigation Team ko alert kar diya hai. Woh jald hi aapse contact karenge. "
        "Aapki safety ke liye yeh transaction rok diya gaya hai."
    ),
}

_RESPONSES = {
    ResponseKind.STEP_UP: STEP_UP_VERIFY,
    ResponseKind.BLOCK: HIGH_RISK_BLOCK,
}


def protective_response(kind: ResponseKind, language: Language) -> str:
    """Text for a step-up or block response, English when untranslated."""
    table = _RESPONSES.get(kind)
    if table is None:
        raise ValueError(f"No protective response for {kind}")
    return table.get(language, table[Language.ENGLISH])
