"""Intent classification seam with a rule-based default."""

import re
from typing import List, Pattern, Protocol, Tuple, runtime_checkable

from fraud_sentinel.core.types import Intent, IntentResult, Language


@runtime_checkable
class IntentClassifier(Protocol):
    """Anything that maps message text to an intent and a language."""

    def classify(self, text: str) -> IntentResult:
        ...


DEVANAGARI_PATTERN = re.compile(r"[\u0900-\u097F]")

MARATHI_MARKERS = (
    "कसे", "आहे", "काय", "माझ", "तुमच", "कृपया", "धन्यवाद", "नाही", "होय",
    "मला", "हवे", "हवा", "सांगा", "कधी", "केव्हा", "मिळेल", "झाले", "करा",
    "आम्ही", "तुम्ही", "पाहिजे", "असेल", "नको", "बोला", "समजत",
)

HINDI_MARKERS = (
    "है", "हैं", "का", "की", "के", "में", "मेरा", "मेरी", "कहाँ", "कहां",
    "क्या", "कब", "कैसे", "कृपया", "धन्यवाद", "नहीं", "हाँ", "चाहिए",
    "बताइए", "बताओ", "मुझे", "आप", "यह", "वह", "कर", "करो", "दो",
    "मिलेगा", "हो", "रहा", "रही", "वाला", "वाली", "अभी", "जल्दी",
)

HINGLISH_MARKERS = frozenset({
    "mera", "meri", "kaha", "kahan", "kab", "kaise", "kya", "hai", "hain",
    "nahi", "nahin", "haan", "ji", "bhai", "yaar", "chahiye", "batao",
    "bataiye", "aur", "ya", "mujhe", "aap", "apna", "apni",
    "kar", "karo", "do", "de", "mil", "milega", "ho", "raha", "rahi",
    "wala", "wali", "abhi", "jaldi", "theek", "accha", "sahi", "galat",
    "samajh", "samjha", "samjho", "dekho", "dekh", "suno",
})

HINGLISH_RATIO = 0.15
HINGLISH_MIN_MARKERS = 2


def detect_language(text: str) -> Language:
    """Guess the conversation language of a message.

    Devanagari text is Marathi when it carries more Marathi than Hindi
    markers, Hindi otherwise. Latin text is Hinglish when enough words
    are romanized Hindi markers.
    """
    if not text or not text.strip():
        return Language.ENGLISH

    if DEVANAGARI_PATTERN.search(text):
        marathi = sum(1 for marker in MARATHI_MARKERS if marker in text)
        hindi = sum(1 for marker in HINDI_MARKERS if marker in text)
        if marathi > hindi and marathi >= 1:
            return Language.MARATHI
        return Language.HINDI

    words = text.lower().split()
    hits = sum(1 for word in words if re.sub(r"[^a-z]", "", word) in HINGLISH_MARKERS)
    if words and hits / len(words) >= HINGLISH_RATIO:
        return Language.HINGLISH
    if hits >= HINGLISH_MIN_MARKERS:
        return Language.HINGLISH
    return Language.ENGLISH


# Sensitive intents first; a greeting prefix never masks them.
# Devanagari alternatives are plain substrings; \b is unreliable around matras.
INTENT_PATTERNS: List[Tuple[Intent, Pattern]] = [
    (Intent.CARD_BLOCK, re.compile(
        r"\b(block\s*(my\s+)?card|card\s*block|lost\s*(my\s+)?card|stolen\s*card|freeze\s*card)\b"
        r"|कार्ड\s*ब्लॉक|कार्ड\s*खो\s*गया|कार्ड\s*चोरी",
        re.IGNORECASE,
    )),
    (Intent.FUNDS_TRANSFER, re.compile(
        r"\b(transfer|send\s*money|bhej\w*|payment|pay\s+to)\b"
        r"|ट्रांसफर|पैसे\s*भेजो|भेजना|पाठवा",
        re.IGNORECASE,
    )),
    (Intent.OTP_REQUEST, re.compile(
        r"\b(otp|one\s*time|verification\s*code)\b|ओटीपी",
        re.IGNORECASE,
    )),
    (Intent.BALANCE_INQUIRY, re.compile(
        r"\b(balance|how\s+much|kitna|khata)\b|बैलेंस|खाता|कितना\s*पैसा|शिल्लक",
        re.IGNORECASE,
    )),
    (Intent.GREETING, re.compile(
        r"^\s*(hi|hello|hey|good\s*(morning|afternoon|evening)|namaste|namaskar)\b"
        r"|^\s*(नमस्ते|नमस्कार|हैलो)",
        re.IGNORECASE,
    )),
]


class RuleBasedIntentClassifier:
    """Regex intent table scanned in order; first match wins."""

    def __init__(self, patterns: List[Tuple[Intent, Pattern]] = None):
        self.patterns = patterns if patterns is not None else INTENT_PATTERNS

    def classify_intent(self, text: str) -> Intent:
        for intent, pattern in self.patterns:
            if pattern.search(text):
                return intent
        return Intent.GENERAL

    def classify(self, text: str) -> IntentResult:
        return IntentResult(intent=self.classify_intent(text), language=detect_language(text))
