"""Language tags accepted by the relay, with their display names and TTS voices."""

DEFAULT_VOICE = "alloy"

# tag: (name used in translation prompts, TTS voice)
LANGUAGES = {
    "af": ("Afrikaans", "alloy"),
    "sq": ("Albanian", "alloy"),
    "am": ("Amharic", "alloy"),
    "ar": ("Arabic", "nova"),
    "hy": ("Armenian", "alloy"),
    "az": ("Azerbaijani", "alloy"),
    "eu": ("Basque", "alloy"),
    "be": ("Belarusian", "alloy"),
    "bn": ("Bengali", "nova"),
    "bs": ("Bosnian", "alloy"),
    "bg": ("Bulgarian", "alloy"),
    "ca": ("Catalan", "nova"),
    "zh-CN": ("Chinese Simplified", "nova"),
    "zh-TW": ("Chinese Traditional", "nova"),
    "hr": ("Croatian", "alloy"),
    "cs": ("Czech", "alloy"),
    "da": ("Danish", "nova"),
    "nl": ("Dutch", "nova"),
    "en": ("English", "alloy"),
    "et": ("Estonian", "alloy"),
    "fi": ("Finnish", "nova"),
    "fr": ("French", "nova"),
    "ka": ("Georgian", "alloy"),
    "de": ("German", "nova"),
    "el": ("Greek", "nova"),
    "gu": ("Gujarati", "alloy"),
    "ht": ("Haitian Creole", "alloy"),
    "he": ("Hebrew", "nova"),
    "hi": ("Hindi", "nova"),
    "hu": ("Hungarian", "alloy"),
    "is": ("Icelandic", "alloy"),
    "ig": ("Igbo", "alloy"),
    "id": ("Indonesian", "nova"),
    "ga": ("Irish", "alloy"),
    "it": ("Italian", "nova"),
    "ja": ("Japanese", "nova"),
    "jv": ("Javanese", "alloy"),
    "kk": ("Kazakh", "alloy"),
    "km": ("Khmer", "alloy"),
    "ko": ("Korean", "nova"),
    "ku": ("Kurdish", "alloy"),
    "lv": ("Latvian", "alloy"),
    "lt": ("Lithuanian", "alloy"),
    "mk": ("Macedonian", "alloy"),
    "ms": ("Malay", "nova"),
    "mt": ("Maltese", "alloy"),
    "mr": ("Marathi", "nova"),
    "mn": ("Mongolian", "alloy"),
    "ne": ("Nepali", "alloy"),
    "no": ("Norwegian", "nova"),
    "fa": ("Persian", "nova"),
    "pl": ("Polish", "nova"),
    "pt": ("Portuguese", "nova"),
    "pa": ("Punjabi", "nova"),
    "ro": ("Romanian", "nova"),
    "ru": ("Russian", "alloy"),
    "sr": ("Serbian", "alloy"),
    "si": ("Sinhala", "alloy"),
    "sk": ("Slovak", "alloy"),
    "sl": ("Slovenian", "alloy"),
    "so": ("Somali", "alloy"),
    "es": ("Spanish", "nova"),
    "sw": ("Swahili", "alloy"),
    "sv": ("Swedish", "nova"),
    "ta": ("Tamil", "nova"),
    "te": ("Telugu", "nova"),
    "th": ("Thai", "nova"),
    "tr": ("Turkish", "nova"),
    "uk": ("Ukrainian", "nova"),
    "ur": ("Urdu", "nova"),
    "uz": ("Uzbek", "alloy"),
    "vi": ("Vietnamese", "nova"),
    "cy": ("Welsh", "alloy"),
    "xh": ("Xhosa", "alloy"),
    "yo": ("Yoruba", "alloy"),
    "zu": ("Zulu", "alloy"),
}


def language_name(tag: str) -> str:
    return LANGUAGES.get(tag, (tag, DEFAULT_VOICE))[0]


def voice_for(tag: str) -> str:
    return LANGUAGES.get(tag, (tag, DEFAULT_VOICE))[1]


def transcription_hint(tag: str) -> str:
    """Whisper takes ISO-639-1 only, so regional tags like zh-CN become zh."""
    return tag.split("-")[0].lower()
