"""Chat-template prompt construction for the translator model."""

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "pl": "Polish",
    "ru": "Russian",
    "uk": "Ukrainian",
    "ar": "Arabic",
    "hi": "Hindi",
    "bn": "Bengali",
    "ta": "Tamil",
    "te": "Telugu",
    "mr": "Marathi",
    "gu": "Gujarati",
    "kn": "Kannada",
    "ml": "Malayalam",
    "pa": "Punjabi",
    "ur": "Urdu",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "vi": "Vietnamese",
    "th": "Thai",
    "id": "Indonesian",
    "ms": "Malay",
    "tr": "Turkish",
    "sv": "Swedish",
    "da": "Danish",
    "no": "Norwegian",
    "fi": "Finnish",
    "el": "Greek",
    "cs": "Czech",
    "ro": "Romanian",
    "hu": "Hungarian",
    "he": "Hebrew",
    "fa": "Persian",
    "sw": "Swahili",
}


def language_display_name(code: str) -> str:
    """English name for an ISO 639-1 code; unknown codes pass through unchanged."""
    return LANGUAGE_NAMES.get(code, code)


def build_translation_prompt(text: str, target_language: str, end_of_turn: str = "<|end|>") -> str:
    """Build the system/user/assistant prompt asking for a bare translation.

    ``end_of_turn`` closes each turn: ``<|end|>`` for Phi-3 models, ``</s>``
    for Zephyr-style chat models.
    """
    lang_name = language_display_name(target_language)
    return (
        "<|system|>\n"
        f"You are a professional translator. Translate the given text accurately to {lang_name}. "
        f"Output ONLY the translation, nothing else.{end_of_turn}\n"
        "<|user|>\n"
        f"Translate the following text to {lang_name}:\n\n{text}{end_of_turn}\n"
        "<|assistant|>\n"
    )
