"""
Machine translation through an external provider.

The provider is chosen by ``TRANSLATION_PROVIDER`` (google, deepl, openai or
libre). Failures never propagate: the original text is returned and the error
is logged.
"""

import logging

import requests

from storefront.settings import get_settings

logger = logging.getLogger(__name__)

GOOGLE_URL = "https://translation.googleapis.com/language/translate/v2"
DEEPL_URL = "https://api-free.deepl.com/v2/translate"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
LIBRE_URL = "https://libretranslate.com/translate"

LANGUAGE_NAMES = {
    "en": "English",
    "fr": "French",
    "ar": "Arabic",
    "es": "Spanish",
    "de": "German",
}


class TranslationError(Exception):
    pass


def _post_json(url: str, payload: dict, headers: dict | None = None, params: dict | None = None) -> dict:
    settings = get_settings()
    try:
        response = requests.post(
            url,
            json=payload,
            headers=headers,
            params=params,
            timeout=settings.translation_timeout_seconds,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        raise TranslationError(str(e)) from e
    return response.json()

def translate_with_google(text: str, target: str, source: str, api_key: str | None) -> str:
    if not api_key:
        logger.warning("Google Translate API key not configured")
        return text
    data = _post_json(
        GOOGLE_URL,
        {"q": text, "source": source, "target": target, "format": "text"},
        params={"key": api_key},
    )
    return data["data"]["translations"][0]["translatedText"]

def translate_with_deepl(text: str, target: str, source: str, api_key: str | None) -> str:
    if not api_key:
        logger.warning("DeepL API key not configured")
        return text
    data = _post_json(
        DEEPL_URL,
        {"text": [text], "source_lang": source.upper(), "target_lang": target.upper()},
        headers={"Authorization": f"DeepL-Auth-Key {api_key}"},
    )
    return data["translations"][0]["text"]

def translate_with_openai(text: str, target: str, source: str, api_key: str | None) -> str:
    if not api_key:
        logger.warning("OpenAI API key not configured")
        return text
    source_name = LANGUAGE_NAMES.get(source, source)
    target_name = LANGUAGE_NAMES.get(target, target)
    data = _post_json(
        OPENAI_URL,
        {
            "model": "gpt-3.5-turbo",
            "messages": [
                {
                    "role": "system",
                    "content": (
                        f"You are a professional translator. Translate the following text from "
                        f"{source_name} to {target_name}. Return ONLY the translated text, nothing else."
                    ),
                },
                {"role": "user", "content": text},
            ],
            "temperature": 0.3,
        },
        headers={"Authorization": f"Bearer {api_key}"},
    )
    return data["choices"][0]["message"]["content"].strip()

def translate_with_libre(text: str, target: str, source: str, api_key: str | None) -> str:
    payload = {"q": text, "source": source, "target": target, "format": "text"}
    if api_key:
        payload["api_key"] = api_key
    data = _post_json(LIBRE_URL, payload)
    return data["translatedText"]

PROVIDERS = {
    "google": translate_with_google,
    "deepl": translate_with_deepl,
    "openai": translate_with_openai,
    "libre": translate_with_libre,
}

def translate_text(text: str, target_lang: str, source_lang: str | None = None) -> str:
    settings = get_settings()
    source_lang = source_lang or settings.translation_source_language
    if not text or not text.strip():
        return text
    if source_lang == target_lang:
        return text

    provider = PROVIDERS.get(settings.translation_provider)
    if provider is None:
        logger.warning("Unknown translation provider %r", settings.translation_provider)
        return text
    try:
        return provider(text, target_lang, source_lang, settings.translation_api_key)
    except (TranslationError, KeyError, IndexError, ValueError) as e:
        logger.warning("Translation via %s failed: %s", settings.translation_provider, e)
        return text

def translate_content(content: dict) -> dict:
    """Translate every string value of ``content`` into each configured target language"""
    settings = get_settings()
    translations = {settings.translation_source_language: content}
    for target_lang in settings.translation_target_languages:
        translations[target_lang] = {
            key: translate_text(value, target_lang) if isinstance(value, str) else value
            for key, value in content.items()
        }
    return translations
