"""Helpers for bilingual (en/fr) strings."""

from geoview_config.core.config import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES

LocalizedString = dict[str, str]


def normalize_localized(value: str | dict | None) -> LocalizedString:
    """
    Normalize a localized value to a mapping covering every supported language.

    A plain string is used for every language. A mapping missing a language is
    back-filled from the other one.

    Args:
        value: String, language mapping or None

    Returns:
        Mapping of language to string (empty if no value was given)
    """
    if value is None:
        return {}
    if not isinstance(value, dict):
        text = str(value)
        return {lang: text for lang in SUPPORTED_LANGUAGES}

    known = {lang: str(value[lang]) for lang in SUPPORTED_LANGUAGES if value.get(lang) not in (None, "")}
    if not known:
        return {}
    fallback = next(iter(known.values()))
    return {lang: known.get(lang, fallback) for lang in SUPPORTED_LANGUAGES}


def get_localized(value: LocalizedString | None, language: str = DEFAULT_LANGUAGE) -> str | None:
    """Get the text for a language, falling back to any available language."""
    if not value:
        return None
    return value.get(language) or next(iter(value.values()), None)
