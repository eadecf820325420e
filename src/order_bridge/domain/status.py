"""Localized names for the ERP's (Russian) document status names."""

from __future__ import annotations

_STATUS_NAMES: dict[str, dict[str, str]] = {
    "подтвержден": {"uz": "Tasdiqlandi", "uzc": "Тасдиқланди", "ru": "Подтверждён"},
    "подтверждено": {"uz": "Tasdiqlandi", "uzc": "Тасдиқланди", "ru": "Подтверждён"},
    "собирается": {"uz": "Yig'ilmoqda", "uzc": "Йиғилмоқда", "ru": "Собирается"},
    "проверяется": {"uz": "Tekshirilmoqda", "uzc": "Текширилмоқда", "ru": "Проверяется"},
    "отгружен": {"uz": "Yuklandi", "uzc": "Юкланди", "ru": "Отгружен"},
    "отгружено": {"uz": "Yuklandi", "uzc": "Юкланди", "ru": "Отгружен"},
    "доставляется": {"uz": "Yetkazilmoqda", "uzc": "Етказилмоқда", "ru": "Доставляется"},
    "отменен": {"uz": "Bekor qilindi", "uzc": "Бекор қилинди", "ru": "Отменён"},
    "отменено": {"uz": "Bekor qilindi", "uzc": "Бекор қилинди", "ru": "Отменён"},
    "новый": {"uz": "Yangi", "uzc": "Янги", "ru": "Новый"},
    "выполнен": {"uz": "Bajarildi", "uzc": "Бажарилди", "ru": "Выполнен"},
}

_UNKNOWN = {"uz": "Noma'lum", "uzc": "Номаълум", "ru": "Не указан"}


def localize_status(raw: str | None, lang: str) -> str:
    """Translate an ERP status name, falling back to the raw string."""
    if not raw or not raw.strip():
        return _UNKNOWN.get(lang, _UNKNOWN["uz"])
    key = raw.strip().lower().replace("ё", "е")
    names = _STATUS_NAMES.get(key)
    if names is None:
        return raw.strip()
    return names.get(lang, names["uz"])
