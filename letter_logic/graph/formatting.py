"""
Render-time value formatting.

Values are stored raw in the variable context and only formatted here, when a
variable fragment is serialized, so arithmetic on computed values keeps
working until the last moment.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


FormatKind = Literal["text", "date", "currency", "phone", "address", "number", "percentage"]
TextCase = Literal["upper", "lower", "title", "sentence"]

DATE_SHORTHANDS = {
    "YMD": "%Y-%m-%d",
    "DMY": "%d/%m/%Y",
    "MDY": "%m/%d/%Y",
    "LONG": "%B %d, %Y",
}
# Editor-style tokens, longest first.
DATE_TOKENS = (
    ("YYYY", "%Y"),
    ("MMMM", "%B"),
    ("MM", "%m"),
    ("DD", "%d"),
    ("HH", "%H"),
    ("mm", "%M"),
    ("ss", "%S"),
)
# (thousands separator, decimal separator) keyed by language subtag.
LOCALE_SEPARATORS = {
    "en": (",", "."),
    "es": (".", ","),
    "de": (".", ","),
    "fr": (" ", ","),
    "pt": (".", ","),
}
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ](\d{2}):(\d{2})(?::(\d{2}))?.*)?$")


class FormatOptions(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    kind: FormatKind = "text"
    pattern: str | None = None
    decimals: int | None = None
    currency_symbol: str = "$"
    text_case: TextCase | None = None
    locale: str | None = None
    non_breaking_space: bool = False

    @model_validator(mode="before")
    @classmethod
    def _expand_shorthand(cls, value: object) -> object:
        if isinstance(value, str):
            value = {"pattern": value}
        if not isinstance(value, Mapping):
            return value

        expanded = dict(value)
        if "kind" in expanded:
            return expanded

        pattern = expanded.get("pattern")
        if not isinstance(pattern, str):
            return expanded

        lowered = pattern.strip().lower()
        if lowered in {"currency", "phone", "address", "number", "percentage", "text"}:
            expanded["kind"] = lowered
            expanded.pop("pattern")
        elif lowered == "custom":
            expanded.pop("pattern")
        elif pattern.upper() in DATE_SHORTHANDS or "%" in pattern or "YYYY" in pattern:
            expanded["kind"] = "date"
        return expanded


DEFAULT_FORMAT = FormatOptions()


def format_value(value: object, options: FormatOptions | None = None, *, locale: str = "en-US") -> str:
    opts = options or DEFAULT_FORMAT
    active_locale = opts.locale or locale

    if value is None:
        return ""

    if opts.kind == "date":
        rendered = format_date(value, opts.pattern)
    elif opts.kind == "currency":
        rendered = format_currency(value, symbol=opts.currency_symbol, decimals=opts.decimals, locale=active_locale)
    elif opts.kind == "number":
        rendered = format_number(value, decimals=opts.decimals, locale=active_locale)
    elif opts.kind == "percentage":
        rendered = f"{format_number(value, decimals=opts.decimals or 0, locale=active_locale)}%"
    elif opts.kind == "phone":
        rendered = format_phone(value)
    elif opts.kind == "address":
        rendered = format_address(value)
    else:
        rendered = to_text(value)

    if opts.text_case is not None:
        rendered = apply_text_case(rendered, opts.text_case)
    if opts.non_breaking_space:
        rendered = rendered.replace(" ", "\u00a0")
    return rendered


def to_text(value: object) -> str:
    """Plain string form used for concatenation and unformatted output."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list):
        return ", ".join(to_text(item) for item in value)
    return str(value)


def coerce_date(value: object) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        match = ISO_DATE_RE.match(value.strip())
        if match:
            try:
                return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
            except ValueError:
                return None
    return None


def strftime_pattern(pattern: str | None) -> str:
    if not pattern:
        return DATE_SHORTHANDS["YMD"]
    shorthand = DATE_SHORTHANDS.get(pattern.upper())
    if shorthand:
        return shorthand
    if "%" in pattern:
        return pattern
    converted = pattern
    for token, directive in DATE_TOKENS:
        converted = converted.replace(token, directive)
    return converted


def format_date(value: object, pattern: str | None = None) -> str:
    if isinstance(value, datetime):
        return value.strftime(strftime_pattern(pattern))
    parsed = coerce_date(value)
    if parsed is None:
        return to_text(value)
    return parsed.strftime(strftime_pattern(pattern))


def _decimal(value: object) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        cleaned = value.replace(",", "").replace("$", "").strip()
        try:
            return Decimal(cleaned)
        except ArithmeticError:
            return None
    return None


def format_number(value: object, *, decimals: int | None = None, locale: str = "en-US") -> str:
    amount = _decimal(value)
    if amount is None or not amount.is_finite():
        return to_text(value)

    if decimals is None:
        decimals = 0 if amount == amount.to_integral_value() else max(0, -amount.as_tuple().exponent)
    quantized = amount.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)
    sign = "-" if quantized < 0 else ""
    whole, _, fraction = f"{abs(quantized):f}".partition(".")

    thousands, decimal_mark = LOCALE_SEPARATORS.get(locale.split("-")[0].lower(), LOCALE_SEPARATORS["en"])
    groups: list[str] = []
    while len(whole) > 3:
        groups.insert(0, whole[-3:])
        whole = whole[:-3]
    groups.insert(0, whole)
    rendered = thousands.join(groups)
    if decimals > 0:
        rendered = f"{rendered}{decimal_mark}{fraction}"
    return f"{sign}{rendered}"


def format_currency(
    value: object,
    *,
    symbol: str = "$",
    decimals: int | None = None,
    locale: str = "en-US",
) -> str:
    if _decimal(value) is None:
        return to_text(value)
    rendered = format_number(value, decimals=2 if decimals is None else decimals, locale=locale)
    if rendered.startswith("-"):
        return f"-{symbol}{rendered[1:]}"
    return f"{symbol}{rendered}"


def format_phone(value: object) -> str:
    digits = re.sub(r"\D", "", to_text(value))
    if len(digits) == 11 and digits.startswith("1"):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return to_text(value)


def format_address(value: object) -> str:
    if not isinstance(value, Mapping):
        return to_text(value)
    address: dict[str, Any] = dict(value)
    lines = [
        to_text(address.get(key))
        for key in ("line1", "line2", "street", "street2")
        if address.get(key)
    ]
    city = to_text(address.get("city"))
    state = to_text(address.get("state"))
    postal = to_text(address.get("zip") or address.get("postalCode") or address.get("postal_code"))
    locality = ", ".join(part for part in (city, state) if part)
    if postal:
        locality = f"{locality} {postal}".strip()
    if locality:
        lines.append(locality)
    return "\n".join(lines)


def apply_text_case(text: str, text_case: TextCase) -> str:
    if text_case == "upper":
        return text.upper()
    if text_case == "lower":
        return text.lower()
    if text_case == "title":
        return text.title()
    if not text:
        return text
    return text[0].upper() + text[1:].lower()
