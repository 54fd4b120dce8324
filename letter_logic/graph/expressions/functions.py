from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Protocol

from letter_logic.graph.expressions.errors import EvalError, TypeMismatch
from letter_logic.graph.expressions.values import is_number, is_truthy, type_family
from letter_logic.graph.formatting import (
    coerce_date,
    format_currency,
    format_date,
    format_number,
    to_text,
)


class FunctionScope(Protocol):
    as_of: date
    locale: str


BuiltinFunction = Callable[[list[object], FunctionScope], object]


def _arity(name: str, args: list[object], minimum: int, maximum: int | None = None) -> None:
    if len(args) < minimum or (maximum is not None and len(args) > maximum):
        expected = str(minimum) if maximum == minimum else f"{minimum}..{maximum if maximum is not None else 'n'}"
        raise EvalError(f"{name}() expects {expected} argument(s), got {len(args)}.")


def _numbers(name: str, args: list[object]) -> list[float | int]:
    if args and isinstance(args[0], (list, tuple)):
        _arity(name, args, 1, 2)
        items = list(args[0])
        if len(args) == 2:
            field = str(args[1])
            items = [item.get(field) if isinstance(item, Mapping) else None for item in items]
    else:
        items = list(args)

    numbers: list[float | int] = []
    for item in items:
        if item is None:
            continue
        if not is_number(item):
            raise TypeMismatch(f"{name}() expects numbers, got {type_family(item)}.")
        numbers.append(item)  # type: ignore[arg-type]
    return numbers


def _date_arg(name: str, value: object) -> date:
    parsed = coerce_date(value)
    if parsed is None:
        raise TypeMismatch(f"{name}() expects a date, got {type_family(value)}.")
    return parsed


def _sum(args: list[object], scope: FunctionScope) -> object:
    return sum(_numbers("SUM", args))


def _count(args: list[object], scope: FunctionScope) -> object:
    _arity("COUNT", args, 1, 1)
    value = args[0]
    if value is None:
        return 0
    if isinstance(value, (list, tuple, str, dict)):
        return len(value)
    raise TypeMismatch(f"COUNT() expects an array, got {type_family(value)}.")


def _min(args: list[object], scope: FunctionScope) -> object:
    numbers = _numbers("MIN", args)
    return min(numbers) if numbers else None


def _max(args: list[object], scope: FunctionScope) -> object:
    numbers = _numbers("MAX", args)
    return max(numbers) if numbers else None


def _avg(args: list[object], scope: FunctionScope) -> object:
    numbers = _numbers("AVG", args)
    if not numbers:
        return None
    return sum(numbers) / len(numbers)


def _round(args: list[object], scope: FunctionScope) -> object:
    _arity("ROUND", args, 1, 2)
    value = args[0]
    places = args[1] if len(args) == 2 else 0
    if not is_number(value) or not isinstance(places, int):
        raise TypeMismatch("ROUND() expects a number and an integer precision.")
    rounded = Decimal(str(value)).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    return int(rounded) if places <= 0 else float(rounded)


def _abs(args: list[object], scope: FunctionScope) -> object:
    _arity("ABS", args, 1, 1)
    if not is_number(args[0]):
        raise TypeMismatch(f"ABS() expects a number, got {type_family(args[0])}.")
    return abs(args[0])  # type: ignore[arg-type]


def _len(args: list[object], scope: FunctionScope) -> object:
    _arity("LEN", args, 1, 1)
    value = args[0]
    if value is None:
        return 0
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    raise TypeMismatch(f"LEN() expects a string or array, got {type_family(value)}.")


def _text_function(name: str, transform: Callable[[str], str]) -> BuiltinFunction:
    def _apply(args: list[object], scope: FunctionScope) -> object:
        _arity(name, args, 1, 1)
        return transform(to_text(args[0]))

    return _apply


def _concat(args: list[object], scope: FunctionScope) -> object:
    return "".join(to_text(item) for item in args)


def _contains(args: list[object], scope: FunctionScope) -> object:
    _arity("CONTAINS", args, 2, 2)
    haystack, needle = args
    if haystack is None:
        return False
    if isinstance(haystack, str):
        return to_text(needle) in haystack
    if isinstance(haystack, (list, tuple)):
        return needle in haystack
    raise TypeMismatch(f"CONTAINS() expects a string or array, got {type_family(haystack)}.")


def _starts_with(args: list[object], scope: FunctionScope) -> object:
    _arity("STARTS_WITH", args, 2, 2)
    if args[0] is None:
        return False
    return to_text(args[0]).startswith(to_text(args[1]))


def _matches(args: list[object], scope: FunctionScope) -> object:
    _arity("MATCHES", args, 2, 2)
    if args[0] is None:
        return False
    try:
        return re.search(to_text(args[1]), to_text(args[0])) is not None
    except re.error as exc:
        raise EvalError(f"MATCHES() received an invalid pattern: {exc}") from exc


def _coalesce(args: list[object], scope: FunctionScope) -> object:
    return next((item for item in args if item is not None), None)


def _if(args: list[object], scope: FunctionScope) -> object:
    _arity("IF", args, 2, 3)
    otherwise = args[2] if len(args) == 3 else None
    return args[1] if is_truthy(args[0]) else otherwise


def _today(args: list[object], scope: FunctionScope) -> object:
    _arity("TODAY", args, 0, 0)
    return scope.as_of


def _date(args: list[object], scope: FunctionScope) -> object:
    _arity("DATE", args, 1, 1)
    return _date_arg("DATE", args[0])


def _add_days(args: list[object], scope: FunctionScope) -> object:
    _arity("ADD_DAYS", args, 2, 2)
    if not isinstance(args[1], int) or isinstance(args[1], bool):
        raise TypeMismatch("ADD_DAYS() expects an integer day count.")
    return _date_arg("ADD_DAYS", args[0]) + timedelta(days=args[1])


def _whole_years(start: date, end: date) -> int:
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def _date_diff(args: list[object], scope: FunctionScope) -> object:
    _arity("DATE_DIFF", args, 2, 3)
    start = _date_arg("DATE_DIFF", args[0])
    end = _date_arg("DATE_DIFF", args[1])
    unit = to_text(args[2]).lower() if len(args) == 3 else "days"
    if unit == "days":
        return (end - start).days
    if unit == "weeks":
        return (end - start).days // 7
    if unit == "months":
        months = (end.year - start.year) * 12 + (end.month - start.month)
        if end.day < start.day:
            months -= 1
        return months
    if unit == "years":
        return _whole_years(start, end)
    raise EvalError(f"DATE_DIFF() does not support unit '{unit}'.")


def _age(args: list[object], scope: FunctionScope) -> object:
    _arity("AGE", args, 1, 2)
    birth = _date_arg("AGE", args[0])
    as_of = _date_arg("AGE", args[1]) if len(args) == 2 else scope.as_of
    return _whole_years(birth, as_of)


def _format_date(args: list[object], scope: FunctionScope) -> object:
    _arity("FORMAT_DATE", args, 1, 2)
    pattern = to_text(args[1]) if len(args) == 2 else None
    return format_date(_date_arg("FORMAT_DATE", args[0]), pattern)


def _format_number(args: list[object], scope: FunctionScope) -> object:
    _arity("FORMAT_NUMBER", args, 1, 2)
    decimals = args[1] if len(args) == 2 else None
    if decimals is not None and not isinstance(decimals, int):
        raise TypeMismatch("FORMAT_NUMBER() expects an integer decimal count.")
    return format_number(args[0], decimals=decimals, locale=scope.locale)


def _format_currency(args: list[object], scope: FunctionScope) -> object:
    _arity("FORMAT_CURRENCY", args, 1, 2)
    symbol = to_text(args[1]) if len(args) == 2 else "$"
    return format_currency(args[0], symbol=symbol, locale=scope.locale)


BUILTIN_FUNCTIONS: dict[str, BuiltinFunction] = {
    "SUM": _sum,
    "COUNT": _count,
    "MIN": _min,
    "MAX": _max,
    "AVG": _avg,
    "ROUND": _round,
    "ABS": _abs,
    "LEN": _len,
    "LOWER": _text_function("LOWER", str.lower),
    "UPPER": _text_function("UPPER", str.upper),
    "TRIM": _text_function("TRIM", str.strip),
    "CONCAT": _concat,
    "CONTAINS": _contains,
    "STARTS_WITH": _starts_with,
    "MATCHES": _matches,
    "COALESCE": _coalesce,
    "IF": _if,
    "TODAY": _today,
    "DATE": _date,
    "ADD_DAYS": _add_days,
    "DATE_DIFF": _date_diff,
    "AGE": _age,
    "FORMAT_DATE": _format_date,
    "FORMAT_NUMBER": _format_number,
    "FORMAT_CURRENCY": _format_currency,
}
