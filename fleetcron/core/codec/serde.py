# fleetcron/core/codec/serde.py
"""JSON rendering of monitoring results for the CLI."""

from __future__ import annotations
import dataclasses
import datetime as dt
import json
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence, Union, cast

Json = Union[None, bool, int, float, str, List['Json'], Dict[str, 'Json']]


class SerializationError(TypeError):
    pass


def to_jsonable(value: Any) -> Json:
    """
    Convert a monitoring value to plain JSON.

    Datetimes become ISO-8601 strings, timedeltas become seconds, enums their
    value, dataclasses a dict of their fields plus any public properties
    (so HistoryPage.has_more and TaskStats.success_rate are included).
    """
    if isinstance(value, Enum):
        return to_jsonable(value.value)

    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()

    if isinstance(value, dt.timedelta):
        return value.total_seconds()

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        data: Dict[str, Json] = {}
        for field in dataclasses.fields(value):
            data[field.name] = to_jsonable(getattr(value, field.name))
        for name, attr in vars(type(value)).items():
            if isinstance(attr, property) and not name.startswith('_'):
                data[name] = to_jsonable(getattr(value, name))
        return data

    if isinstance(value, Mapping):
        mapping = cast(Mapping[object, object], value)
        return {str(key): to_jsonable(item) for key, item in mapping.items()}

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        seq = cast(Sequence[object], value)
        return [to_jsonable(item) for item in seq]

    raise SerializationError(f'Cannot serialize value of type {type(value).__name__}')


def dumps_json(value: Any, *, indent: int | None = 2) -> str:
    return json.dumps(
        to_jsonable(value),
        ensure_ascii=False,
        indent=indent,
        allow_nan=False,
    )
