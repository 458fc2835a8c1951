"""
JSON helpers backed by orjson
=============================

Mirrors the parts of the standard json interface the attachment forms use
(delete lists in multipart bodies, API payloads, fixtures) on top of orjson.
"""

from typing import Any, Callable, Optional

import orjson


def dumps(obj: Any, indent: Optional[int] = None, default: Optional[Callable[[Any], Any]] = None) -> str:
    """
    Serialize obj to a JSON string.

    Args:
        obj: Object to serialize
        indent: Any non-None value pretty prints with two spaces
        default: Callable for objects orjson cannot serialize (e.g. default=str)

    Returns:
        JSON text (orjson itself returns bytes)
    """
    option = orjson.OPT_SERIALIZE_UUID | orjson.OPT_NON_STR_KEYS
    if indent is not None:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, default=default, option=option).decode("utf-8")


def loads(s) -> Any:
    """Deserialize JSON from str or bytes."""
    return orjson.loads(s)


def dump(obj: Any, fp, indent: Optional[int] = None) -> None:
    """Serialize obj and write it to a text file-like object."""
    fp.write(dumps(obj, indent=indent))


def load(fp) -> Any:
    """Deserialize JSON read from a file-like object."""
    return loads(fp.read())


def encode_id_list(ids) -> str:
    """Encode server ids as the JSON array the backend expects in form fields."""
    return dumps([str(value) for value in ids])


JSONDecodeError = orjson.JSONDecodeError
