"""Plutus data decoding for inline datums (Phase 2).

Inline datums arrive as hex-encoded CBOR. They are decoded into a small tagged
variant (`Constr`, `PlutusMap`, `PlutusList`, `PlutusInt`, `PlutusBytes`) and
read through explicit `expect_*` accessors. A structurally valid datum that
simply lacks a key yields ``None``; unparseable bytes or a datum whose outer
shape is wrong raise `DatumDecodeError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

import cbor2

from .errors import DatumDecodeError

CUSTOM_DOLLAR_SYMBOL_KEY = "custom_dollar_symbol"
ADMIN_CREDENTIALS_INDEX = 5
CREATOR_SETTINGS_INDEX = 2

# CBOR tag ranges used by Plutus to encode constructor indices.
_COMPACT_TAG_BASE = 121
_COMPACT_TAG_MAX = 127
_EXTENDED_TAG_BASE = 1280
_EXTENDED_TAG_MAX = 1400
_GENERAL_CONSTR_TAG = 102


@dataclass(frozen=True)
class Constr:
    tag: int
    fields: tuple["PlutusData", ...]


@dataclass(frozen=True)
class PlutusMap:
    items: tuple[tuple["PlutusData", "PlutusData"], ...]


@dataclass(frozen=True)
class PlutusList:
    items: tuple["PlutusData", ...]


@dataclass(frozen=True)
class PlutusInt:
    value: int


@dataclass(frozen=True)
class PlutusBytes:
    value: bytes

    def hex(self) -> str:
        return self.value.hex()


PlutusData = Union[Constr, PlutusMap, PlutusList, PlutusInt, PlutusBytes]


def decode_plutus_data(datum: str | bytes) -> PlutusData:
    if isinstance(datum, str):
        try:
            raw = bytes.fromhex(datum.strip())
        except ValueError as exc:
            raise DatumDecodeError(f"datum is not valid hex: {exc}") from exc
    else:
        raw = bytes(datum)
    if not raw:
        raise DatumDecodeError("datum is empty")
    try:
        decoded = cbor2.loads(raw)
    except (cbor2.CBORDecodeError, ValueError, TypeError) as exc:
        raise DatumDecodeError(f"invalid cbor: {exc}") from exc
    return _to_plutus(decoded)


def _to_plutus(value: Any) -> PlutusData:
    if isinstance(value, cbor2.CBORTag):
        return _constr_from_tag(value)
    if isinstance(value, bool):
        raise DatumDecodeError("booleans are not plutus data")
    if isinstance(value, int):
        return PlutusInt(value)
    if isinstance(value, (bytes, bytearray)):
        return PlutusBytes(bytes(value))
    if isinstance(value, (list, tuple)):
        return PlutusList(tuple(_to_plutus(item) for item in value))
    if isinstance(value, Mapping):
        return PlutusMap(tuple((_to_plutus(key), _to_plutus(item)) for key, item in value.items()))
    raise DatumDecodeError(f"unsupported cbor item: {type(value).__name__}")


def _constr_from_tag(tagged: cbor2.CBORTag) -> Constr:
    tag = int(tagged.tag)
    if _COMPACT_TAG_BASE <= tag <= _COMPACT_TAG_MAX:
        index = tag - _COMPACT_TAG_BASE
        fields = tagged.value
    elif _EXTENDED_TAG_BASE <= tag <= _EXTENDED_TAG_MAX:
        index = tag - _EXTENDED_TAG_BASE + 7
        fields = tagged.value
    elif tag == _GENERAL_CONSTR_TAG:
        payload = tagged.value
        if not isinstance(payload, (list, tuple)) or len(payload) != 2 or not isinstance(payload[0], int):
            raise DatumDecodeError("general constructor must be [index, fields]")
        index, fields = payload
    else:
        raise DatumDecodeError(f"unsupported cbor tag: {tag}")
    if not isinstance(fields, (list, tuple)):
        raise DatumDecodeError(f"constructor {index} fields must be a list")
    return Constr(tag=int(index), fields=tuple(_to_plutus(item) for item in fields))


def expect_constr(data: PlutusData, *, tag: int | None = None, min_fields: int = 0) -> Constr:
    if not isinstance(data, Constr):
        raise DatumDecodeError(f"expected constr, got {type(data).__name__}")
    if tag is not None and data.tag != tag:
        raise DatumDecodeError(f"expected constr {tag}, got constr {data.tag}")
    if len(data.fields) < min_fields:
        raise DatumDecodeError(f"constr {data.tag} has {len(data.fields)} fields, expected >= {min_fields}")
    return data


def expect_list(data: PlutusData, *, min_items: int = 0) -> PlutusList:
    if not isinstance(data, PlutusList):
        raise DatumDecodeError(f"expected list, got {type(data).__name__}")
    if len(data.items) < min_items:
        raise DatumDecodeError(f"list has {len(data.items)} items, expected >= {min_items}")
    return data


def expect_map(data: PlutusData) -> PlutusMap:
    if not isinstance(data, PlutusMap):
        raise DatumDecodeError(f"expected map, got {type(data).__name__}")
    return data


def expect_int(data: PlutusData) -> int:
    if not isinstance(data, PlutusInt):
        raise DatumDecodeError(f"expected int, got {type(data).__name__}")
    return data.value


def expect_bytes(data: PlutusData) -> bytes:
    if not isinstance(data, PlutusBytes):
        raise DatumDecodeError(f"expected bytes, got {type(data).__name__}")
    return data.value


def map_lookup(data: PlutusMap, key: str) -> PlutusData | None:
    """Find the first value whose byte-string key decodes (UTF-8) to ``key``.

    cbor2 decodes a wire map with repeated keys to its last value, so only
    maps built directly as ``PlutusMap`` can carry duplicates here.
    """
    for raw_key, value in data.items:
        if not isinstance(raw_key, PlutusBytes):
            continue
        try:
            text = raw_key.value.decode("utf-8")
        except UnicodeDecodeError:
            continue
        if text == key:
            return value
    return None


def admin_credentials_from_settings(datum: str | bytes) -> list[str]:
    """Read the admin credential hashes from a `pz_settings` datum."""
    data = decode_plutus_data(datum)
    if isinstance(data, Constr):
        items = data.fields
    else:
        items = expect_list(data).items
    if len(items) <= ADMIN_CREDENTIALS_INDEX:
        raise DatumDecodeError(
            f"pz_settings has {len(items)} entries, expected > {ADMIN_CREDENTIALS_INDEX}"
        )
    credentials = expect_list(items[ADMIN_CREDENTIALS_INDEX])
    return [expect_bytes(item).hex() for item in credentials.items]


def custom_dollar_symbol_from_datum(datum: str | bytes) -> int | None:
    """Return the `custom_dollar_symbol` value of a CIP-68 datum, or None."""
    data = expect_constr(decode_plutus_data(datum), min_fields=CREATOR_SETTINGS_INDEX + 1)
    settings = expect_map(data.fields[CREATOR_SETTINGS_INDEX])
    value = map_lookup(settings, CUSTOM_DOLLAR_SYMBOL_KEY)
    if value is None:
        return None
    return expect_int(value)
