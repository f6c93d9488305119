"""
Tagged item keys.

Dashboard listings mix folders and files, so each item carries a key of the
form ``folder-<id>`` or ``file-<id>``.  Keys are parsed once at the service
boundary into ``ItemKey`` values; nothing downstream looks at the strings.
"""

from __future__ import annotations

import enum
from typing import Iterable, List, NamedTuple

from teamvault.engine.errors import ValidationError


class ItemKind(str, enum.Enum):
    FOLDER = "folder"
    FILE = "file"


class ItemKey(NamedTuple):
    kind: ItemKind
    id: int

    def __str__(self) -> str:
        return f"{self.kind.value}-{self.id}"


def folder_item(folder_id: int) -> str:
    return str(ItemKey(ItemKind.FOLDER, folder_id))


def file_item(file_id: int) -> str:
    return str(ItemKey(ItemKind.FILE, file_id))


def parse_item_key(raw: str) -> ItemKey:
    """
    Parse ``folder-12`` / ``file-7`` into an ItemKey.

    Raises:
        ValidationError: unknown prefix or non-numeric id.
    """
    if isinstance(raw, ItemKey):
        return raw
    kind, sep, ident = str(raw).partition("-")
    if not sep:
        raise ValidationError(f"Malformed item key '{raw}'", field="item_keys")
    try:
        item_kind = ItemKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown item kind in key '{raw}'", field="item_keys") from None
    if not ident.isdigit():
        raise ValidationError(f"Malformed item id in key '{raw}'", field="item_keys")
    return ItemKey(item_kind, int(ident))


def parse_item_keys(raw_keys: Iterable[str]) -> List[ItemKey]:
    """Parse a batch of keys, dropping duplicates while keeping order."""
    return list(dict.fromkeys(parse_item_key(k) for k in raw_keys))
