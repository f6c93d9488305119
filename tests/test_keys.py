"""Unit tests for teamvault.documents.keys — tagged item keys."""

import pytest

from teamvault.documents.keys import (
    ItemKey,
    ItemKind,
    file_item,
    folder_item,
    parse_item_key,
    parse_item_keys,
)
from teamvault.engine.errors import ValidationError


class TestItemKeys:

    def test_format(self):
        assert folder_item(12) == "folder-12"
        assert file_item(7) == "file-7"

    def test_parse(self):
        assert parse_item_key("folder-12") == ItemKey(ItemKind.FOLDER, 12)
        assert parse_item_key("file-7") == ItemKey(ItemKind.FILE, 7)

    def test_parse_passthrough(self):
        key = ItemKey(ItemKind.FILE, 1)
        assert parse_item_key(key) is key

    @pytest.mark.parametrize("raw", ["folder12", "widget-3", "file-abc", "file-", "file--1"])
    def test_parse_invalid(self, raw):
        with pytest.raises(ValidationError):
            parse_item_key(raw)

    def test_parse_many_dedupes(self):
        keys = parse_item_keys(["file-1", "folder-2", "file-1"])
        assert keys == [ItemKey(ItemKind.FILE, 1), ItemKey(ItemKind.FOLDER, 2)]
