from __future__ import annotations

import allure
import pytest

from feed_archive.errors import CacheValidationError
from feed_archive.stores import CacheStores
from feed_archive.stores.side_channel import comment_reply_key

pytestmark = [
    allure.epic("Feed Archive Cache"),
    allure.feature("Side-Channel Stores"),
]

URL = "https://mp.example.com/s/article-a1"


def test_resource_map_keeps_resource_order(stores: CacheStores) -> None:
    resources = ["https://cdn.example.com/b.css", "https://cdn.example.com/a.js"]

    stores.resource_maps.put(URL, "acct-1", resources)
    stored = stores.resource_maps.get(URL)

    assert stored is not None
    assert stored.resources == resources


def test_comment_put_replaces_payload(stores: CacheStores) -> None:
    stores.comments.put(URL, "acct-1", {"elected_comment": [{"content": "first"}]}, title="T")
    stores.comments.put(URL, "acct-1", {"elected_comment": [{"content": "second"}]}, title="T")

    comment = stores.comments.get(URL)

    assert comment is not None
    assert comment.data == {"elected_comment": [{"content": "second"}]}
    assert comment.title == "T"


def test_comment_replies_are_keyed_by_url_and_content_id(stores: CacheStores) -> None:
    stores.comment_replies.put(URL, "100", "acct-1", {"replies": ["a"]})
    stores.comment_replies.put(URL, "200", "acct-1", {"replies": ["b"]})

    first = stores.comment_replies.get(URL, "100")
    second = stores.comment_replies.get(URL, "200")

    assert first is not None and second is not None
    assert first.data == {"replies": ["a"]}
    assert second.data == {"replies": ["b"]}
    assert first.content_id == "100"
    assert stores.comment_replies.get(URL, "300") is None


def test_comment_reply_key_rejects_separator_in_components() -> None:
    assert comment_reply_key(URL, "100") == f"{URL}\x1f100"

    with pytest.raises(CacheValidationError, match="key separator"):
        comment_reply_key(URL, "1\x1f00")
    with pytest.raises(CacheValidationError, match="key separator"):
        comment_reply_key(f"{URL}\x1f", "100")


def test_comment_reply_put_with_separator_writes_nothing(stores: CacheStores) -> None:
    with pytest.raises(CacheValidationError):
        stores.comment_replies.put(URL, "1\x1f00", "acct-1", {"replies": []})

    assert stores.comment_replies.get(URL, "1") is None


def test_metadata_round_trip(stores: CacheStores) -> None:
    stats = {"read_num": 1200, "like_num": 34, "share_num": 5}

    stores.metadata.put(URL, "acct-1", stats, title="Launch notes")
    metadata = stores.metadata.get(URL)

    assert metadata is not None
    assert metadata.data == stats
    assert metadata.title == "Launch notes"


def test_lookups_of_unknown_urls_return_none(stores: CacheStores) -> None:
    assert stores.resource_maps.get(URL) is None
    assert stores.comments.get(URL) is None
    assert stores.metadata.get(URL) is None
    assert stores.comment_replies.get("", "100") is None
