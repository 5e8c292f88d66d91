import logging

import pytest
from sqlalchemy.exc import IntegrityError

from search_api.models import SearchIndex, SearchServer
from search_api.services.store import index_store, server_store


def test_query_by_field_matches_null(db):
    store = index_store(db)
    store.save(SearchIndex(id="a", name="A", server_id="srv1"))
    store.save(SearchIndex(id="b", name="B", server_id=None))
    assert store.query_by_field("server_id", "srv1") == ["a"]
    assert store.query_by_field("server_id", None) == ["b"]


@pytest.mark.parametrize(
    "make_store, record, key",
    [
        (index_store, lambda: SearchIndex(id="dup", name="Dup"), "index"),
        (server_store, lambda: SearchServer(id="dup", name="Dup", backend_id="memory"), "server"),
    ],
)
def test_integrity_error_logged_under_record_kind(Session, caplog, make_store, record, key):
    first, second = Session(), Session()
    try:
        make_store(first).save(record())
        with caplog.at_level(logging.ERROR, logger="search_api.services.store"):
            with pytest.raises(IntegrityError):
                make_store(second).save(record())
    finally:
        first.close()
        second.close()

    logged = [r for r in caplog.records if r.getMessage() == "config.save.integrity_error"]
    assert len(logged) == 1
    assert getattr(logged[0], key) == "dup"
    other = "server" if key == "index" else "index"
    assert not hasattr(logged[0], other)
