# tests/test_database.py
import json
import os

import pytest
from sqlalchemy.dialects import mysql
from sqlalchemy.schema import CreateTable

from stocksynapse.config import load_settings
from stocksynapse.database import JsonInventoryStore, SqlInventoryStore, create_store, products_table
from stocksynapse.errors import ConfigurationError, PersistenceError, ValidationError


def _json_store(tmp_path):
    return JsonInventoryStore(tmp_path / "inventory.json")


def _sql_store(tmp_path):
    return SqlInventoryStore.from_url(f"sqlite:///{tmp_path / 'inventory.db'}")


@pytest.fixture(params=["json", "sql"])
def make_store(request, tmp_path):
    # returns a factory so tests can open a second instance on the same medium
    factory = _json_store if request.param == "json" else _sql_store
    return lambda: factory(tmp_path)


def test_add_then_get_by_id(make_store):
    store = make_store()
    p = store.add("Widget", 9.99, 5, "Tools", "A widget")
    assert p.id
    got = store.get_by_id(p.id)
    assert got == p
    assert (got.name, got.price, got.quantity, got.category, got.description) == \
        ("Widget", 9.99, 5, "Tools", "A widget")


def test_ids_are_unique(make_store):
    store = make_store()
    ids = {store.add(f"item{i}", 1.0, 1).id for i in range(10)}
    assert len(ids) == 10


def test_widget_example_get_all(make_store):
    store = make_store()
    store.add("Widget", 9.99, 5, "Tools", "A widget")
    products = store.get_all()
    assert len(products) == 1
    assert products[0].price == 9.99
    assert products[0].quantity == 5


def test_update_replaces_every_field(make_store):
    store = make_store()
    p = store.add("Widget", 9.99, 5, "Tools", "A widget")
    assert store.update(p.id, "Gadget", 12.5, 0, "Gizmos", "") is True
    got = store.get_by_id(p.id)
    assert (got.id, got.name, got.price, got.quantity, got.category, got.description) == \
        (p.id, "Gadget", 12.5, 0, "Gizmos", "")


def test_update_unknown_id_changes_nothing(make_store):
    store = make_store()
    p = store.add("Widget", 9.99, 5)
    assert store.update("nope", "Other", 1.0, 1) is False
    assert store.get_all() == [p]


def test_delete(make_store):
    store = make_store()
    a = store.add("A", 1.0, 1)
    b = store.add("B", 2.0, 2)
    assert store.delete(a.id) is True
    assert store.get_all() == [b]
    assert store.delete(a.id) is False
    assert store.get_all() == [b]


def test_get_by_id_missing(make_store):
    assert make_store().get_by_id("missing") is None


def test_reload_sees_same_products(make_store):
    store = make_store()
    a = store.add("Bolt", 0.25, 100, "Hardware", "M6")
    b = store.add("Anvil", 250.0, 1, "Heavy", "")
    store.update(b.id, "Anvil", 199.0, 2, "Heavy", "On sale")
    c = store.add("Temp", 1.0, 1)
    store.delete(c.id)

    reloaded = make_store()
    by_id = {p.id: p for p in reloaded.get_all()}
    assert set(by_id) == {a.id, b.id}
    assert by_id[a.id] == a
    assert by_id[b.id].price == 199.0
    assert by_id[b.id].description == "On sale"


def test_get_all_returns_a_copy(make_store):
    store = make_store()
    store.add("A", 1.0, 1)
    snapshot = store.get_all()
    snapshot.clear()
    assert len(store.get_all()) == 1


def test_invalid_values_are_rejected_before_writing(make_store):
    store = make_store()
    with pytest.raises(ValidationError):
        store.add("", 1.0, 1)
    with pytest.raises(ValidationError):
        store.add("Bad", -1.0, 1)
    with pytest.raises(ValidationError):
        store.add("Bad", 1.0, -3)
    assert store.get_all() == []


def test_json_order_is_insertion_order(tmp_path):
    store = _json_store(tmp_path)
    names = ["zeta", "alpha", "mid"]
    for n in names:
        store.add(n, 1.0, 1)
    assert [p.name for p in store.get_all()] == names


def test_sql_order_is_by_name(tmp_path):
    store = _sql_store(tmp_path)
    for n in ["zeta", "alpha", "mid"]:
        store.add(n, 1.0, 1)
    assert [p.name for p in store.get_all()] == ["alpha", "mid", "zeta"]


def test_json_missing_file_is_empty_inventory(tmp_path):
    store = JsonInventoryStore(tmp_path / "nested" / "inventory.json")
    assert store.get_all() == []
    store.add("A", 1.0, 1)
    assert (tmp_path / "nested" / "inventory.json").exists()


def test_json_file_format(tmp_path):
    store = _json_store(tmp_path)
    p = store.add("Widget", 9.99, 5, "Tools", "A widget")
    data = json.loads((tmp_path / "inventory.json").read_text())
    assert data == [{
        "id": p.id, "name": "Widget", "price": 9.99, "quantity": 5,
        "category": "Tools", "description": "A widget",
    }]


def test_json_loads_records_without_optional_fields(tmp_path):
    path = tmp_path / "inventory.json"
    path.write_text(json.dumps([{"id": "abc", "name": "Old", "price": 3, "quantity": 2}]))
    p = JsonInventoryStore(path).get_by_id("abc")
    assert p.category == "" and p.description == ""
    assert p.price == 3.0


@pytest.mark.parametrize("content", [
    "{not json",
    json.dumps({"id": "x"}),
    json.dumps([{"id": "x", "name": "A", "price": -1, "quantity": 1}]),
    json.dumps([{"id": "x", "name": "A", "price": 1, "quantity": 1},
                {"id": "x", "name": "B", "price": 1, "quantity": 1}]),
])
def test_json_malformed_file_raises(tmp_path, content):
    path = tmp_path / "inventory.json"
    path.write_text(content)
    with pytest.raises(PersistenceError):
        JsonInventoryStore(path)


def test_json_failed_write_leaves_store_unchanged(tmp_path, monkeypatch):
    store = _json_store(tmp_path)
    kept = store.add("Keep", 1.0, 1)

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", broken_replace)
    with pytest.raises(PersistenceError):
        store.add("Lost", 2.0, 2)
    with pytest.raises(PersistenceError):
        store.update(kept.id, "Changed", 5.0, 5)
    with pytest.raises(PersistenceError):
        store.delete(kept.id)

    assert store.get_all() == [kept]
    monkeypatch.undo()
    assert _json_store(tmp_path).get_all() == [kept]
    assert [f.name for f in tmp_path.iterdir()] == ["inventory.json"]


def test_sql_failure_is_wrapped(tmp_path):
    store = _sql_store(tmp_path)
    with store.engine.begin() as conn:
        conn.exec_driver_sql("DROP TABLE products")
    with pytest.raises(PersistenceError):
        store.add("A", 1.0, 1)
    with pytest.raises(PersistenceError):
        store.get_all()


def test_create_store_picks_backend(tmp_path):
    json_store = create_store(load_settings(env_file=None, environ={},
                                            inventory_file=tmp_path / "inv.json"))
    assert isinstance(json_store, JsonInventoryStore)

    sql_store = create_store(load_settings(env_file=None, environ={
        "INVENTORY_BACKEND": "sql", "DB_URL": f"sqlite:///{tmp_path / 'inv.db'}",
    }))
    assert isinstance(sql_store, SqlInventoryStore)


def test_sql_backend_needs_url():
    settings = load_settings(env_file=None, environ={"INVENTORY_BACKEND": "sql"})
    with pytest.raises(ConfigurationError):
        create_store(settings)


def test_over_long_text_is_rejected(make_store):
    store = make_store()
    with pytest.raises(ValidationError):
        store.add("x" * 256, 1.0, 1)
    with pytest.raises(ValidationError):
        store.add("Widget", 1.0, 1, category="c" * 256)
    p = store.add("x" * 255, 1.0, 1, "c" * 255, "d" * 1000)
    assert make_store().get_by_id(p.id) == p


def test_mysql_columns():
    ddl = str(CreateTable(products_table).compile(dialect=mysql.dialect()))
    assert "price DOUBLE NOT NULL" in ddl
    assert "name VARCHAR(255) NOT NULL" in ddl
    assert "description TEXT NOT NULL" in ddl
