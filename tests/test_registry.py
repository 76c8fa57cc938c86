import threading

import pytest
from sqlalchemy import create_engine, inspect as sa_inspect

from minicrm_app.entities import register_entities
from minicrm_app.errors import DuplicateRegistration, InvalidDescriptor, SchemaInitError, UnknownModel
from minicrm_app.models import Contact, User
from minicrm_app.registry import EntityDescriptor, ModelRegistry, ReadWriteLock
from minicrm_app.schemas import ContactCreate, ContactUpdate


def noop_handler():
    return None


@pytest.fixture
def registry():
    r = ModelRegistry()
    register_entities(r)
    return r


def contact_descriptor(name="Contact", **kwargs):
    return EntityDescriptor(name, Contact, ContactCreate, ContactUpdate, owner_field="user_id", **kwargs)


def test_builtin_entities_are_registered_in_order(registry):
    assert list(registry.get_models()) == ["User", "Settings", "Contact", "Deal", "Task", "Note"]
    assert registry.get_model("Contact").path == "contact"
    assert registry.get_model("User").requires_admin


def test_duplicate_registration_is_rejected(registry):
    with pytest.raises(DuplicateRegistration):
        registry.register_model(contact_descriptor())


def test_unmapped_model_is_invalid():
    class Plain:
        pass

    with pytest.raises(InvalidDescriptor):
        ModelRegistry().register_model(EntityDescriptor("Plain", Plain, ContactCreate, ContactUpdate))


def test_schema_must_be_pydantic():
    with pytest.raises(InvalidDescriptor):
        ModelRegistry().register_model(EntityDescriptor("Contact", Contact, dict, ContactUpdate))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"preload_fields": ["nope"]},
        {"preload_fields": ["stage"]},
        {"allowed_filters": ["notes"]},
    ],
)
def test_preloads_and_filters_are_checked(kwargs):
    with pytest.raises(InvalidDescriptor):
        ModelRegistry().register_model(contact_descriptor(), **kwargs)


def test_owner_field_must_be_a_column():
    descriptor = EntityDescriptor("Contact", Contact, ContactCreate, ContactUpdate, owner_field="owner")
    with pytest.raises(InvalidDescriptor):
        ModelRegistry().register_model(descriptor)


def test_field_metadata_skips_base_and_hidden_columns(registry):
    user_fields = {f.name for f in registry.get_model("User").fields}
    assert user_fields == {"username", "email", "role"}

    contact = {f.name: f for f in registry.get_model("Contact").fields}
    assert "id" not in contact and "deleted_at" not in contact
    assert contact["first_name"].required
    assert not contact["last_name"].required
    assert contact["stage"].options == ("Lead", "Customer", "Prospect")
    assert contact["position"].help == "Position in the company"


def test_field_types_and_unique_flags(registry):
    deal = {f.name: f for f in registry.get_model("Deal").fields}
    assert deal["value"].type == "number"
    assert deal["value"].min == 0
    assert deal["expected_date"].type == "date"
    task = {f.name: f for f in registry.get_model("Task").fields}
    assert task["completed"].type == "boolean"
    assert task["due_date"].type == "datetime"
    user = {f.name: f for f in registry.get_model("User").fields}
    assert user["email"].unique


def test_relations_are_described(registry):
    contact = {r.name: r for r in registry.get_model("Contact").relations}
    assert contact["notes"].type == "hasMany"
    assert contact["notes"].model == "Note"
    assert contact["notes"].foreign_key == "contact_id"
    assert contact["user"].type == "belongsTo"

    deal = {r.name: r for r in registry.get_model("Deal").relations}
    assert deal["contact"].type == "belongsTo"
    assert deal["contact"].foreign_key == "contact_id"

    user = {r.name: r for r in registry.get_model("User").relations}
    assert user["settings"].type == "hasOne"


def test_custom_endpoints_keep_registration_order(registry):
    registry.register_custom_endpoint("Contact", "/{item_id}/a", "get", "first", noop_handler)
    registry.register_custom_endpoint("Contact", "/{item_id}/b", "POST", "second", noop_handler)
    registry.register_custom_endpoint("Contact", "/{item_id}/a", "GET", "duplicate", noop_handler)
    endpoints = registry.get_model("Contact").custom_endpoints
    assert [(e.path, e.method) for e in endpoints] == [
        ("/{item_id}/a", "GET"),
        ("/{item_id}/b", "POST"),
        ("/{item_id}/a", "GET"),
    ]


def test_custom_endpoint_errors(registry):
    with pytest.raises(UnknownModel):
        registry.register_custom_endpoint("Ghost", "/x", "GET", "", noop_handler)
    with pytest.raises(InvalidDescriptor):
        registry.register_custom_endpoint("Contact", "/x", "TRACE", "", noop_handler)


def test_get_model_unknown(registry):
    with pytest.raises(UnknownModel):
        registry.get_model("Ghost")


def test_get_models_returns_a_snapshot(registry):
    snapshot = registry.get_models()
    snapshot.pop("User")
    assert "User" in registry.get_models()


def test_definitions_are_replaced_not_mutated(registry):
    before = registry.get_model("Task")
    registry.register_custom_endpoint("Task", "/{task_id}/archive", "POST", "", noop_handler)
    after = registry.get_model("Task")
    assert before is not after
    assert len(after.custom_endpoints) == len(before.custom_endpoints) + 1


def test_to_dict_describes_the_entity(registry):
    data = registry.get_model("Task").to_dict()
    assert data["name"] == "Task"
    assert data["table"] == "tasks"
    assert data["path"] == "/task"
    assert data["filters"] == ["completed", "deal_id", "user_id"]
    assert data["custom_endpoints"][0]["method"] == "PATCH"


def test_initialize_tables_creates_registered_tables(registry):
    engine = create_engine("sqlite://")
    registry.initialize_tables(engine)
    tables = set(sa_inspect(engine).get_table_names())
    assert {"users", "settings", "contacts", "deals", "tasks", "notes"} <= tables
    # a second run only verifies
    registry.initialize_tables(engine)


def test_initialize_tables_reports_first_failing_entity(registry, tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'crm.db'}")
    with pytest.raises(SchemaInitError) as info:
        registry.initialize_tables(engine)
    assert info.value.entity == "User"
    assert info.value.cause is not None


def test_writer_waits_for_readers():
    lock = ReadWriteLock()
    written = threading.Event()

    def writer():
        with lock.write():
            written.set()

    with lock.read():
        thread = threading.Thread(target=writer)
        thread.start()
        assert not written.wait(0.1)
    thread.join(timeout=2)
    assert written.is_set()


def test_readers_share_the_lock():
    lock = ReadWriteLock()
    with lock.read():
        done = threading.Event()

        def reader():
            with lock.read():
                done.set()

        thread = threading.Thread(target=reader)
        thread.start()
        thread.join(timeout=2)
        assert done.is_set()


def test_user_model_is_described_without_password(registry):
    names = [f["name"] for f in registry.get_model("User").to_dict()["fields"]]
    assert "password_hash" not in names
    assert User.__hidden__ == ("password_hash",)
