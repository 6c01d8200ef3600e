"""Tests for the Secret Service workflow."""
import pytest

from agent_secretkit.secrets.domains.environment import MappingEnvironmentWriter
from agent_secretkit.secrets.domains.errors import (
    CircularReference,
    NotFound,
    TransportFailure,
    ValidationError,
)
from agent_secretkit.secrets.domains.models import ListOptions, SecretOptions, SecretType
from agent_secretkit.secrets.domains.store import FileSecretStore, InMemorySecretStore
from agent_secretkit.secrets.workflows.secret_operations import (
    SecretService,
    build_service,
)

PERSONAL = SecretOptions(type=SecretType.PERSONAL)
SHARED = SecretOptions(type=SecretType.SHARED)


@pytest.fixture
def env_table():
    return {}


@pytest.fixture
def service(env_table):
    service = SecretService(InMemorySecretStore(), environment_writer=MappingEnvironmentWriter(env_table))
    service.create("KEY_ONE", "KEY_ONE_VAL")
    service.create("KEY_ONE", "KEY_ONE_VAL_PERSONAL", PERSONAL)
    service.create("KEY_TWO", "KEY_TWO_VAL")
    service.create("NESTED_SECRET_1", "${NESTED_SECRET_2}")
    service.create("NESTED_SECRET_2", "${NESTED_SECRET_3}")
    service.create("NESTED_SECRET_3", "DEEPLY_NESTED_SECRET")
    service.create("PROTOCOL", "https")
    service.create("DOMAIN", "www.example.com")
    service.create("FULL_HOST", "${PROTOCOL}://${DOMAIN}")
    return service


class TestCreate:

    def test_create_defaults_to_shared(self, service):
        secret = service.create("KEY_THREE", "KEY_THREE_VAL")

        assert secret.name == "KEY_THREE"
        assert secret.value == "KEY_THREE_VAL"
        assert secret.type is SecretType.SHARED
        assert (secret.environment, secret.path) == ("dev", "/")

    def test_create_returns_literal_value(self, service):
        secret = service.create("LINK", "${PROTOCOL}")

        assert secret.value == "${PROTOCOL}"

    def test_create_personal(self, service):
        service.create("KEY_FOUR", "KEY_FOUR_VAL")
        secret = service.create("KEY_FOUR", "KEY_FOUR_VAL_PERSONAL", PERSONAL)

        assert secret.value == "KEY_FOUR_VAL_PERSONAL"
        assert secret.type is SecretType.PERSONAL

    def test_create_shared_does_not_touch_personal(self, service):
        service.create("KEY_ONE", "NEW_SHARED")

        assert service.get("KEY_ONE").value == "KEY_ONE_VAL_PERSONAL"
        assert service.get("KEY_ONE", SHARED).value == "NEW_SHARED"

    @pytest.mark.parametrize("name", ["", "has space", "dotted.name", "${X}"])
    def test_create_rejects_invalid_name(self, service, name):
        with pytest.raises(ValidationError):
            service.create(name, "value")

    def test_create_rejects_non_string_value(self, service):
        with pytest.raises(ValidationError):
            service.create("NUMBER", 42)


class TestGet:

    def test_get_personal_override(self, service):
        secret = service.get("KEY_ONE", PERSONAL)

        assert secret.value == "KEY_ONE_VAL_PERSONAL"
        assert secret.type is SecretType.PERSONAL

    def test_get_without_type_prefers_personal(self, service):
        assert service.get("KEY_ONE").type is SecretType.PERSONAL

    def test_get_shared_specified(self, service):
        secret = service.get("KEY_ONE", SHARED)

        assert secret.value == "KEY_ONE_VAL"
        assert secret.type is SecretType.SHARED

    def test_get_raw_value_without_tokens(self, service):
        secret = service.get("KEY_TWO")

        assert secret.value == "KEY_TWO_VAL"
        assert secret.type is SecretType.SHARED

    def test_get_nested_chain(self, service):
        assert service.get("NESTED_SECRET_1").value == "DEEPLY_NESTED_SECRET"
        assert service.get("NESTED_SECRET_2").value == "DEEPLY_NESTED_SECRET"
        assert service.get("NESTED_SECRET_3").value == "DEEPLY_NESTED_SECRET"

    def test_get_multi_token(self, service):
        assert service.get("FULL_HOST").value == "https://www.example.com"

    def test_get_missing(self, service):
        with pytest.raises(NotFound):
            service.get("NOPE")

    def test_get_other_environment(self, service):
        service.create("STAGING_ONLY", "s", SecretOptions(environment="staging"))

        with pytest.raises(NotFound):
            service.get("STAGING_ONLY")
        assert service.get("STAGING_ONLY", SecretOptions(environment="staging")).value == "s"

    def test_get_paths_are_isolated(self, service):
        service.create("DB_HOST", "db.internal", SecretOptions(path="/billing"))
        service.create("DSN", "pg://${DB_HOST}", SecretOptions(path="/billing"))

        assert service.get("DSN", SecretOptions(path="/billing")).value == "pg://db.internal"
        with pytest.raises(NotFound):
            service.get("DB_HOST")

    def test_get_circular(self, service):
        service.create("A", "${B}")
        service.create("B", "${A}")

        with pytest.raises(CircularReference):
            service.get("A")


class TestUpdateDelete:

    def test_update_shared(self, service):
        service.create("KEY_THREE", "KEY_THREE_VAL")
        secret = service.update("KEY_THREE", "FOO")

        assert secret.value == "FOO"
        assert secret.type is SecretType.SHARED
        assert service.get("KEY_THREE").value == "FOO"

    def test_update_personal(self, service):
        service.create("KEY_FOUR", "KEY_FOUR_VAL")
        service.create("KEY_FOUR", "KEY_FOUR_VAL_PERSONAL", PERSONAL)

        secret = service.update("KEY_FOUR", "BAR", PERSONAL)

        assert secret.value == "BAR"
        assert secret.type is SecretType.PERSONAL
        assert service.get("KEY_FOUR", SHARED).value == "KEY_FOUR_VAL"

    def test_update_without_type_targets_visible_record(self, service):
        secret = service.update("KEY_ONE", "CHANGED")

        assert secret.type is SecretType.PERSONAL
        assert service.get("KEY_ONE", SHARED).value == "KEY_ONE_VAL"

    def test_update_shared_specified_leaves_personal(self, service):
        service.update("KEY_ONE", "SHARED_CHANGED", SHARED)

        assert service.get("KEY_ONE").value == "KEY_ONE_VAL_PERSONAL"
        assert service.get("KEY_ONE", SHARED).value == "SHARED_CHANGED"

    def test_update_explicit_personal_does_not_fall_back(self, service):
        with pytest.raises(NotFound):
            service.update("KEY_TWO", "value", PERSONAL)

        assert service.get("KEY_TWO").value == "KEY_TWO_VAL"

    def test_delete_explicit_personal_does_not_fall_back(self, service):
        with pytest.raises(NotFound):
            service.delete("KEY_TWO", PERSONAL)

        assert service.get("KEY_TWO").value == "KEY_TWO_VAL"

    def test_update_missing(self, service):
        with pytest.raises(NotFound):
            service.update("NOPE", "value")

    def test_delete_personal_then_shared(self, service):
        service.create("KEY_FOUR", "KEY_FOUR_VAL")
        service.create("KEY_FOUR", "BAR", PERSONAL)

        deleted = service.delete("KEY_FOUR", PERSONAL)
        assert (deleted.value, deleted.type) == ("BAR", SecretType.PERSONAL)

        deleted = service.delete("KEY_FOUR")
        assert (deleted.value, deleted.type) == ("KEY_FOUR_VAL", SecretType.SHARED)

        with pytest.raises(NotFound):
            service.get("KEY_FOUR")

    def test_delete_shared_specified_keeps_personal(self, service):
        deleted = service.delete("KEY_ONE", SHARED)

        assert deleted.value == "KEY_ONE_VAL"
        assert service.get("KEY_ONE").value == "KEY_ONE_VAL_PERSONAL"

    def test_delete_returns_resolved_value(self, service):
        service.create("B", "b")
        service.create("A", "${B}")

        deleted = service.delete("A")

        assert deleted.value == "b"
        with pytest.raises(NotFound):
            service.get("A")
        assert service.get("B").value == "b"

    def test_delete_with_broken_reference_removes_nothing(self, service):
        service.create("DANGLING", "${GONE}")

        with pytest.raises(NotFound) as exc_info:
            service.delete("DANGLING")

        assert exc_info.value.name == "GONE"
        assert [s.value for s in service.list_all(ListOptions()) if s.name == "DANGLING"] == ["${GONE}"]

    def test_delete_missing(self, service):
        with pytest.raises(NotFound):
            service.delete("NOPE")


class TestListAll:

    def test_list_returns_both_types(self, service):
        secrets = service.list_all(ListOptions())
        key_one = [s for s in secrets if s.name == "KEY_ONE"]

        assert len(secrets) == 9
        assert sorted((s.type.value, s.value) for s in key_one) == [
            ("personal", "KEY_ONE_VAL_PERSONAL"),
            ("shared", "KEY_ONE_VAL"),
        ]

    def test_list_raw_values_by_default(self, service):
        values = {s.name: s.value for s in service.list_all(ListOptions())}

        assert values["FULL_HOST"] == "${PROTOCOL}://${DOMAIN}"

    def test_list_resolved_duplicates_chain_values(self, service):
        secrets = service.list_all(ListOptions(include_resolved_references=True))
        values = [s.value for s in secrets]

        assert values.count("DEEPLY_NESTED_SECRET") == 3
        assert values.count("https") == 1
        assert values.count("www.example.com") == 1
        assert values.count("https://www.example.com") == 1

    def test_list_effective_only(self, service):
        secrets = service.list_all(ListOptions(effective_only=True))
        key_one = [s for s in secrets if s.name == "KEY_ONE"]

        assert len(secrets) == 8
        assert [(s.type, s.value) for s in key_one] == [(SecretType.PERSONAL, "KEY_ONE_VAL_PERSONAL")]

    def test_list_fails_fast_on_resolution_error(self, service):
        service.create("BROKEN", "${MISSING}")

        with pytest.raises(NotFound):
            service.list_all(ListOptions(include_resolved_references=True))

    def test_list_mirrors_into_environment_writer(self, service, env_table):
        service.list_all(ListOptions(mirror_to_host_environment=True, include_resolved_references=True))

        assert env_table["FULL_HOST"] == "https://www.example.com"
        assert env_table["KEY_ONE"] == "KEY_ONE_VAL_PERSONAL"
        assert len(env_table) == 8

    def test_list_does_not_mirror_by_default(self, service, env_table):
        service.list_all(ListOptions())

        assert env_table == {}

    def test_list_empty_scope(self, service):
        assert service.list_all(ListOptions(environment="prod")) == []

    def test_list_reads_store_once(self, env_table):
        class CountingStore(InMemorySecretStore):
            calls = 0

            def get(self, name, scope, timeout=None):
                CountingStore.calls += 1
                return super().get(name, scope, timeout)

        service = SecretService(CountingStore(), environment_writer=MappingEnvironmentWriter(env_table))
        service.create("A", "${B}")
        service.create("B", "b")

        assert [s.value for s in service.list_all(ListOptions(include_resolved_references=True))] == ["b", "b"]
        assert CountingStore.calls == 0


class TestStorePassThrough:

    def test_timeout_is_forwarded(self):
        seen = []

        class RecordingStore(InMemorySecretStore):
            def get(self, name, scope, timeout=None):
                seen.append(timeout)
                return super().get(name, scope, timeout)

        service = SecretService(RecordingStore())
        service.create("X", "${Y}")
        service.create("Y", "y")

        assert service.get("X", timeout=2.5).value == "y"
        assert seen and set(seen) == {2.5}

    def test_transport_failure_is_not_reinterpreted(self):
        class DownStore(InMemorySecretStore):
            def get(self, name, scope, timeout=None):
                raise TransportFailure("connection reset")

        with pytest.raises(TransportFailure):
            SecretService(DownStore()).get("ANY")


class TestBuildService:

    def test_memory_backend(self):
        config = {"backend": {"type": "memory"}, "interpolation": {"max_depth": 3}}
        service = build_service(config)

        assert isinstance(service.store, InMemorySecretStore)
        assert service.max_depth == 3

    def test_file_backend_persists(self, tmp_path):
        config = {
            "backend": {"type": "file", "file_path": str(tmp_path / "secrets.json")},
            "interpolation": {"max_depth": 10},
        }
        build_service(config).create("PERSISTED", "yes")

        service = build_service(config)
        assert isinstance(service.store, FileSecretStore)
        assert service.get("PERSISTED").value == "yes"
