"""Tests for the value store, dependency evaluator and validation engine."""

import pytest

from settings_surface import (
    DependencyEvaluator,
    MemoryBackend,
    PersistenceAdapter,
    ValidationEngine,
    ValueStore,
    parse_schema,
)


def build_engine(schema):
    store = ValueStore(schema)
    evaluator = DependencyEvaluator(schema, store)
    validation = ValidationEngine(schema, store, evaluator)
    return store, evaluator, validation


@pytest.fixture
def chain_schema():
    """A -> B -> C chain of enabled_when conditions."""
    return parse_schema(
        {
            "fields": [
                {"id": "A", "kind": "checkbox", "default_value": True},
                {
                    "id": "B",
                    "kind": "checkbox",
                    "default_value": False,
                    "enabled_when": {"controlling_field_id": "A", "required_value": True},
                },
                {
                    "id": "C",
                    "kind": "textbox",
                    "default_value": "c",
                    "enabled_when": {"controlling_field_id": "B", "required_value": "true"},
                },
            ]
        }
    )


class TestValueStore:
    """Tests for ValueStore."""

    def test_defaults_before_load(self, full_schema):
        store = ValueStore(full_schema)
        assert store.get("user") == "guest"
        assert store.get("enabled") is True
        assert store.is_expanded("account") is True

    def test_set_coerces_to_kind(self, full_schema):
        store = ValueStore(full_schema)
        assert store.set("enabled", "false") is False
        assert store.set("user", True) == "true"

    def test_unknown_field(self, full_schema):
        store = ValueStore(full_schema)
        with pytest.raises(KeyError):
            store.get("nope")
        with pytest.raises(KeyError):
            store.set("nope", 1)

    def test_load_uses_stored_values_and_defaults(self, full_schema):
        backend = MemoryBackend(
            {
                "full.user": "alice",
                "full.enabled": "false",
                "full.groupState.account": "false",
                "full.groupState.advanced": "false",
            }
        )
        store = ValueStore(full_schema)
        store.load(PersistenceAdapter(backend=backend), "full")

        assert store.get("user") == "alice"
        assert store.get("enabled") is False
        assert store.get("mode") == "fast"
        assert store.is_expanded("account") is False
        # Conditional groups ignore stored state until evaluated.
        assert store.is_expanded("advanced") is True

    def test_flush_writes_everything(self, full_schema):
        backend = MemoryBackend()
        store = ValueStore(full_schema)
        store.set("user", "bob")
        store.flush(PersistenceAdapter(backend=backend), "full")

        assert backend.data == {
            "full.enabled": "true",
            "full.user": "bob",
            "full.token": "",
            "full.mode": "fast",
            "full.level": "1",
            "full.groupState.account": "true",
            "full.groupState.advanced": "true",
        }

    def test_reset_all(self, full_schema):
        store = ValueStore(full_schema)
        store.set("user", "bob")
        store.set_expanded("account", False)
        store.reset_all()
        assert store.get("user") == "guest"
        assert store.is_expanded("account") is True


class TestDependencyEvaluator:
    """Tests for enablement and conditional expansion."""

    def test_unconditioned_fields_always_enabled(self, full_schema):
        store, evaluator, _ = build_engine(full_schema)
        evaluator.evaluate_all()
        for field_id in ("enabled", "user", "token", "mode"):
            assert evaluator.is_enabled(field_id)

    def test_initial_pass_disables_and_resets(self, full_schema):
        store, evaluator, _ = build_engine(full_schema)
        store.set("level", "3")
        result = evaluator.evaluate_all()

        assert not evaluator.is_enabled("level")
        assert store.get("level") == "1"
        assert result.reset_fields == ["level"]

    def test_write_enables_direct_dependent(self, full_schema):
        store, evaluator, _ = build_engine(full_schema)
        evaluator.evaluate_all()

        store.set("mode", "safe")
        result = evaluator.evaluate_field_written("mode")
        assert evaluator.is_enabled("level")
        assert result.enabled_changed == ["level"]
        assert result.reset_fields == []

    def test_disable_transition_resets_value(self, full_schema):
        store, evaluator, _ = build_engine(full_schema)
        evaluator.evaluate_all()
        store.set("mode", "safe")
        evaluator.evaluate_field_written("mode")
        store.set("level", "3")

        store.set("mode", "fast")
        result = evaluator.evaluate_field_written("mode")
        assert not evaluator.is_enabled("level")
        assert store.get("level") == "1"
        assert result.reset_fields == ["level"]

    def test_collapsed_when_overrides_expansion(self, full_schema):
        store, evaluator, _ = build_engine(full_schema)
        evaluator.evaluate_all()
        assert store.is_expanded("advanced") is True

        store.set("enabled", False)
        result = evaluator.evaluate_field_written("enabled")
        assert store.is_expanded("advanced") is False
        assert result.groups_changed == ["advanced"]

    def test_collapsed_when_ignores_manual_state(self, full_schema):
        store, evaluator, _ = build_engine(full_schema)
        store.set_expanded("advanced", False)
        evaluator.evaluate_all()
        assert store.is_expanded("advanced") is True

    def test_unrelated_write_changes_nothing(self, full_schema):
        store, evaluator, _ = build_engine(full_schema)
        evaluator.evaluate_all()
        store.set("user", "zed")
        result = evaluator.evaluate_field_written("user")
        assert result.enabled_changed == []
        assert result.groups_changed == []

    def test_propagation_is_single_level(self, chain_schema):
        """Resetting B through A must not re-evaluate C."""
        store, evaluator, _ = build_engine(chain_schema)
        evaluator.evaluate_all()
        store.set("B", True)
        evaluator.evaluate_field_written("B")
        assert evaluator.is_enabled("C")

        store.set("A", False)
        result = evaluator.evaluate_field_written("A")

        assert not evaluator.is_enabled("B")
        assert store.get("B") is False  # reset to its default
        assert evaluator.is_enabled("C")  # stale: C is not a direct dependent of A
        assert result.enabled_changed == ["B"]

    def test_string_required_value_matches_boolean(self, chain_schema):
        store, evaluator, _ = build_engine(chain_schema)
        evaluator.evaluate_all()
        assert not evaluator.is_enabled("C")
        store.set("B", True)
        evaluator.evaluate_field_written("B")
        assert evaluator.is_enabled("C")
        store.set("B", False)
        evaluator.evaluate_field_written("B")
        assert not evaluator.is_enabled("C")


class TestValidationEngine:
    """Tests for pattern validation and can_commit."""

    def test_no_pattern_always_valid(self, full_schema):
        store, evaluator, validation = build_engine(full_schema)
        evaluator.evaluate_all()
        store.set("token", "")
        assert validation.validate("token")

    def test_pattern_checked_when_enabled(self, full_schema):
        store, evaluator, validation = build_engine(full_schema)
        evaluator.evaluate_all()
        validation.validate_all()
        assert validation.can_commit()

        store.set("user", "Bob1")
        assert not validation.validate("user")
        assert not validation.can_commit()
        assert validation.invalid_fields() == ["user"]

        result = validation.result("user")
        assert not result.valid
        assert result.error == "Lowercase letters only"
        assert result.field_id == "user"

    def test_disabled_fields_are_exempt(self, scenario_config):
        schema = parse_schema(scenario_config)
        store, evaluator, validation = build_engine(schema)
        evaluator.evaluate_all()
        store.set("B", "")
        assert validation.validate("B")

    def test_all_default_schema_is_committable(self):
        schema = parse_schema(
            {"fields": [{"id": "a", "kind": "textbox"}, {"id": "b", "kind": "checkbox"}]}
        )
        store, evaluator, validation = build_engine(schema)
        evaluator.evaluate_all()
        assert validation.validate_all()

    def test_search_semantics(self):
        """Unanchored patterns match anywhere in the value."""
        schema = parse_schema(
            {"fields": [{"id": "a", "kind": "textbox", "validation_pattern": "[0-9]"}]}
        )
        store, evaluator, validation = build_engine(schema)
        store.set("a", "abc1")
        assert validation.validate("a")
        store.set("a", "abc")
        assert not validation.validate("a")
