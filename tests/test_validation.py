"""Unit tests for validation.

Tests cover:
- JSON Schema error translation (required, type, length, enum, bounds)
- The Validator wrapper for dict, object and callable schemas
- Option forwarding and exception capture
- The async validation hook
- Stale result discarding in ValidationTracker
"""

import asyncio

import jsonschema
import pytest

from formflow.errors import FieldError, ValidationErrors
from formflow.types import FieldErrorCode, ValidationState
from formflow.validation import SchemaValidator, ValidationTracker, Validator


PERSON_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 2, "maxLength": 10},
        "age": {"type": "integer", "minimum": 0},
        "role": {"enum": ["admin", "user"]},
        "contact": {
            "type": "object",
            "properties": {"email": {"type": "string", "pattern": "@"}},
            "required": ["email"],
        },
    },
    "required": ["name"],
}


class TestSchemaValidator:
    """Test translation of jsonschema errors."""

    def test_valid_model_returns_none(self):
        assert SchemaValidator(PERSON_SCHEMA).validate({"name": "Ada", "age": 36}) is None

    def test_invalid_schema_rejected(self):
        with pytest.raises(jsonschema.SchemaError):
            SchemaValidator({"type": "not-a-type"})

    def test_missing_required_field(self):
        errors = SchemaValidator(PERSON_SCHEMA).validate({})
        assert isinstance(errors, ValidationErrors)
        assert len(errors) == 1
        error = errors.fields[0]
        assert error.path == "name"
        assert error.code == FieldErrorCode.REQUIRED
        assert "required" in error.message

    def test_nested_required_field_has_full_path(self):
        errors = SchemaValidator(PERSON_SCHEMA).validate({"name": "Ada", "contact": {}})
        assert errors.paths == ["contact.email"]
        assert errors.fields[0].code == FieldErrorCode.REQUIRED

    def test_type_error(self):
        errors = SchemaValidator(PERSON_SCHEMA).validate({"name": "Ada", "age": "old"})
        error = errors.for_path("age")[0]
        assert error.code == FieldErrorCode.INVALID_TYPE
        assert error.expected == "integer"
        assert error.received == "str"

    def test_length_errors(self):
        validator = SchemaValidator(PERSON_SCHEMA)
        assert validator.validate({"name": "A"}).fields[0].code == FieldErrorCode.TOO_SHORT
        assert validator.validate({"name": "A" * 11}).fields[0].code == FieldErrorCode.TOO_LONG

    def test_enum_and_minimum_errors(self):
        errors = SchemaValidator(PERSON_SCHEMA).validate({"name": "Ada", "age": -1, "role": "root"})
        codes = {e.path: e.code for e in errors}
        assert codes == {"age": FieldErrorCode.INVALID_VALUE, "role": FieldErrorCode.INVALID_VALUE}

    def test_pattern_error(self):
        errors = SchemaValidator(PERSON_SCHEMA).validate({"name": "Ada", "contact": {"email": "nope"}})
        assert errors.fields[0].code == FieldErrorCode.INVALID_FORMAT
        assert errors.fields[0].path == "contact.email"

    def test_custom_message_option(self):
        errors = SchemaValidator(PERSON_SCHEMA).validate({}, message="Fix the form")
        assert errors.message == "Fix the form"

    def test_errors_round_trip_through_dict(self):
        errors = SchemaValidator(PERSON_SCHEMA).validate({"age": "x"})
        assert ValidationErrors.from_dict(errors.to_dict()) == errors

    def test_for_path_includes_nested_fields(self):
        errors = ValidationErrors(fields=(
            FieldError(path="contact.email", code=FieldErrorCode.REQUIRED, message="m"),
            FieldError(path="contacts", code=FieldErrorCode.CUSTOM, message="m"),
        ))
        assert [e.path for e in errors.for_path("contact")] == ["contact.email"]


class TestValidatorWrapper:
    """Test the opaque-schema wrapper."""

    def test_no_schema_is_always_valid(self):
        assert Validator().validate({"anything": 1}) is None

    def test_dict_schema_is_wrapped(self):
        validator = Validator(PERSON_SCHEMA)
        assert isinstance(validator.schema, SchemaValidator)
        assert validator.validate({}) is not None

    def test_callable_schema_with_options(self):
        calls = []

        def schema(model, **options):
            calls.append(options)
            return None

        Validator(schema, options={"strict": True}).validate({})
        assert calls == [{"strict": True}]

    def test_object_schema_with_options(self):
        class Schema:
            def __init__(self):
                self.options = None

            def validate(self, model, **options):
                self.options = options
                return "bad" if not model else None

        schema = Schema()
        validator = Validator(schema, options={"clean": False})
        assert validator.validate({}) == "bad"
        assert schema.options == {"clean": False}

    def test_options_are_not_modified(self):
        options = {"message": "custom"}
        validator = Validator(PERSON_SCHEMA, options=options)
        assert validator.validate({}).message == "custom"
        assert options == {"message": "custom"}

    def test_raising_schema_becomes_error(self):
        def schema(model):
            raise ValueError("schema says no")

        error = Validator(schema).validate({})
        assert isinstance(error, ValueError)

    def test_rejects_unusable_schema(self):
        with pytest.raises(TypeError):
            Validator(42)

    def test_is_async_reflects_hook(self):
        assert Validator().is_async is False
        assert Validator(on_validate=lambda model, error: error).is_async is True


class TestValidateAsync:
    """Test the async hook path."""

    @pytest.mark.asyncio
    async def test_without_hook_returns_prior_error(self):
        assert await Validator().validate_async({}, "prior") == "prior"

    @pytest.mark.asyncio
    async def test_sync_hook(self):
        validator = Validator(on_validate=lambda model, error: None)
        assert await validator.validate_async({}, "prior") is None

    @pytest.mark.asyncio
    async def test_coroutine_hook_receives_prior_error(self):
        seen = []

        async def hook(model, error):
            seen.append(error)
            await asyncio.sleep(0)
            return error or ("taken" if model.get("name") == "admin" else None)

        validator = Validator(on_validate=hook)
        assert await validator.validate_async({"name": "admin"}, None) == "taken"
        assert await validator.validate_async({"name": "x"}, "already bad") == "already bad"
        assert seen == [None, "already bad"]

    @pytest.mark.asyncio
    async def test_hook_returning_future(self):
        loop = asyncio.get_running_loop()

        def hook(model, error):
            future = loop.create_future()
            loop.call_soon(future.set_result, "remote error")
            return future

        assert await Validator(on_validate=hook).validate_async({}, None) == "remote error"

    @pytest.mark.asyncio
    async def test_raising_hook_becomes_error(self):
        async def hook(model, error):
            raise ConnectionError("offline")

        error = await Validator(on_validate=hook).validate_async({}, None)
        assert isinstance(error, ConnectionError)


class TestValidationTracker:
    """Test generation-based result ordering."""

    def test_starts_empty(self):
        assert ValidationTracker().state == ValidationState()

    def test_start_sets_validating(self):
        tracker = ValidationTracker()
        tracker.start()
        assert tracker.state.validating is True

    def test_resolve_applies_latest(self):
        tracker = ValidationTracker()
        token = tracker.start()
        assert tracker.resolve(token, "error") is True
        assert tracker.state == ValidationState(error="error", validating=False)

    def test_older_result_arriving_late_is_discarded(self):
        tracker = ValidationTracker()
        first = tracker.start()
        second = tracker.start()
        assert tracker.resolve(second, "B") is True
        assert tracker.resolve(first, "A") is False
        assert tracker.state.error == "B"

    def test_older_result_arriving_first_keeps_validating(self):
        tracker = ValidationTracker()
        first = tracker.start()
        second = tracker.start()
        assert tracker.resolve(first, "A") is False
        assert tracker.state.validating is True
        tracker.resolve(second, None)
        assert tracker.state == ValidationState()

    def test_clear_invalidates_in_flight(self):
        tracker = ValidationTracker()
        token = tracker.start()
        tracker.clear()
        assert tracker.resolve(token, "late") is False
        assert tracker.state == ValidationState()
