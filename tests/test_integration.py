"""Integration tests for the FormController.

Tests cover end-to-end scenarios combining:
- Change dispatch, behaviors and copy-on-write model updates
- Validation timing per mode
- Async validation with out-of-order results
- Submission pipeline, serialization and callbacks
- Debounced autosave
- Reset and dispose
- Event emission
"""

import asyncio

import pytest

from formflow import (
    FormConfig,
    FormController,
    SubmissionFailure,
    TransformError,
    ValidationErrors,
    ValidationFailure,
    alias,
    derive,
    read_only,
)
from formflow.types import EventType, PolicyState, SubmissionState, TransformMode, ValidationMode


SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 2},
        "email": {"type": "string", "pattern": "@"},
    },
    "required": ["name", "email"],
}


class CountingValidator:
    """Opaque schema counting validate() calls."""

    def __init__(self, required=("name",)):
        self.calls = 0
        self.required = required

    def validate(self, model, **options):
        self.calls += 1
        missing = [key for key in self.required if not model.get(key)]
        return {"missing": missing} if missing else None


class RecordingOperation:
    """Async submit operation recording payloads and concurrency."""

    def __init__(self, delay=0.0, error=None):
        self.delay = delay
        self.error = error
        self.payloads = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, model):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.payloads.append(model)
            await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
        finally:
            self.active -= 1


class TestChange:
    """Test field changes through the form."""

    def test_change_updates_model_copy_on_write(self):
        form = FormController(model={"contact": {"email": "a@b.c"}, "name": "Ada"})
        before = form.model
        form.change("contact.email", "new@b.c")

        assert before == {"contact": {"email": "a@b.c"}, "name": "Ada"}
        assert form.model == {"contact": {"email": "new@b.c"}, "name": "Ada"}
        assert form.changed is True
        assert form.changed_keys == ["contact.email"]

    def test_initial_model_not_aliased(self):
        initial = {"name": "Ada"}
        form = FormController(model=initial)
        form.change("name", "Grace")
        assert initial == {"name": "Ada"}

    def test_model_view_is_read_only(self):
        form = FormController(model={"name": "Ada"})
        with pytest.raises(TypeError):
            form.model["name"] = "Grace"
        assert form.model == {"name": "Ada"}
        assert form.changed is False

    def test_on_change_model_callback(self):
        models = []
        form = FormController(on_change_model=models.append)
        form.change("a", 1)
        form.change("b", 2)
        assert models == [{"a": 1}, {"a": 1, "b": 2}]

    def test_read_only_form_ignores_changes(self):
        form = FormController(model={"name": "Ada"}, read_only=True)
        form.change("name", "Grace")
        assert form.model == {"name": "Ada"}
        assert form.changed is False

    def test_behaviors_are_layered_in_order(self):
        form = FormController(
            behaviors=[
                read_only("id"),
                alias({"mail": "contact.email"}),
                derive("first", lambda value, model: {"display": f"{value} {model.get('last', '')}".strip()}),
            ],
            model={"id": 1, "last": "Lovelace"},
        )
        form.change("id", 99)
        form.change("mail", "ada@example.com")
        form.change("first", "Ada")

        assert form.model == {
            "id": 1,
            "last": "Lovelace",
            "contact": {"email": "ada@example.com"},
            "first": "Ada",
            "display": "Ada Lovelace",
        }
        assert form.changed_keys == ["contact.email", "first", "display"]

    def test_context_applies_form_transform(self):
        def transform(mode, model):
            if mode is TransformMode.FORM:
                return {**model, "name": model.get("name", "").title()}
            return model

        form = FormController(model={"name": "ada"}, model_transform=transform)
        context = form.get_context()
        assert context.model == {"name": "Ada"}
        assert form.model == {"name": "ada"}
        assert context.submitted is False
        assert context.field_errors("name") == []


class TestValidationTiming:
    """Test when change-driven validation runs."""

    def test_on_change_validates_every_change(self):
        validator = CountingValidator()
        form = FormController(schema=validator, validate="onChange")
        form.change("name", "")
        assert validator.calls == 1
        assert form.error == {"missing": ["name"]}
        form.change("name", "Ada")
        assert validator.calls == 2
        assert form.error is None

    def test_fanned_out_change_validates_once(self):
        validator = CountingValidator()
        models = []
        form = FormController(
            schema=validator,
            validate="onChange",
            on_change_model=models.append,
            behaviors=[derive("a", lambda value, model: {"b": value * 2, "c": value * 3})],
        )
        form.change("a", 1)

        assert form.model == {"a": 1, "b": 2, "c": 3}
        assert validator.calls == 1
        assert models == [{"a": 1, "b": 2, "c": 3}]

    def test_blocked_change_does_not_validate(self):
        validator = CountingValidator()
        form = FormController(schema=validator, validate="onChange", behaviors=[read_only("id")])
        form.change("id", 5)
        assert validator.calls == 0
        assert form.changed is False

    @pytest.mark.asyncio
    async def test_on_submit_never_validates_on_change(self):
        validator = CountingValidator()
        form = FormController(schema=validator, validate=ValidationMode.ON_SUBMIT)
        for value in ("a", "ab", "abc"):
            form.change("name", value)
        assert validator.calls == 0

        await form.submit()
        assert validator.calls == 1

        form.change("name", "abcd")
        assert validator.calls == 1

    @pytest.mark.asyncio
    async def test_on_change_after_submit(self):
        validator = CountingValidator()
        form = FormController(schema=validator)
        assert form.mode is ValidationMode.ON_CHANGE_AFTER_SUBMIT

        form.change("name", "")
        form.change("name", "A")
        assert validator.calls == 0
        assert form.policy_state is PolicyState.NEVER_SUBMITTED

        await form.submit()
        assert form.submitted is True
        calls_after_submit = validator.calls

        for value in ("B", "C", ""):
            form.change("name", value)
        assert validator.calls == calls_after_submit + 3
        assert form.error == {"missing": ["name"]}

    @pytest.mark.asyncio
    async def test_explicit_validate_ignores_mode(self):
        validator = CountingValidator()
        form = FormController(schema=validator, validate="onSubmit")
        error = await form.validate()
        assert error == {"missing": ["name"]}
        assert form.error == error
        assert validator.calls == 1
        assert form.submitted is False

    @pytest.mark.asyncio
    async def test_json_schema_errors_exposed_per_field(self):
        form = FormController(schema=SCHEMA, model={"name": "A", "email": "nope"})
        await form.validate()
        assert isinstance(form.error, ValidationErrors)
        context = form.get_context()
        assert [e.path for e in context.field_errors("name")] == ["name"]
        assert [e.path for e in context.field_errors("email")] == ["email"]

    @pytest.mark.asyncio
    async def test_validate_transform_error_propagates(self):
        def transform(mode, model):
            if mode is TransformMode.VALIDATE:
                raise RuntimeError("bad")
            return model

        form = FormController(schema=CountingValidator(), model_transform=transform)
        with pytest.raises(TransformError):
            await form.validate()
        assert form.validating is False
        assert form.error is None


class TestAsyncValidation:
    """Test the on_validate hook and stale result handling."""

    @pytest.mark.asyncio
    async def test_hook_runs_after_sync_pass(self):
        seen = []

        async def on_validate(model, error):
            seen.append((model.get("name"), error))
            await asyncio.sleep(0)
            return error or ("taken" if model.get("name") == "admin" else None)

        form = FormController(schema=CountingValidator(), validate="onChange", on_validate=on_validate)
        form.change("name", "admin")
        assert form.validating is True

        await asyncio.sleep(0.01)
        assert form.validating is False
        assert form.error == "taken"
        assert seen == [("admin", None)]

    @pytest.mark.asyncio
    async def test_stale_result_is_discarded(self):
        delays = {"A": 0.05, "B": 0.01}

        async def on_validate(model, error):
            value = model["name"]
            await asyncio.sleep(delays[value])
            return f"error from {value}"

        form = FormController(validate="onChange", on_validate=on_validate)
        discarded = []
        form.events.on(EventType.VALIDATION_DISCARDED, discarded.append)

        form.change("name", "A")
        form.change("name", "B")

        await asyncio.sleep(0.02)
        assert form.error == "error from B"
        assert form.validating is False

        await asyncio.sleep(0.05)
        assert form.error == "error from B"
        assert len(discarded) == 1

    @pytest.mark.asyncio
    async def test_never_resolving_hook_leaves_validating(self):
        never = asyncio.get_running_loop().create_future()

        form = FormController(validate="onChange", on_validate=lambda model, error: never)
        form.change("name", "x")
        await asyncio.sleep(0.01)
        assert form.validating is True
        form.dispose()
        assert form.validating is False


class TestSubmit:
    """Test the submission pipeline through the form."""

    @pytest.mark.asyncio
    async def test_successful_submit(self):
        operation = RecordingOperation()
        successes = []
        form = FormController(
            model={"name": "Ada", "email": "ada@example.com"},
            schema=SCHEMA,
            operation=operation,
            on_submit_success=lambda: successes.append(True),
        )
        result = await form.submit()

        assert result.succeeded
        assert operation.payloads == [{"name": "Ada", "email": "ada@example.com"}]
        assert successes == [True]
        assert form.submitting is False
        assert form.submission_state is SubmissionState.IDLE

    @pytest.mark.asyncio
    async def test_invalid_model_blocks_operation(self):
        operation = RecordingOperation()
        failures = []
        form = FormController(
            model={"name": "Ada"},
            schema=SCHEMA,
            operation=operation,
            on_submit_failure=failures.append,
        )
        result = await form.submit()

        assert operation.payloads == []
        assert isinstance(result.failure, ValidationFailure)
        assert failures == [result.failure]
        assert form.error.paths == ["email"]
        assert form.submitted is True

    @pytest.mark.asyncio
    async def test_operation_failure_keeps_model_and_errors(self):
        failures = []
        form = FormController(
            model={"name": "Ada"},
            operation=RecordingOperation(error=ConnectionError("down")),
            on_submit_failure=failures.append,
        )
        result = await form.submit()

        assert isinstance(failures[0], SubmissionFailure)
        assert isinstance(failures[0].reason, ConnectionError)
        assert result.failure is failures[0]
        assert form.model == {"name": "Ada"}
        assert form.error is None

    @pytest.mark.asyncio
    async def test_submit_transform_applied_to_payload_only(self):
        operation = RecordingOperation()

        def transform(mode, model):
            if mode is TransformMode.SUBMIT:
                return {k: v for k, v in model.items() if not k.startswith("_")}
            return model

        form = FormController(model={"name": "Ada", "_draft": True}, operation=operation, model_transform=transform)
        await form.submit()
        assert operation.payloads == [{"name": "Ada"}]
        assert form.model == {"name": "Ada", "_draft": True}

    @pytest.mark.asyncio
    async def test_submit_transform_error_propagates(self):
        operation = RecordingOperation()

        def transform(mode, model):
            if mode is TransformMode.SUBMIT:
                raise KeyError("oops")
            return model

        form = FormController(operation=operation, model_transform=transform)
        with pytest.raises(TransformError):
            await form.submit()
        assert operation.payloads == []
        assert form.submitting is False

    @pytest.mark.asyncio
    async def test_double_submit_is_serialized(self):
        operation = RecordingOperation(delay=0.03)
        form = FormController(model={"name": "Ada"}, operation=operation)

        first = asyncio.ensure_future(form.submit())
        await asyncio.sleep(0.005)
        assert form.submitting is True
        second = asyncio.ensure_future(form.submit())

        results = await asyncio.gather(first, second)
        assert all(r.succeeded for r in results)
        assert operation.max_active == 1
        assert len(operation.payloads) == 2

    @pytest.mark.asyncio
    async def test_queued_submit_uses_latest_model(self):
        operation = RecordingOperation(delay=0.02)
        form = FormController(model={"n": 0}, operation=operation)

        first = asyncio.ensure_future(form.submit())
        await asyncio.sleep(0.005)
        second = asyncio.ensure_future(form.submit())
        form.change("n", 1)
        await asyncio.gather(first, second)

        assert operation.payloads == [{"n": 0}, {"n": 1}]

    @pytest.mark.asyncio
    async def test_config_object_with_overrides(self):
        config = FormConfig.from_dict({"validate": "onChange"})
        form = FormController(config=config, read_only=True)
        assert form.config.validate is ValidationMode.ON_CHANGE
        assert form.config.read_only is True


class TestAutosave:
    """Test autosave through the form."""

    @pytest.mark.asyncio
    async def test_burst_of_changes_submits_once(self):
        operation = RecordingOperation()
        form = FormController(operation=operation, autosave=True, autosave_delay_ms=200)
        loop = asyncio.get_running_loop()

        for value in range(5):
            form.change("count", value)
            await asyncio.sleep(0.01)
        last_change = loop.time() - 0.01

        await asyncio.sleep(0.1)
        assert operation.payloads == []

        await asyncio.sleep(0.2)
        await form.autosave.join()
        assert operation.payloads == [{"count": 4}]
        assert loop.time() - last_change >= 0.2

    @pytest.mark.asyncio
    async def test_zero_delay_submits_each_change_serialized(self):
        operation = RecordingOperation(delay=0.01)
        form = FormController(operation=operation, autosave=True)

        form.change("a", 1)
        form.change("a", 2)
        form.change("a", 3)
        await asyncio.sleep(0.01)
        await form.autosave.join()

        assert len(operation.payloads) == 3
        assert operation.max_active == 1
        assert operation.payloads[-1] == {"a": 3}

    @pytest.mark.asyncio
    async def test_autosave_marks_form_submitted(self):
        form = FormController(operation=RecordingOperation(), autosave=True)
        form.change("a", 1)
        await asyncio.sleep(0.01)
        await form.autosave.join()
        assert form.submitted is True

    @pytest.mark.asyncio
    async def test_no_autosave_without_flag(self):
        operation = RecordingOperation()
        form = FormController(operation=operation, autosave_delay_ms=10)
        form.change("a", 1)
        await asyncio.sleep(0.03)
        assert operation.payloads == []


class TestReset:
    """Test reset semantics."""

    @pytest.mark.asyncio
    async def test_reset_restores_everything(self):
        validator = CountingValidator()
        initial = {"name": "Ada", "tags": ["x"], "contact": {"email": "a@b.c"}}
        form = FormController(model=initial, schema=validator, validate="onChange")

        form.change("name", "")
        form.change("contact.email", "z@y.x")
        await form.submit()
        assert form.error is not None
        assert form.submitted is True

        form.reset()

        assert form.model == initial
        assert form.error is None
        assert form.validating is False
        assert form.submitting is False
        assert form.submitted is False
        assert form.changed is False
        assert form.policy_state is PolicyState.NEVER_SUBMITTED

    @pytest.mark.asyncio
    async def test_reset_cancels_pending_autosave(self):
        operation = RecordingOperation()
        form = FormController(operation=operation, autosave=True, autosave_delay_ms=30)

        form.change("a", 1)
        assert form.autosave.pending is True
        form.reset()
        assert form.autosave.pending is False

        await asyncio.sleep(0.08)
        await form.autosave.join()
        assert operation.payloads == []

    @pytest.mark.asyncio
    async def test_in_flight_validation_cannot_touch_reset_form(self):
        async def on_validate(model, error):
            await asyncio.sleep(0.02)
            return "late error"

        form = FormController(validate="onChange", on_validate=on_validate)
        form.change("name", "x")
        assert form.validating is True

        form.reset()
        assert form.validating is False
        await asyncio.sleep(0.04)
        assert form.error is None
        assert form.validating is False

    @pytest.mark.asyncio
    async def test_reset_cancels_queued_submit(self):
        operation = RecordingOperation(delay=0.02)
        form = FormController(model={"n": 0}, operation=operation)

        first = asyncio.ensure_future(form.submit())
        await asyncio.sleep(0.005)
        second = asyncio.ensure_future(form.submit())
        await asyncio.sleep(0.005)
        form.reset()

        first_result, second_result = await asyncio.gather(first, second)
        assert first_result.succeeded
        assert second_result.cancelled is True
        assert len(operation.payloads) == 1

    @pytest.mark.asyncio
    async def test_reset_during_submit_validation_skips_operation(self):
        release = asyncio.Event()
        successes = []

        async def on_validate(model, error):
            await release.wait()
            return None

        operation = RecordingOperation()
        form = FormController(
            model={"a": 0},
            operation=operation,
            on_validate=on_validate,
            on_submit_success=lambda: successes.append(True),
        )
        form.change("a", 1)

        pending = asyncio.ensure_future(form.submit())
        await asyncio.sleep(0.005)
        assert form.submitting is True
        form.reset()
        release.set()
        result = await pending

        assert result.cancelled is True
        assert operation.payloads == []
        assert successes == []
        assert form.model == {"a": 0}
        assert form.submitting is False
        assert form.error is None

    @pytest.mark.asyncio
    async def test_operation_started_before_reset_keeps_running(self):
        operation = RecordingOperation(delay=0.02)
        form = FormController(model={"a": 0}, operation=operation)
        form.change("a", 1)

        pending = asyncio.ensure_future(form.submit())
        await asyncio.sleep(0.005)
        form.reset()
        assert form.submitting is True

        result = await pending
        assert result.succeeded
        assert operation.payloads == [{"a": 1}]
        assert form.submitting is False
        assert form.model == {"a": 0}


class TestEvents:
    """Test events published by the form."""

    @pytest.mark.asyncio
    async def test_event_sequence(self):
        form = FormController(model={"name": "Ada"}, schema=CountingValidator(), form_id="form_test")
        types = []
        form.events.on_any(lambda event: types.append(event.type))

        form.change("name", "Grace")
        await form.submit()
        form.reset()

        assert types == [
            EventType.FIELD_CHANGED,
            EventType.SUBMISSION_STARTED,
            EventType.VALIDATION_STARTED,
            EventType.VALIDATION_PASSED,
            EventType.SUBMISSION_SUCCEEDED,
            EventType.FORM_RESET,
        ]

    @pytest.mark.asyncio
    async def test_failure_events_carry_details(self):
        form = FormController(schema=CountingValidator(), form_id="form_test")
        events = []
        form.events.on_any(events.append)

        await form.submit()

        failed_validation = next(e for e in events if e.type is EventType.VALIDATION_FAILED)
        assert failed_validation.payload["error"] == repr({"missing": ["name"]})
        failed_submission = next(e for e in events if e.type is EventType.SUBMISSION_FAILED)
        assert failed_submission.payload["failure"] == "ValidationFailure"
        assert all(e.form_id == "form_test" for e in events)

    @pytest.mark.asyncio
    async def test_autosave_scheduled_event(self):
        form = FormController(autosave=True, autosave_delay_ms=50)
        scheduled = []
        form.events.on(EventType.AUTOSAVE_SCHEDULED, scheduled.append)
        form.change("a", 1)
        form.dispose()
        assert scheduled[0].payload == {"delayMs": 50}
