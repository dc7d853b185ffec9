"""Integration tests for FormGuard.

Tests drive complete forms through FormRuntime:
- Happy path: fill in, validate, submit
- Loading a form from plain configuration
- Presentation hooks for values and errors
- Custom rule registries and strict mode
- Field replacement and disposal
"""

import asyncio

import pytest

from formguard import (
    DEFAULT_REGISTRY,
    EventType,
    FieldDescriptor,
    FormConfig,
    FormDisposedError,
    FormRuntime,
    InvalidFormConfigError,
    UnknownRuleKindError,
)

SIGNUP_FIELDS = [
    {"name": "email", "type": "email", "required": True, "validators": ["required", "email"]},
    {"name": "password", "type": "password", "validators": ["required", {"type": "minLength", "value": 8}]},
    {"name": "confirmPassword", "type": "password", "validators": [{"type": "match", "matchField": "password"}]},
    {"name": "phone", "validators": ["phone"]},
]

FAST = FormConfig(validation_mode="on-change", debounce_ms=20, throttle_ms=50)


class TestHappyPath:
    """Test a complete signup flow."""

    @pytest.mark.asyncio
    async def test_fill_validate_submit(self):
        """Should surface errors while typing, then submit the corrected values."""
        submitted = []
        form = FormRuntime(SIGNUP_FIELDS, submitted.append, FAST, form_id="signup")

        form.set_field_value("email", "ann@")
        form.set_field_value("password", "short")
        form.set_field_value("phone", "555-123-4567")
        await form.join()

        state = form.form_state
        assert state.errors == {
            "email": "Please enter a valid email address",
            "password": "This field must be at least 8 characters",
            "phone": "Please enter a valid phone number",
        }
        assert state.touched["email"] is True
        assert state.is_valid is False

        form.set_field_value("email", "ann@example.com")
        form.set_field_value("password", "longenough")
        form.set_field_value("confirmPassword", "longenough")
        form.set_field_value("phone", "5551234567")
        await form.join()
        assert form.form_state.errors == {}

        form.submit()
        await form.join()

        assert submitted == [{
            "email": "ann@example.com",
            "password": "longenough",
            "confirmPassword": "longenough",
            "phone": "5551234567",
        }]
        assert form.submission_state.submit_error is None
        form.dispose()

    @pytest.mark.asyncio
    async def test_invalid_submit_then_reset(self):
        """Should reject an invalid submission and return to a clean state on reset."""
        submitted = []
        form = FormRuntime(SIGNUP_FIELDS, submitted.append, FAST)

        form.submit()
        await form.join()
        assert submitted == []
        assert form.submission_state.submit_error == "Please fix the errors in the form"
        assert set(form.form_state.errors) == {"email", "password", "phone"}

        form.reset_form()
        state = form.form_state
        assert state.errors == {}
        assert state.is_valid is True
        assert dict(state.values) == {"email": "", "password": "", "confirmPassword": "", "phone": ""}
        form.dispose()

    @pytest.mark.asyncio
    async def test_validate_single_field_does_not_change_state(self):
        """Should return a message without recording it."""
        form = FormRuntime(SIGNUP_FIELDS, print, FAST)
        form.set_field_values({"password": "abc12345"})

        assert await form.validate_single_field("confirmPassword", "abc12345") == ""
        assert await form.validate_single_field("confirmPassword", "nope") == "This field must match password"
        assert form.form_state.errors == {}
        form.dispose()


class TestFromConfig:
    """Test building a runtime from plain configuration."""

    @pytest.mark.asyncio
    async def test_from_config_with_named_predicate(self):
        """Should load fields, config and named predicates."""
        taken = {"ann"}

        async def username_available(value, siblings):
            await asyncio.sleep(0)
            return value not in taken

        form = FormRuntime.from_config(
            {
                "fields": [{
                    "name": "username",
                    "validators": [
                        "required",
                        {"type": "custom", "predicate": "available", "message": "Username is taken"},
                    ],
                }],
                "config": {"validationMode": "onBlur"},
            },
            print,
            predicates={"available": username_available},
        )

        form.set_field_value("username", "ann")
        await form.set_field_touched("username")
        assert form.form_state.errors == {"username": "Username is taken"}

        form.set_field_value("username", "bob")
        await form.set_field_touched("username")
        assert form.form_state.errors == {}
        form.dispose()

    def test_from_config_rejects_bad_config(self):
        """Should raise InvalidFormConfigError for malformed sections."""
        with pytest.raises(InvalidFormConfigError):
            FormRuntime.from_config({"fields": [{"name": "a"}], "config": {"throttleMs": "fast"}}, print)


class TestPresentationHooks:
    """Test on_values_change and on_error callbacks."""

    @pytest.mark.asyncio
    async def test_hooks_receive_copies(self):
        """Should report values and error maps as they change."""
        values_seen = []
        errors_seen = []
        form = FormRuntime(
            SIGNUP_FIELDS,
            print,
            FormConfig(validation_mode="on-blur"),
            on_values_change=values_seen.append,
            on_error=errors_seen.append,
        )

        form.set_field_value("email", "bad")
        await form.set_field_touched("email")
        form.reset_form()

        assert values_seen[0]["email"] == "bad"
        assert values_seen[-1]["email"] == ""
        assert errors_seen == [{"email": "Please enter a valid email address"}, {}]

        values_seen[0]["email"] = "mutated"
        assert form.form_state.values["email"] == ""
        form.dispose()


class TestRegistriesAndStrictMode:
    """Test custom registries and strict rule checking."""

    @pytest.mark.asyncio
    async def test_custom_rule_kind(self):
        """Should evaluate kinds added to a registry."""
        registry = DEFAULT_REGISTRY.with_rule(
            "zip",
            lambda value, rule, siblings: isinstance(value, str) and len(value) == 5 and value.isdigit(),
            "Enter a 5 digit ZIP code",
        )
        form = FormRuntime([FieldDescriptor(name="zip", validators=["zip"])], print, registry=registry)

        form.set_field_value("zip", "123")
        await form.set_field_touched("zip")
        assert form.form_state.errors == {"zip": "Enter a 5 digit ZIP code"}
        form.dispose()

    @pytest.mark.asyncio
    async def test_unknown_kind_passes_by_default(self):
        """Should treat unknown kinds as passing in lenient mode."""
        form = FormRuntime([FieldDescriptor(name="email", validators=["emial"])], print)
        assert await form.validate_all() is True
        form.dispose()

    def test_strict_mode_rejects_unknown_kinds(self):
        """Should raise at construction when strict rules are enabled."""
        with pytest.raises(UnknownRuleKindError) as exc_info:
            FormRuntime(
                [FieldDescriptor(name="email", validators=["emial"])],
                print,
                FormConfig(strict_rules=True),
            )
        assert exc_info.value.kind == "emial"
        assert exc_info.value.field_name == "email"


class TestSetFields:
    """Test replacing fields through the runtime."""

    @pytest.mark.asyncio
    async def test_set_fields_from_dicts(self):
        """Should accept plain dicts and rebuild state."""
        form = FormRuntime(SIGNUP_FIELDS, print, FAST)
        form.set_fields([{"name": "city", "defaultValue": "Oslo", "validators": ["required"]}])

        assert [f.name for f in form.fields] == ["city"]
        assert dict(form.form_state.values) == {"city": "Oslo"}
        assert await form.validate_all() is True
        form.dispose()


class TestDisposal:
    """Test disposing a runtime."""

    @pytest.mark.asyncio
    async def test_dispose_stops_everything(self):
        """Should cancel pending work, detach hooks and reject later calls."""
        values_seen = []
        form = FormRuntime(SIGNUP_FIELDS, print, FAST, on_values_change=values_seen.append)
        events = []
        form.emitter.on_any(lambda event: events.append(event.type))

        form.set_field_value("email", "bad")
        form.dispose()
        await asyncio.sleep(0.05)

        assert form.is_disposed is True
        assert form.form_state.errors == {}
        assert events == [EventType.FIELD_CHANGED, EventType.FORM_DISPOSED]
        assert len(values_seen) == 1
        with pytest.raises(FormDisposedError):
            form.set_field_value("email", "x")
        with pytest.raises(FormDisposedError):
            form.submit()

    def test_dispose_twice(self):
        """Should allow dispose() to be called more than once."""
        form = FormRuntime(SIGNUP_FIELDS, print)
        form.dispose()
        form.dispose()
        assert form.is_disposed is True
