"""Tests for value rendering, GenAI events and body field conversion."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from overture.core.models import AgentError, Message, MessageRole
from overture.observability.attributes import Attribute, GenAIKeys, to_sdk_attributes
from overture.observability.converter import (
    convert_body_fields,
    event_attributes,
    event_to_otel_attributes,
)
from overture.observability.events import (
    AssistantMessageEvent,
    ChoiceEvent,
    EventBodyField,
    ExceptionEvent,
    GenAIAgentEvent,
    Redaction,
    SystemMessageEvent,
    ToolMessageEvent,
    UserMessageEvent,
    content_field,
    event_from_message,
    role_field,
    tool_calls_field,
)
from overture.observability.values import (
    HIDDEN_STRING_PLACEHOLDER,
    HiddenString,
    reveal,
    value_string,
)


class TestValueString:
    """Tests for the shared value renderer."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("text", '"text"'),
            (42, "42"),
            (1.5, "1.5"),
            (True, "true"),
            (False, "false"),
            (None, "null"),
            ([1, "a"], '[1,"a"]'),
            ({"k": [1, 2]}, '{"k":[1,2]}'),
            (MessageRole.USER, '"user"'),
        ],
    )
    def test_literals(self, value, expected):
        assert value_string(value) == expected

    def test_quotes_are_escaped(self):
        assert value_string('say "hi"') == '"say \\"hi\\""'

    def test_hidden_string_is_masked(self):
        assert value_string(HiddenString("secret")) == f'"{HIDDEN_STRING_PLACEHOLDER}"'

    def test_hidden_string_verbose(self):
        assert value_string(HiddenString("secret"), verbose=True) == '"secret"'

    def test_hidden_inside_containers(self):
        value = {"name": "search", "args": HiddenString({"q": "secret"})}
        assert value_string(value) == '{"name":"search","args":"HIDDEN:non-empty"}'
        assert value_string(value, verbose=True) == '{"name":"search","args":{"q":"secret"}}'

    def test_pydantic_model(self):
        message = Message.user("hello")
        rendered = value_string(message)
        assert rendered.startswith('{"role":"user","content":"hello"')


class TestHiddenString:
    """Tests for HiddenString."""

    def test_str_never_leaks(self):
        hidden = HiddenString("secret")
        assert str(hidden) == HIDDEN_STRING_PLACEHOLDER
        assert "secret" not in repr(hidden)

    def test_equality(self):
        assert HiddenString("a") == HiddenString("a")
        assert HiddenString("a") != HiddenString("b")
        assert len({HiddenString("a"), HiddenString("a")}) == 1

    def test_reveal_recurses(self):
        value = [HiddenString("x"), {"k": HiddenString(1)}]
        assert reveal(value, verbose=False) == [
            HIDDEN_STRING_PLACEHOLDER,
            {"k": HIDDEN_STRING_PLACEHOLDER},
        ]
        assert reveal(value, verbose=True) == ["x", {"k": 1}]


class TestEventBodyField:
    """Tests for the sensitivity policy of body fields."""

    def test_non_sensitive_is_always_kept(self):
        attribute = role_field(MessageRole.USER).to_attribute(verbose=False)
        assert attribute == Attribute("role", "user")

    def test_sensitive_content_is_dropped(self):
        assert content_field("secret").to_attribute(verbose=False) is None

    def test_sensitive_content_verbose(self):
        attribute = content_field("secret").to_attribute(verbose=True)
        assert attribute.value == "secret"
        assert attribute.verbose is True

    def test_placeholder_redaction(self):
        field = EventBodyField("payload", "secret", sensitive=True, redaction=Redaction.PLACEHOLDER)
        attribute = field.to_attribute(verbose=False)
        assert attribute.sdk_value() == HIDDEN_STRING_PLACEHOLDER

    def test_tool_calls_keep_structure(self):
        call = Message.tool_call("call-1", "search", '{"q":"secret"}')
        attribute = tool_calls_field([call]).to_attribute(verbose=False)

        rendered = attribute.sdk_value()
        assert "secret" not in rendered
        assert '"id":"call-1"' in rendered
        assert '"name":"HIDDEN:non-empty"' in rendered

    def test_role_field_accepts_any_string(self):
        assert role_field("custom").value == "custom"


class TestEvents:
    """Tests for GenAI agent events."""

    def test_user_message_event(self):
        event = UserMessageEvent("openai", Message.user("hi"))
        assert event.name == "gen_ai.user.message"
        assert event.attributes == (Attribute(GenAIKeys.SYSTEM, "openai"),)
        assert [f.key for f in event.body_fields] == ["content"]

    def test_event_from_message(self):
        assert isinstance(event_from_message("p", Message.system("s")), SystemMessageEvent)
        assert isinstance(event_from_message("p", Message.user("u")), UserMessageEvent)
        assert isinstance(event_from_message("p", Message.assistant("a")), AssistantMessageEvent)
        assert isinstance(
            event_from_message("p", Message.tool_result("c1", "search", "r")), ToolMessageEvent
        )

    def test_assistant_tool_call_uses_tool_calls_field(self):
        event = AssistantMessageEvent("p", Message.tool_call("c1", "search", "{}"))
        assert [f.key for f in event.body_fields] == ["tool_calls"]

    def test_choice_event_fields(self):
        event = ChoiceEvent("p", Message.assistant("done", finish_reason="stop"), index=2)
        keys = [f.key for f in event.body_fields]
        assert keys == ["index", "role", "content", "finish_reason"]

    def test_exception_event(self):
        try:
            raise ValueError("boom")
        except ValueError as e:
            event = ExceptionEvent(e)

        attributes = {a.key: a.value for a in event.attributes}
        assert event.name == "exception"
        assert attributes["exception.type"] == "ValueError"
        assert attributes["exception.message"] == "boom"
        assert "ValueError: boom" in attributes["exception.stacktrace"]

    def test_exception_event_from_agent_error(self):
        event = ExceptionEvent(AgentError(message="bad", type="ToolError"))
        attributes = {a.key: a.value for a in event.attributes}
        assert attributes["exception.type"] == "ToolError"

    def test_body_string(self):
        event = UserMessageEvent("p", Message.user("secret"))
        assert event.body_string() == "{}"
        assert event.body_string(verbose=True) == '{"content":"secret"}'

    def test_body_string_masks_placeholder_fields(self):
        event = AssistantMessageEvent("p", Message.tool_call("c1", "search", '{"q":"secret"}'))
        rendered = event.body_string()
        assert "secret" not in rendered
        assert HIDDEN_STRING_PLACEHOLDER in rendered

    def test_add_and_remove_body_field(self):
        event = GenAIAgentEvent("custom")
        field = EventBodyField("k", "v")
        event.add_body_field(field)
        assert event.body_fields == (field,)
        assert event.remove_body_field(field) is True
        assert event.remove_body_field(field) is False


class TestConverter:
    """Tests for body field conversion."""

    def test_sensitive_content_not_exported(self):
        event = UserMessageEvent("openai", Message.user("secret"))
        attributes = event_to_otel_attributes(event, verbose=False)

        assert attributes == {GenAIKeys.SYSTEM: "openai"}
        assert "secret" not in str(attributes)

    def test_sensitive_content_verbose(self):
        event = UserMessageEvent("openai", Message.user("secret"))
        attributes = event_to_otel_attributes(event, verbose=True)
        assert attributes["content"] == "secret"

    def test_conversion_consumes_fields(self):
        event = ChoiceEvent("p", Message.assistant("hi", finish_reason="stop"))

        first = convert_body_fields(event, verbose=True)
        second = convert_body_fields(event, verbose=True)

        assert {a.key for a in first} == {"index", "role", "content", "finish_reason"}
        assert second == []
        assert event.body_fields == ()

    def test_dropped_fields_are_consumed(self):
        event = UserMessageEvent("p", Message.user("secret"))
        assert convert_body_fields(event, verbose=False) == []
        assert event.body_fields == ()

    def test_event_attributes_order(self):
        event = ChoiceEvent("p", Message.assistant("hi"))
        keys = [a.key for a in event_attributes(event, verbose=True)]
        assert keys[0] == GenAIKeys.SYSTEM

    def test_concurrent_conversion_yields_fields_once(self):
        event = GenAIAgentEvent(
            "custom", body_fields=[EventBodyField(f"k{i}", i) for i in range(50)]
        )

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: convert_body_fields(event), range(8)))

        keys = [a.key for result in results for a in result]
        assert sorted(keys) == sorted(f"k{i}" for i in range(50))

    def test_sdk_attributes_later_keys_win(self):
        attributes = to_sdk_attributes([Attribute("a", 1), Attribute("a", 2)])
        assert attributes == {"a": 2}
