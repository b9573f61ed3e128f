"""
Conversion of event body fields into exportable attributes.

Non-sensitive fields are always converted. Sensitive fields are converted
only in verbose mode; otherwise they are dropped or masked depending on
their redaction policy. Converted fields are removed from the event, so
converting the same event twice yields nothing the second time.
"""

from __future__ import annotations

from overture.observability.attributes import Attribute, to_sdk_attributes
from overture.observability.events import GenAIAgentEvent


def convert_body_fields(event: GenAIAgentEvent, verbose: bool = False) -> list[Attribute]:
    """Consume the event's body fields and return the attributes they produce."""
    attributes = []
    for field in event.consume_body_fields():
        attribute = field.to_attribute(verbose)
        if attribute is not None:
            attributes.append(attribute)
    return attributes


def event_attributes(event: GenAIAgentEvent, verbose: bool = False) -> list[Attribute]:
    """Event attributes followed by its converted body fields."""
    return [*event.attributes, *convert_body_fields(event, verbose)]


def event_to_otel_attributes(
    event: GenAIAgentEvent,
    verbose: bool = False,
) -> dict[str, str | bool | int | float | list]:
    """Attribute mapping for an OpenTelemetry span event."""
    return to_sdk_attributes(event_attributes(event, verbose), verbose)
