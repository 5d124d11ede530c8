from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from paywall.billing.errors import ValidationError


@dataclass(frozen=True, slots=True)
class ProviderEvent:
    event_id: str
    event_type: str
    data_object: dict[str, Any]


def parse_provider_event(raw_event: dict[str, Any]) -> ProviderEvent:
    event_id = raw_event.get("id")
    event_type = raw_event.get("type")
    if not isinstance(event_id, str) or not event_id:
        raise ValidationError("Event has no id")
    if not isinstance(event_type, str) or not event_type:
        raise ValidationError("Event has no type")

    data = raw_event.get("data")
    data_object = data.get("object") if isinstance(data, dict) else None
    if not isinstance(data_object, dict):
        raise ValidationError("Event has no data.object")
    return ProviderEvent(event_id=event_id, event_type=event_type, data_object=data_object)


def object_id(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        nested_id = value.get("id")
        return nested_id if isinstance(nested_id, str) and nested_id else None
    return None


def object_metadata(data_object: dict[str, Any]) -> dict[str, str]:
    raw_metadata = data_object.get("metadata")
    if not isinstance(raw_metadata, dict):
        return {}
    return {
        str(key): str(value).strip()
        for key, value in raw_metadata.items()
        if value is not None and str(value).strip()
    }


def invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    subscription_id = object_id(invoice.get("subscription"))
    if subscription_id is not None:
        return subscription_id

    # Newer API versions nest the subscription under parent.subscription_details.
    parent = invoice.get("parent")
    if isinstance(parent, dict):
        details = parent.get("subscription_details")
        if isinstance(details, dict):
            return object_id(details.get("subscription"))
    return None
