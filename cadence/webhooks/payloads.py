"""Webhook envelope shapes sent to downstream systems."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

# Named boolean sub-steps reported for every processed item.
DEFAULT_PROCESSING_STEPS = (
    "icon_processed",
    "description_translated",
    "readme_translated",
    "og_image_processed",
    "release_note_translated",
)


def empty_processing_status(steps: tuple[str, ...] = DEFAULT_PROCESSING_STEPS) -> dict[str, bool]:
    return dict.fromkeys(steps, False)


@dataclass
class ProcessingMeta:
    """The ``meta`` block of an item webhook."""

    task_name: str
    processed_at: str
    processing_time_ms: int
    success: bool
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.error_message is None:
            data.pop("error_message")
        return data


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def build_webhook_request(
    entity: dict[str, Any],
    processing_status: dict[str, bool],
    meta: ProcessingMeta,
    event_type: str = "repo_updated",
) -> dict[str, Any]:
    """Wrap an entity snapshot in the standard envelope.

    The ``data`` object carries the entity's fields (datetimes as ISO
    strings) plus ``processing_status`` and ``meta``.
    """
    data = {key: _iso(value) for key, value in entity.items()}
    data["processing_status"] = dict(processing_status)
    data["meta"] = meta.to_dict()
    return {
        "event_type": event_type,
        "timestamp": datetime.now(UTC).isoformat(),
        "data": data,
    }


def build_event(event_type: str, data: dict[str, Any]) -> dict[str, Any]:
    """Minimal envelope for run-level notifications."""
    return {
        "event_type": event_type,
        "timestamp": datetime.now(UTC).isoformat(),
        "data": data,
    }
