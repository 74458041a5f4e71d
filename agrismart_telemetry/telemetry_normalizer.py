"""Normalization of inbound telemetry payloads into snapshots.

The node firmware has shipped two field-naming conventions (``soil_pct`` and
the abbreviated ``s_pct`` family). ``FIELD_ALIASES`` is the single place that
knows about wire names; everything downstream works with
:class:`~agrismart_telemetry.core.TelemetrySnapshot`.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from .core import TelemetrySnapshot

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "soil_raw": ("soil_raw", "s_raw"),
    "soil_pct": ("soil_pct", "s_pct"),
    "soil_temp": ("soil_temp", "s_temp"),
    "air_temp": ("air_temp", "a_temp"),
    "humidity": ("humidity", "hum"),
    "pump_on": ("pump_on", "pump"),
    "manual": ("manual",),
    "pump_life": ("pump_life", "life"),
}


class MalformedMessageError(ValueError):
    """Raised when a payload cannot be read as a telemetry broadcast."""


def decode_payload(payload: Any) -> Mapping[str, Any]:
    """Return the payload as a mapping, decoding JSON text when needed."""

    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessageError("payload is not valid UTF-8") from exc

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise MalformedMessageError(f"payload is not valid JSON: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise MalformedMessageError(
            f"payload must be an object, got {type(payload).__name__}"
        )
    return payload


def normalize_payload(payload: Any, *, received_at: datetime) -> TelemetrySnapshot:
    """Build a snapshot from one full-state broadcast.

    Any timestamp carried by the payload is ignored; ``received_at`` is the
    authoritative observation time.

    Raises:
        MalformedMessageError: If the payload is not an object or a field has
            an unusable type.
    """

    data = decode_payload(payload)

    soil_pct = _coerce_int(_lookup(data, "soil_pct"), "soil_pct")
    soil_raw = _coerce_int(_lookup(data, "soil_raw"), "soil_raw")
    pump_life = _coerce_int(_lookup(data, "pump_life"), "pump_life")

    return TelemetrySnapshot(
        soil_raw=soil_raw if soil_raw is not None else 0,
        soil_pct=min(100, max(0, soil_pct)) if soil_pct is not None else 0,
        soil_temp=_coerce_float(_lookup(data, "soil_temp"), "soil_temp"),
        air_temp=_coerce_float(_lookup(data, "air_temp"), "air_temp"),
        humidity=_coerce_float(_lookup(data, "humidity"), "humidity"),
        pump_on=_coerce_bool(_lookup(data, "pump_on"), "pump_on"),
        manual=_coerce_bool(_lookup(data, "manual"), "manual"),
        pump_life=max(0, pump_life) if pump_life is not None else 0,
        observed_at=received_at,
    )


def _lookup(data: Mapping[str, Any], field_name: str) -> Any:
    for key in FIELD_ALIASES[field_name]:
        if key in data:
            return data[key]
    return None


def _coerce_float(value: Any, field_name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedMessageError(f"{field_name} must be numeric, got a boolean")
    try:
        numeric = float(value)
    except OverflowError as exc:
        raise MalformedMessageError(f"{field_name} is out of range") from exc
    except (TypeError, ValueError) as exc:
        raise MalformedMessageError(
            f"{field_name} must be numeric, got {value!r}"
        ) from exc
    if math.isnan(numeric) or math.isinf(numeric):
        return None
    return numeric


def _coerce_int(value: Any, field_name: str) -> Optional[int]:
    numeric = _coerce_float(value, field_name)
    if numeric is None:
        return None
    return int(round(numeric))


def _coerce_bool(value: Any, field_name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    raise MalformedMessageError(f"{field_name} must be a boolean, got {value!r}")
