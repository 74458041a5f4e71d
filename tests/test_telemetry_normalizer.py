"""Tests for payload normalization and the derived pump label."""

import json

import pytest

from agrismart_telemetry.core import pump_label
from agrismart_telemetry.telemetry_normalizer import (
    MalformedMessageError,
    decode_payload,
    normalize_payload,
)

from conftest import FIXED_NOW


def test_canonical_field_names(sample_payload):
    snapshot = normalize_payload(sample_payload, received_at=FIXED_NOW)

    assert snapshot.soil_raw == 512
    assert snapshot.soil_pct == 42
    assert snapshot.soil_temp == 18.5
    assert snapshot.air_temp == 24.0
    assert snapshot.humidity == 61.0
    assert snapshot.pump_on is False
    assert snapshot.manual is False
    assert snapshot.pump_life == 120
    assert snapshot.observed_at == FIXED_NOW


def test_abbreviated_field_names():
    payload = {
        "s_raw": 700,
        "s_pct": 35,
        "s_temp": 16.0,
        "a_temp": 19.5,
        "hum": 70,
        "pump": True,
        "manual": True,
        "life": 42,
    }

    snapshot = normalize_payload(payload, received_at=FIXED_NOW)

    assert (snapshot.soil_raw, snapshot.soil_pct) == (700, 35)
    assert (snapshot.soil_temp, snapshot.air_temp, snapshot.humidity) == (16.0, 19.5, 70.0)
    assert snapshot.pump_on is True
    assert snapshot.pump_life == 42


def test_zero_readings_are_not_unknown():
    snapshot = normalize_payload(
        {"soil_pct": 0, "air_temp": 0, "humidity": 0.0, "soil_temp": -0.0},
        received_at=FIXED_NOW,
    )

    assert snapshot.air_temp == 0.0
    assert snapshot.humidity == 0.0
    assert snapshot.soil_temp == 0.0


def test_null_and_missing_readings_are_unknown():
    snapshot = normalize_payload(
        {"soil_pct": 20, "air_temp": None, "humidity": float("nan")},
        received_at=FIXED_NOW,
    )

    assert snapshot.air_temp is None
    assert snapshot.humidity is None
    assert snapshot.soil_temp is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(150, 100), (-5, 0), (99.6, 100), (None, 0)],
)
def test_soil_percentage_is_clamped(raw, expected):
    snapshot = normalize_payload({"soil_pct": raw}, received_at=FIXED_NOW)

    assert snapshot.soil_pct == expected


def test_negative_runtime_is_clamped():
    snapshot = normalize_payload({"soil_pct": 1, "pump_life": -3}, received_at=FIXED_NOW)

    assert snapshot.pump_life == 0


@pytest.mark.parametrize(
    ("value", "expected"),
    [(True, True), (False, False), (1, True), (0, False), ("true", True), ("0", False)],
)
def test_boolean_coercion(value, expected):
    snapshot = normalize_payload({"pump_on": value}, received_at=FIXED_NOW)

    assert snapshot.pump_on is expected


def test_json_and_bytes_payloads_are_decoded(sample_payload):
    text = json.dumps(sample_payload)

    assert decode_payload(text) == sample_payload
    assert decode_payload(text.encode("utf-8")) == sample_payload


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        b"\xff\xfe",
        [1, 2, 3],
        42,
        None,
        {"soil_pct": "dry"},
        {"air_temp": True},
        {"pump_on": "maybe"},
        {"manual": 5},
        {"soil_raw": 10**400},
        {"pump_life": -(10**400)},
    ],
)
def test_malformed_payloads_raise(payload):
    with pytest.raises(MalformedMessageError):
        normalize_payload(payload, received_at=FIXED_NOW)


@pytest.mark.parametrize(
    ("pump_on", "manual", "expected"),
    [
        (True, False, "ON"),
        (True, True, "ON"),
        (False, True, "FORCED OFF"),
        (False, False, "OFF"),
    ],
)
def test_pump_label_precedence(pump_on, manual, expected):
    assert pump_label(pump_on, manual) == expected

    snapshot = normalize_payload(
        {"pump_on": pump_on, "manual": manual}, received_at=FIXED_NOW
    )
    assert snapshot.pump_label == expected


def test_mode_label_follows_manual_flag():
    manual = normalize_payload({"manual": True}, received_at=FIXED_NOW)
    auto = normalize_payload({"manual": False}, received_at=FIXED_NOW)

    assert manual.mode_label == "Manual"
    assert auto.mode_label == "Auto"
