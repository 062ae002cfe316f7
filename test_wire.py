"""
Tests for the alert payload and ack text formats.

Tests cover:
- Parsing well-formed payloads in any token order
- Silent defaulting for missing or malformed fields
- Building payloads and ack strings
"""

import pytest

from sosrelay.wire import build_alert_payload, format_ack, parse_alert


FULL_PAYLOAD = "SOS|ID=HX001|LAT=12.8721|LON=80.2254|DIR=NE|TYPE=TSUNAMI|TIME=2025-01-15T10:00:00Z"


class TestParseAlert:

    def test_well_formed_payload(self):
        parsed = parse_alert(FULL_PAYLOAD)
        assert parsed.device_id == "HX001"
        assert parsed.lat == 12.8721
        assert parsed.lon == 80.2254
        assert parsed.direction == "NE"
        assert parsed.type == "TSUNAMI"
        assert parsed.time == "2025-01-15T10:00:00Z"
        assert parsed.flags == ["SOS"]
        assert parsed.degraded is False

    def test_token_order_does_not_matter(self):
        shuffled = "TIME=2025-01-15T10:00:00Z|TYPE=FLOOD|LON=80.2|SOS|LAT=13.0|ID=D9"
        parsed = parse_alert(shuffled)
        assert (parsed.device_id, parsed.lat, parsed.lon, parsed.type) == ("D9", 13.0, 80.2, "FLOOD")

    def test_splits_on_first_equals_only(self):
        parsed = parse_alert("SOS|ID=A=B|LAT=1|LON=2|TYPE=FIRE|TIME=t")
        assert parsed.device_id == "A=B"

    def test_unknown_bare_tokens_are_kept_as_flags(self):
        parsed = parse_alert("SOS|URGENT|ID=X1|LAT=1|LON=2|TYPE=FIRE|TIME=t|")
        assert parsed.flags == ["SOS", "URGENT"]
        assert parsed.device_id == "X1"

    def test_missing_fields_use_defaults(self):
        parsed = parse_alert("SOS", now="2025-02-01T00:00:00Z")
        assert parsed.device_id == "UNKNOWN"
        assert parsed.lat == 0.0
        assert parsed.lon == 0.0
        assert parsed.type == "UNKNOWN"
        assert parsed.time == "2025-02-01T00:00:00Z"
        assert parsed.direction is None
        assert parsed.degraded is True

    def test_missing_time_defaults_to_current_utc(self):
        parsed = parse_alert("SOS|ID=X|LAT=1|LON=2|TYPE=FIRE")
        assert parsed.time.endswith("Z")
        assert parsed.degraded is True

    @pytest.mark.parametrize("value", ["abc", "", "nan", "inf", "-Infinity", "12,5"])
    def test_malformed_coordinates_degrade_to_zero(self, value):
        parsed = parse_alert(f"SOS|ID=X|LAT={value}|LON={value}|TYPE=FIRE|TIME=t")
        assert parsed.lat == 0.0
        assert parsed.lon == 0.0
        assert parsed.degraded is True

    def test_coordinate_with_trailing_text_is_unparsable(self):
        parsed = parse_alert("SOS|ID=X|LAT=12.5N|LON=80.2E|TYPE=FIRE|TIME=t")
        assert (parsed.lat, parsed.lon) == (0.0, 0.0)
        assert parsed.degraded is True

    def test_keys_are_case_insensitive(self):
        parsed = parse_alert("SOS|id=X|lat=12.5|Lon=80.2|type=FIRE|time=t")
        assert (parsed.device_id, parsed.lat, parsed.lon, parsed.type) == ("X", 12.5, 80.2, "FIRE")
        assert parsed.degraded is False

    def test_empty_values_count_as_missing(self):
        parsed = parse_alert("SOS|ID=|LAT=1|LON=2|TYPE=|TIME=t")
        assert parsed.device_id == "UNKNOWN"
        assert parsed.type == "UNKNOWN"

    @pytest.mark.parametrize("raw", ["", "|||", "====", "no delimiters at all", None])
    def test_never_raises(self, raw):
        parsed = parse_alert(raw)
        assert parsed.device_id

    def test_negative_coordinates(self):
        parsed = parse_alert("SOS|ID=S1|LAT=-33.8688|LON=-151.2093|TYPE=FIRE|TIME=t")
        assert (parsed.lat, parsed.lon) == (-33.8688, -151.2093)


class TestBuildAlertPayload:

    def test_builds_wire_format(self):
        payload = build_alert_payload("HX001", 12.8721, 80.2254, "TSUNAMI", "2025-01-15T10:00:00Z", direction="NE")
        assert payload == FULL_PAYLOAD

    def test_direction_is_optional(self):
        payload = build_alert_payload("HX001", 1.5, 2.5, "FIRE", "2025-01-15T10:00:00Z")
        assert "DIR=" not in payload

    def test_parse_recovers_built_values(self):
        values = dict(device_id="DEV-42", lat=-12.3456, lon=130.0001, type="CYCLONE", time="2025-03-04T05:06:07.000Z")
        parsed = parse_alert(build_alert_payload(**values, direction="SW"))
        assert (parsed.device_id, parsed.lat, parsed.lon, parsed.type, parsed.time) == tuple(values.values())
        assert parsed.direction == "SW"
        assert parsed.degraded is False


class TestFormatAck:

    def test_ack_format(self):
        assert format_ack("BASE_SHOLI", 3.14159, "AVAILABLE") == "ACK|SAFEBASE=BASE_SHOLI|DIST=3.14KM|CAPACITY=AVAILABLE"

    def test_no_safe_base(self):
        assert format_ack(None, float("inf"), "AVAILABLE") == "ACK|SAFEBASE=NONE|DIST=InfinityKM|CAPACITY=AVAILABLE"

    def test_rounds_to_two_decimals(self):
        assert format_ack("B", 0.004, "FULL") == "ACK|SAFEBASE=B|DIST=0.00KM|CAPACITY=FULL"
