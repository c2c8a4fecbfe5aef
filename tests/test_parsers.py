"""Tests for the Atlas line parsers."""

from datetime import datetime, timezone

import pytest

from atlas_trace.errors import MalformedLineError, TimestampError, UnrecognizedFormatError
from atlas_trace.models import (
    ClientHeader,
    CommandKind,
    ErrorRecord,
    HostLoad,
    OpUse,
    Request,
    Response,
    Unparsed,
)
from atlas_trace.parsers import (
    parse_client_header,
    parse_hostload,
    parse_line,
    parse_line_json,
    parse_opuse,
    parse_timestamp,
    split_component,
    split_header,
)
from conftest import (
    ERROR_LINE,
    HOSTLOAD_LINE,
    OPUSE_LINE,
    REQUEST_LINE,
    RESPONSE_JSON_LINE,
    RESPONSE_KV_LINE,
    UNPARSED_LINE,
)

HEAD = "Aug 22 10:51:02 atl2 atlas: "


class TestSplitHeader:
    def test_splits_timestamp_host_payload(self):
        ts, host, payload = split_header(HOSTLOAD_LINE)
        assert ts == "Aug 22 13:24:05"
        assert host == "atl2.shared.phx2"
        assert payload == "atlas: hostload,13:24:05.630,ARZ,0,13:24:04,29"

    def test_single_digit_day(self):
        ts, host, _ = split_header("Jan  5 14:30:01 myhost atlas: x")
        assert ts == "Jan  5 14:30:01"
        assert host == "myhost"

    def test_too_short(self):
        with pytest.raises(MalformedLineError):
            split_header("Aug 22 10:51")

    def test_missing_payload_separator(self):
        with pytest.raises(MalformedLineError):
            split_header("Aug 22 10:51:02 hostonly")

    def test_split_component(self):
        assert split_component("atlas: hostload,1") == ("atlas:", "hostload,1")

    def test_split_component_missing(self):
        with pytest.raises(MalformedLineError):
            split_component("atlas:")


class TestParseTimestamp:
    def test_injects_current_year(self, now):
        ts = parse_timestamp("Aug 22 10:51:02", now)
        assert ts == datetime(2026, 8, 22, 10, 51, 2, tzinfo=timezone.utc)

    def test_padded_day(self, now):
        ts = parse_timestamp("Jan  5 14:30:01", now)
        assert ts == datetime(2026, 1, 5, 14, 30, 1, tzinfo=timezone.utc)

    def test_december_line_read_in_january(self):
        now = datetime(2027, 1, 1, 0, 30, tzinfo=timezone.utc)
        assert parse_timestamp("Dec 31 23:59:00", now).year == 2026
        assert parse_timestamp("Jan  1 00:10:00", now).year == 2027

    def test_small_clock_skew_keeps_year(self):
        now = datetime(2026, 8, 22, 10, 0, tzinfo=timezone.utc)
        assert parse_timestamp("Aug 22 12:00:00", now).year == 2026

    def test_invalid(self, now):
        with pytest.raises(TimestampError):
            parse_timestamp("Xyz 22 10:51:02", now)


class TestClientHeader:
    def test_quad(self):
        client = parse_client_header("363776339/192.168.48.45/52401/414")
        assert client == ClientHeader(message_id=363776339, ip="192.168.48.45", port=52401, socket=414)

    def test_wrong_arity(self):
        with pytest.raises(UnrecognizedFormatError):
            parse_client_header("1/192.168.0.1/80")

    def test_non_numeric(self):
        with pytest.raises(UnrecognizedFormatError):
            parse_client_header("1/192.168.0.1/http/4")


class TestResponse:
    def test_kv_fragments(self, now):
        record = parse_line(RESPONSE_KV_LINE, now)
        assert record.kind is CommandKind.RESPONSE
        assert record.command_type == "response"
        assert record.hostname == "atl2.shared.phx2"
        assert record.timestamp == datetime(2026, 8, 22, 10, 51, 2, tzinfo=timezone.utc)

        cmd = record.command
        assert isinstance(cmd, Response)
        assert cmd.log_time == "10:51:02.620"
        assert cmd.length_hex == "00000BDF"
        assert cmd.client.message_id == 363776339
        assert cmd.message["header"] == {
            "result": "0x0", "statmsg": "QUE", "cache": 1,
            "uid": "abc", "sid": "xyz", "duration": "0.250",
        }
        assert cmd.message["command1"] == {"evt": 42, "name": "Seat"}

    def test_embedded_json(self, now):
        record = parse_line(RESPONSE_JSON_LINE, now)
        assert record.command.message == {
            "header": {"uid": "u-1", "duration": "1.5"},
            "body": {"count": 3, "items": [1, 2]},
        }

    def test_embedded_json_ignores_later_fragments(self, now):
        record = parse_line(HEAD + 'response,t,1/10.0.0.1/2/3,0A|{"a":1}|b=2', now)
        assert record.command.message == {"a": 1}

    def test_request(self, now):
        record = parse_line(REQUEST_LINE, now)
        assert record.kind is CommandKind.REQUEST
        assert isinstance(record.command, Request)
        assert record.command.message == {"header": {"mode": 12, "quenum": "0x1"}}

    def test_bad_client_quad_demotes(self, now):
        payload = "response,10:51:02.620,abc/192.168.48.45/52401/414,00000BDF|a=1"
        record = parse_line(HEAD + payload, now)
        assert record.kind is CommandKind.UNPARSED
        assert record.command_type == "response"
        assert record.command == Unparsed(raw=payload)

    def test_header_arity_demotes(self, now):
        record = parse_line(HEAD + "response,10:51:02.620,1/10.0.0.1/2/3|a=1", now)
        assert record.kind is CommandKind.UNPARSED

    def test_no_message_demotes(self, now):
        record = parse_line(HEAD + "response,t,1/10.0.0.1/2/3,0A", now)
        assert record.kind is CommandKind.UNPARSED

    def test_bad_fragment_demotes(self, now):
        record = parse_line(HEAD + "response,t,1/10.0.0.1/2/3,0A|a=1|garbage", now)
        assert record.kind is CommandKind.UNPARSED


class TestError:
    def test_fragments_merged(self, now):
        record = parse_line(ERROR_LINE, now)
        assert record.kind is CommandKind.ERROR
        assert record.command_type == "error"
        assert record.command == ErrorRecord(
            log_time="13:42:56.960",
            length_hex="0000016A",
            message={"code": 9, "text": "boom", "where": "pay"},
        )

    def test_header_arity_demotes(self, now):
        record = parse_line(HEAD + "error,13:42:56.960|a=1", now)
        assert record.kind is CommandKind.UNPARSED
        assert record.command_type == "error"


class TestOpuse:
    EXPECTED = OpUse(
        log_time="14:54:35.450", vax_time="14:54:35", host="CH6", portset=6,
        usage="CartOps", usedcur=0, quecur=0, usedpeak=10, quepeak=8,
        usedtot=406347, quetot=406361, min=0, max=100, ideal=9,
    )

    def test_escaped_data_block(self, now):
        record = parse_line(OPUSE_LINE, now)
        assert record.kind is CommandKind.OPUSE
        assert record.command == self.EXPECTED

    def test_plain_data_block(self):
        payload = r"opuse,14:54:35.450,14:54:35\tCH6\6\CartOps\0\0\10\8\406347\406361\0\100\9"
        command_type, opuse = parse_opuse(payload)
        assert command_type == "opuse"
        assert opuse == self.EXPECTED

    def test_wrong_field_count(self):
        with pytest.raises(UnrecognizedFormatError):
            parse_opuse(r"opuse,1,2\tCH6\\6\\CartOps")

    def test_non_numeric_field(self):
        with pytest.raises(UnrecognizedFormatError):
            parse_opuse(r"opuse,1,2\tCH6\x\CartOps\0\0\10\8\406347\406361\0\100\9")

    def test_missing_tab_demotes(self, now):
        record = parse_line(HEAD + r"opuse,14:54:35.450,14:54:35", now)
        assert record.kind is CommandKind.UNPARSED
        assert record.command_type == "opuse"


class TestHostload:
    def test_fields(self, now):
        record = parse_line(HOSTLOAD_LINE, now)
        assert record.kind is CommandKind.HOSTLOAD
        assert record.command == HostLoad(
            log_time="13:24:05.630", vax="ARZ", load=0, vax_time="13:24:04", flags=29,
        )

    def test_arity(self):
        with pytest.raises(UnrecognizedFormatError):
            parse_hostload("hostload,13:24:05.630,ARZ,0,13:24:04")

    def test_non_numeric_demotes(self, now):
        record = parse_line(HEAD + "hostload,13:24:05.630,ARZ,high,13:24:04,29", now)
        assert record.kind is CommandKind.UNPARSED


class TestDispatch:
    def test_unknown_command(self, now):
        record = parse_line(UNPARSED_LINE, now)
        assert record.kind is CommandKind.UNPARSED
        assert record.command_type == "syncwait"
        assert record.command.raw == "syncwait,15:18:32.100,42"

    def test_empty_first_token(self, now):
        record = parse_line(HEAD + ",odd", now)
        assert record.command_type == "unparsed"

    def test_prefix_requires_comma(self, now):
        record = parse_line(HEAD + "hostloadX,1,2", now)
        assert record.kind is CommandKind.UNPARSED

    def test_bad_timestamp_fails_whole_line(self, now):
        with pytest.raises(TimestampError):
            parse_line("Xyz 22 10:51:02 atl2 atlas: " + "hostload,1,ARZ,0,2,3", now)

    def test_missing_component_label(self, now):
        with pytest.raises(MalformedLineError):
            parse_line("Aug 22 10:51:02 atl2 hostload,1,ARZ,0,2,3", now)

    @pytest.mark.parametrize("line", [
        RESPONSE_KV_LINE, RESPONSE_JSON_LINE, REQUEST_LINE,
        ERROR_LINE, OPUSE_LINE, HOSTLOAD_LINE, UNPARSED_LINE,
    ])
    def test_deterministic(self, line, now):
        assert parse_line_json(line, now) == parse_line_json(line, now)
