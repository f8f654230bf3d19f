"""
Tests for decoding Gmail messages into NormalizedMessage records.
"""

import base64
from datetime import datetime

import pytest

from mailsweep.email_processor.constants import MAX_BODY_SIZE
from mailsweep.email_processor.normalizer import (
    MessageNormalizer, decode_body_data, extract_body, get_header, parse_received_at, truncate_body
)


def b64(text):
    return base64.urlsafe_b64encode(text.encode('utf-8')).decode('ascii')


def part(mime, text=None, parts=None):
    node = {'mimeType': mime, 'body': {'data': b64(text)} if text is not None else {}}
    if parts is not None:
        node['parts'] = parts
    return node


class TestHeaders:

    def test_case_insensitive_first_match(self):
        headers = [
            {'name': 'subject', 'value': 'first'},
            {'name': 'Subject', 'value': 'second'},
        ]
        assert get_header(headers, 'SUBJECT') == 'first'

    def test_missing_header(self):
        assert get_header([{'name': 'From', 'value': 'x'}], 'Subject') == ''
        assert get_header(None, 'Subject') == ''


class TestBodyExtraction:

    def test_single_part_body(self):
        assert extract_body(part('text/plain', 'hello')) == 'hello'

    def test_html_preferred_over_plain(self):
        payload = part('multipart/alternative', parts=[
            part('text/plain', 'plain'),
            part('text/html', '<b>html</b>'),
        ])
        assert extract_body(payload) == '<b>html</b>'

    def test_nested_multipart(self):
        payload = part('multipart/mixed', parts=[
            part('multipart/alternative', parts=[
                part('text/plain', 'deep plain'),
                part('text/html', '<p>deep html</p>'),
            ]),
            part('application/pdf', 'attachment'),
        ])
        assert extract_body(payload) == '<p>deep html</p>'

    def test_falls_back_to_first_non_empty_part(self):
        payload = part('multipart/mixed', parts=[
            part('text/calendar', ''),
            part('text/calendar', 'BEGIN:VCALENDAR'),
        ])
        assert extract_body(payload) == 'BEGIN:VCALENDAR'

    def test_empty_html_falls_through_to_plain(self):
        payload = part('multipart/alternative', parts=[
            part('text/html', ''),
            part('text/plain', 'plain wins'),
        ])
        assert extract_body(payload) == 'plain wins'

    @pytest.mark.parametrize('payload', [None, {}, {'parts': []}, {'body': {'data': '!!!'}}, 'garbage'])
    def test_empty_or_malformed_payload(self, payload):
        assert extract_body(payload) == ''

    def test_depth_is_capped(self):
        node = part('text/plain', 'too deep')
        for _ in range(10):
            node = part('multipart/mixed', parts=[node])
        assert extract_body(node, max_depth=5) == ''
        assert extract_body(node, max_depth=20) == 'too deep'

    def test_payload_is_not_mutated(self):
        payload = part('multipart/alternative', parts=[
            part('text/plain', 'plain'),
            part('text/html', 'html'),
        ])
        before = repr(payload)
        extract_body(payload)
        assert repr(payload) == before

    def test_unpadded_base64(self):
        assert decode_body_data(b64('abcd').rstrip('=')) == 'abcd'
        assert decode_body_data(b64('abcde').rstrip('=')) == 'abcde'


class TestTruncation:

    def test_large_body_truncated_to_cap(self):
        body, truncated = truncate_body('a' * 60000)
        assert len(body.encode('utf-8')) == MAX_BODY_SIZE == 51200
        assert truncated

    def test_small_body_verbatim(self):
        original = 'b' * 1000
        body, truncated = truncate_body(original)
        assert body == original
        assert not truncated

    def test_multibyte_boundary_never_split(self):
        body, truncated = truncate_body('é' * 30000)
        assert truncated
        assert len(body.encode('utf-8')) <= MAX_BODY_SIZE
        body.encode('utf-8')  # valid text

    def test_flag_is_reproducible(self):
        raw = {'id': 'm1', 'payload': part('text/plain', 'x' * 60000)}
        first = MessageNormalizer().normalize(raw)
        second = MessageNormalizer().normalize(raw)
        assert first.body_truncated and second.body_truncated
        assert first.body == second.body


class TestReceivedAt:

    def test_date_header_converted_to_utc(self):
        parsed = parse_received_at('Tue, 14 Nov 2023 23:13:20 +0100')
        assert parsed == datetime(2023, 11, 14, 22, 13, 20)
        assert parsed.tzinfo is None

    def test_falls_back_to_internal_date(self):
        assert parse_received_at('not a date', '1700000000000') == datetime(2023, 11, 14, 22, 13, 20)

    def test_falls_back_to_now(self):
        parsed = parse_received_at('', None)
        assert isinstance(parsed, datetime)

    def test_out_of_range_date_falls_back(self):
        parsed = parse_received_at('Fri, 31 Dec 9999 23:30:00 -0100', '1700000000000')
        assert parsed == datetime(2023, 11, 14, 22, 13, 20)

    def test_out_of_range_date_in_message(self, make_raw_message):
        raw = make_raw_message('m-3')
        raw['payload']['headers'][2]['value'] = 'Fri, 31 Dec 9999 23:30:00 -0100'
        assert MessageNormalizer().normalize(raw).received_at == datetime(2023, 11, 14, 22, 13, 20)


class TestNormalize:

    def test_full_message(self, make_raw_message):
        raw = make_raw_message(
            'm-1', subject='Weekly digest', sender='Digest <digest@example.com>',
            html='<p>News</p>',
            extra_headers={'list-unsubscribe': '<https://example.com/u>'},
        )

        message = MessageNormalizer().normalize(raw)

        assert message.external_id == 'm-1'
        assert message.subject == 'Weekly digest'
        assert message.sender == 'Digest <digest@example.com>'
        assert message.body == '<p>News</p>'
        assert not message.body_truncated
        assert message.list_unsubscribe == '<https://example.com/u>'
        assert message.received_at == datetime(2023, 11, 14, 22, 13, 20)

    def test_missing_payload(self):
        message = MessageNormalizer().normalize({'id': 'm-2'})
        assert message.body == ''
        assert message.subject == ''
        assert message.headers == {}
