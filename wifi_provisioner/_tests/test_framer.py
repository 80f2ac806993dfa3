import pytest

from wifi_provisioner.framer import MessageFramer


def test_single_chunk_message():
    framer = MessageFramer()
    assert framer.feed('response', b'{"status":"ok"}') == '{"status":"ok"}'
    assert framer.pending('response') == ''


def test_message_split_across_chunks():
    framer = MessageFramer()
    assert framer.feed('response', b'{"status":"ok",') is None
    assert framer.feed('response', b'"data":{"a":1') is None
    assert framer.pending('response') == '{"status":"ok","data":{"a":1'
    assert framer.feed('response', b'}}') == '{"status":"ok","data":{"a":1}}'
    assert framer.pending('response') == ''


def test_trailing_whitespace_still_completes():
    framer = MessageFramer()
    assert framer.feed('status', b'{"state":"connected"}\r\n') == '{"state":"connected"}\r\n'


def test_channels_buffer_independently():
    framer = MessageFramer()
    assert framer.feed('response', b'{"status":') is None
    assert framer.feed('status', b'{"state":"connecting"}') == '{"state":"connecting"}'
    assert framer.feed('response', b'"ok"}') == '{"status":"ok"}'


def test_brace_inside_value_is_not_checked():
    # Completion only looks at the last character
    framer = MessageFramer()
    assert framer.feed('response', b'{"ssid":"a}b"') is None
    assert framer.feed('response', b'}') == '{"ssid":"a}b"}'


def test_invalid_utf8_is_replaced():
    framer = MessageFramer()
    message = framer.feed('response', b'{"ssid":"\xff"}')
    assert message is not None
    assert '\ufffd' in message


def test_clear_one_and_all():
    framer = MessageFramer()
    framer.feed('response', b'{"a":')
    framer.feed('status', b'{"b":')
    framer.clear('response')
    assert framer.pending('response') == ''
    assert framer.pending('status') == '{"b":'
    framer.clear()
    assert framer.pending('status') == ''


def test_unknown_channel():
    framer = MessageFramer(channels=('response',))
    assert framer.channels == ('response',)
    with pytest.raises(ValueError):
        framer.feed('status', b'{}')
