import json

import pytest

from relaycore.delivery import (
    MessageTooLargeError,
    allowed_to_send,
    auth_challenge_message,
    check_message_size,
    eose_message,
    event_message,
    notice_message,
    ok_message,
)

AUTHOR = "a" * 64
RECIPIENT = "b" * 64
OTHER = "c" * 64


def make_event(kind, tags=None, pubkey=AUTHOR):
    return json.dumps(
        {
            "id": "0" * 64,
            "pubkey": pubkey,
            "created_at": 1691239763,
            "kind": kind,
            "tags": tags if tags is not None else [],
            "content": "hello world",
            "sig": "0" * 128,
        }
    )


def test_everything_allowed_without_dm_restriction():
    assert allowed_to_send("not json at all", None, False) is True
    assert allowed_to_send(make_event(4, [["p", RECIPIENT]]), None, False) is True


def test_unparseable_event_refused_with_dm_restriction():
    assert allowed_to_send("not json", RECIPIENT, True) is False
    assert allowed_to_send("[1,2,3]", RECIPIENT, True) is False


def test_public_kind_allowed_with_dm_restriction():
    assert allowed_to_send(make_event(1), None, True) is True


@pytest.mark.parametrize("kind", [4, 44, 1059])
def test_private_kinds_go_to_recipient(kind):
    event = make_event(kind, [["p", RECIPIENT]])
    assert allowed_to_send(event, RECIPIENT, True) is True
    assert allowed_to_send(event, AUTHOR, True) is True
    assert allowed_to_send(event, OTHER, True) is False
    assert allowed_to_send(event, None, True) is False


def test_private_kind_without_recipient_refused():
    assert allowed_to_send(make_event(4), AUTHOR, True) is False


def test_only_first_recipient_counts():
    event = make_event(4, [["p", OTHER], ["p", RECIPIENT]])
    assert allowed_to_send(event, OTHER, True) is True
    assert allowed_to_send(event, RECIPIENT, True) is False


def test_eose_message_strips_quotes():
    assert eose_message("sub") == '["EOSE","sub"]'
    assert json.loads(eose_message('a"b')) == ["EOSE", "ab"]


def test_event_message_embeds_event_json():
    event = make_event(1)
    decoded = json.loads(event_message('x"y', event))
    assert decoded[0] == "EVENT"
    assert decoded[1] == "xy"
    assert decoded[2] == json.loads(event)


def test_notice_message():
    assert json.loads(notice_message("could not parse command")) == [
        "NOTICE",
        "could not parse command",
    ]
    assert " " not in notice_message("x")


def test_ok_message_round_trip():
    decoded = json.loads(ok_message("abc", False, "invalid: bad"))
    assert decoded == ["OK", "abc", False, "invalid: bad"]
    assert json.loads(ok_message("abc", True, ""))[2] is True


def test_auth_challenge_message():
    assert json.loads(auth_challenge_message("challenge")) == ["AUTH", "challenge"]


def test_check_message_size_within_limit():
    assert check_message_size("abcd", 4) == 4
    assert check_message_size("abcd", None) == 4
    assert check_message_size("abcd", 0) == 4


def test_check_message_size_counts_utf8_bytes():
    assert check_message_size("é", None) == 2
    with pytest.raises(MessageTooLargeError):
        check_message_size("é", 1)


def test_check_message_size_too_large():
    with pytest.raises(MessageTooLargeError) as info:
        check_message_size("abcde", 4)
    assert info.value.size == 5
    assert info.value.max_size == 4