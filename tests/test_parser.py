from runbuddy.webhook.parser import extract_events
from tests.conftest import make_line_event, make_line_payload


def test_extract_text_message():
    payload = make_line_payload(make_line_event(text="5km走った"))
    events = extract_events(payload)
    assert len(events) == 1
    event = events[0]
    assert event.text == "5km走った"
    assert event.message_type == "text"
    assert event.source.type == "user"
    assert event.source.user_id == "Uuser1"
    assert event.reply_token == "reply-token-1"
    assert event.is_redelivery is False


def test_extract_group_mentions():
    payload = make_line_payload(
        make_line_event(text="@bot やっほー", source_type="group", mention_user_ids=["Ubot0000", "Uother"])
    )
    event = extract_events(payload)[0]
    assert event.source.group_id == "Cgroup1"
    assert [m.user_id for m in event.mentionees] == ["Ubot0000", "Uother"]


def test_extract_image_message_has_no_text():
    payload = make_line_payload(make_line_event(msg_type="image", message_id="555"))
    event = extract_events(payload)[0]
    assert event.message_type == "image"
    assert event.message_id == "555"
    assert event.text == ""
    assert event.mentionees == []


def test_redelivery_flag():
    payload = make_line_payload(make_line_event(redelivery=True))
    assert extract_events(payload)[0].is_redelivery is True


def test_non_message_events_skipped():
    payload = make_line_payload(
        {"type": "follow", "replyToken": "t", "source": {"type": "user", "userId": "U1"}},
        make_line_event(),
    )
    events = extract_events(payload)
    assert len(events) == 1
    assert events[0].message_type == "text"


def test_other_message_kinds_are_kept():
    payload = make_line_payload(make_line_event(msg_type="sticker"))
    events = extract_events(payload)
    assert events[0].message_type == "sticker"


def test_extract_empty_payload():
    assert extract_events({"destination": "U", "events": []}) == []
    assert extract_events({}) == []
