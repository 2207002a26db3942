"""Conversation reconciliation: push merges, snapshots, acks and unread counters."""

import asyncio
import itertools

import pytest

from switchboard.models.conversation import DeliveryState
from switchboard.models.session import SessionState
from switchboard.models.events import WireMessage

from conftest import wire_message


async def _ready(dashboard, session_id="s1"):
    await dashboard.push("client_ready", {"sessionId": session_id})


async def _receive(dashboard, msg, session_id="s1"):
    return await dashboard.push("message_received", {"sessionId": session_id, "message": msg})


@pytest.mark.asyncio
async def test_duplicate_push_is_stored_once(dashboard):
    await _ready(dashboard)
    msg = wire_message("m1", "c1@c.us", 100)
    await _receive(dashboard, msg)
    await _receive(dashboard, msg)

    messages = dashboard.reconciler.messages("s1", "c1@c.us")
    assert [m.id for m in messages] == ["m1"]
    assert dashboard.reconciler.conversation("s1", "c1@c.us").unread_count == 1


@pytest.mark.asyncio
async def test_stale_ack_does_not_regress(dashboard):
    await _ready(dashboard)
    await _receive(dashboard, wire_message("m1", "c1@c.us", 100, from_me=True, ack=1))
    await dashboard.push("message_ack", {"sessionId": "s1", "msgId": "m1", "ack": 2})
    await dashboard.push("message_ack", {"sessionId": "s1", "msgId": "m1", "ack": 1})
    assert dashboard.reconciler.messages("s1", "c1@c.us")[0].delivery_state is DeliveryState.DELIVERED


def test_ack_for_unknown_message_is_dropped(dashboard):
    assert dashboard.reconciler.apply_delivery_state("s1", "ghost", 3) is False


@pytest.mark.asyncio
async def test_push_synthesizes_conversation_with_name_fallback(dashboard):
    await _ready(dashboard)
    await _receive(dashboard, wire_message("m1", "111@c.us", 100, sender={"pushname": "Ana"}))
    await _receive(dashboard, wire_message("m2", "222@c.us", 101, sender={"number": "222"}))
    await _receive(dashboard, wire_message("m3", "333@c.us", 102))
    await _receive(dashboard, wire_message("m4", "team@g.us", 103, chatName="Team", sender={"pushname": "Bo"}))

    names = {c.id: c.display_name for c in dashboard.reconciler.conversations("s1")}
    assert names == {"111@c.us": "Ana", "222@c.us": "222", "333@c.us": "333@c.us", "team@g.us": "Team"}
    assert dashboard.reconciler.conversation("s1", "team@g.us").is_group is True


@pytest.mark.asyncio
async def test_group_without_chat_name_uses_sender_chain(dashboard):
    await _ready(dashboard)
    await _receive(dashboard, wire_message("m1", "crew@g.us", 100, sender={"pushname": "Bo"}))
    await _receive(dashboard, wire_message("m2", "ops@g.us", 101, sender={"number": "555"}))
    assert dashboard.reconciler.conversation("s1", "crew@g.us").display_name == "Bo"
    assert dashboard.reconciler.conversation("s1", "ops@g.us").display_name == "555"


@pytest.mark.asyncio
async def test_conversations_ordered_by_last_activity(dashboard):
    await _ready(dashboard)
    await _receive(dashboard, wire_message("m1", "a@c.us", 100))
    await _receive(dashboard, wire_message("m2", "b@c.us", 200))
    await _receive(dashboard, wire_message("m3", "a@c.us", 300))
    assert [c.id for c in dashboard.reconciler.conversations("s1")] == ["a@c.us", "b@c.us"]


@pytest.mark.asyncio
async def test_unread_counts_skip_self_and_selected(dashboard):
    await _ready(dashboard)
    await _receive(dashboard, wire_message("m1", "a@c.us", 100))
    await _receive(dashboard, wire_message("m2", "a@c.us", 101, from_me=True))
    session = dashboard.registry.get("s1")
    assert dashboard.reconciler.conversation("s1", "a@c.us").unread_count == 1
    assert session.unread_count == 1
    assert session.last_message_time == 101

    await dashboard.reconciler.select_conversation("s1", "a@c.us")
    assert dashboard.reconciler.conversation("s1", "a@c.us").unread_count == 0
    assert session.unread_count == 0

    result = dashboard.reconciler.merge_push("s1", WireMessage.model_validate(wire_message("m3", "a@c.us", 102)))
    assert result.added and not result.unread_bumped
    assert dashboard.reconciler.conversation("s1", "a@c.us").unread_count == 0


@pytest.mark.asyncio
async def test_snapshot_merges_with_pushes_that_arrive_during_load(dashboard):
    await _ready(dashboard)
    key = ("s1", "c@c.us")
    dashboard.api.messages[key] = [
        wire_message("m1", "c@c.us", 100),
        wire_message("m2", "c@c.us", 200, ack=1, fromMe=True),
    ]
    gate = dashboard.api.gates[key] = asyncio.Event()

    load = asyncio.ensure_future(dashboard.reconciler.select_conversation(*key))
    await asyncio.sleep(0)
    # m2 already in the snapshot, m3 only via push
    await _receive(dashboard, wire_message("m2", "c@c.us", 200, ack=1, fromMe=True))
    await dashboard.push("message_ack", {"sessionId": "s1", "msgId": "m2", "ack": 3})
    await _receive(dashboard, wire_message("m3", "c@c.us", 300))
    gate.set()
    messages = await load

    assert [m.id for m in messages] == ["m1", "m2", "m3"]
    assert messages[1].delivery_state is DeliveryState.READ
    assert dashboard.reconciler.conversation(*key).last_message.id == "m3"


@pytest.mark.asyncio
async def test_superseded_snapshot_is_discarded(dashboard):
    await _ready(dashboard)
    dashboard.api.messages[("s1", "a@c.us")] = [wire_message("a1", "a@c.us", 100)]
    dashboard.api.messages[("s1", "b@c.us")] = [wire_message("b1", "b@c.us", 100)]
    gate = dashboard.api.gates[("s1", "a@c.us")] = asyncio.Event()

    first = asyncio.ensure_future(dashboard.reconciler.select_conversation("s1", "a@c.us"))
    await asyncio.sleep(0)
    second = await dashboard.reconciler.select_conversation("s1", "b@c.us")
    gate.set()
    discarded = await first

    assert [m.id for m in second] == ["b1"]
    assert discarded == []
    assert dashboard.reconciler.messages("s1", "a@c.us") == []
    assert dashboard.sessions.selected_conversation == ("s1", "b@c.us")


@pytest.mark.asyncio
async def test_load_conversations_seeds_list(dashboard):
    await _ready(dashboard)
    dashboard.api.chats["s1"] = [
        {"id": {"_serialized": "a@c.us"}, "name": "Ana", "timestamp": 300, "unreadCount": 2},
        {"id": "team@g.us", "name": "Team", "timestamp": 200, "isGroup": True},
    ]
    rows = await dashboard.reconciler.load_conversations("s1")
    assert [(c.id, c.display_name, c.unread_count) for c in rows] == [("a@c.us", "Ana", 2), ("team@g.us", "Team", 0)]
    assert rows[1].is_group


@pytest.mark.asyncio
async def test_delete_message_updates_last_message(dashboard):
    await _ready(dashboard)
    await _receive(dashboard, wire_message("m1", "a@c.us", 100))
    await _receive(dashboard, wire_message("m2", "a@c.us", 200))
    await dashboard.reconciler.delete_message("s1", "a@c.us", "m2")

    assert dashboard.api.calls[-1] == ("delete_message", ("s1", "a@c.us", "m2"))
    assert [m.id for m in dashboard.reconciler.messages("s1", "a@c.us")] == ["m1"]
    assert dashboard.reconciler.conversation("s1", "a@c.us").last_message.id == "m1"
    assert dashboard.reconciler.apply_delivery_state("s1", "m2", 3) is False


@pytest.mark.asyncio
async def test_logged_out_drops_conversations(dashboard):
    await _ready(dashboard)
    await _receive(dashboard, wire_message("m1", "a@c.us", 100))
    await dashboard.push("client_logged_out", {"sessionId": "s1"})
    assert dashboard.reconciler.conversations("s1") == []


@pytest.mark.asyncio
async def test_new_message_listener_only_sees_additions(dashboard):
    await _ready(dashboard)
    seen = []
    remove = dashboard.reconciler.add_new_message_listener(lambda r: seen.append(r.message.id))
    msg = wire_message("m1", "a@c.us", 100)
    await _receive(dashboard, msg)
    await _receive(dashboard, msg)
    remove()
    await _receive(dashboard, wire_message("m2", "a@c.us", 101))
    assert seen == ["m1"]


@pytest.mark.asyncio
async def test_delivery_state_is_max_of_any_ack_sequence(dashboard):
    await _ready(dashboard)
    n = 0
    for order in itertools.permutations(range(5)):
        for k in range(1, 6):
            n += 1
            msg_id = f"m{n}"
            await _receive(dashboard, wire_message(msg_id, "a@c.us", n, from_me=True))
            for ack in order[:k]:
                await dashboard.push("message_ack", {"sessionId": "s1", "msgId": msg_id, "ack": ack})
            stored = dashboard.conversations.find_message("s1", msg_id)
            assert stored.delivery_state == max(order[:k]), order[:k]


@pytest.mark.asyncio
async def test_ack_before_message_is_a_no_op(dashboard):
    await _ready(dashboard)
    await dashboard.push("message_ack", {"sessionId": "s1", "msgId": "m1", "ack": 3})
    assert dashboard.reconciler.conversations("s1") == []

    await _receive(dashboard, wire_message("m1", "a@c.us", 100, from_me=True, ack=1))
    assert dashboard.reconciler.messages("s1", "a@c.us")[0].delivery_state is DeliveryState.SENT


@pytest.mark.asyncio
async def test_snapshot_keeps_higher_state_of_known_copy(dashboard):
    await _ready(dashboard)
    await _receive(dashboard, wire_message("m1", "a@c.us", 100, from_me=True, ack=3))
    dashboard.api.messages[("s1", "a@c.us")] = [wire_message("m1", "a@c.us", 100, from_me=True, ack=1)]

    messages = await dashboard.reconciler.select_conversation("s1", "a@c.us")
    assert [m.id for m in messages] == ["m1"]
    assert messages[0].delivery_state is DeliveryState.READ


@pytest.mark.asyncio
async def test_message_for_unknown_session_registers_it(dashboard):
    seen = []
    dashboard.registry.add_listener(lambda s, prev: seen.append((s.id, s.state, prev)))
    await _receive(dashboard, wire_message("m1", "a@c.us", 100), session_id="s9")

    session = dashboard.registry.get("s9")
    assert session is not None
    assert session.state is SessionState.READY
    assert session.unread_count == 1
    assert session.last_message_time == 100
    assert seen == [("s9", SessionState.READY, None)]


@pytest.mark.asyncio
async def test_logged_out_status_drops_conversations(dashboard):
    await _ready(dashboard)
    await _receive(dashboard, wire_message("m1", "a@c.us", 100))
    await dashboard.push("status_update", {"sessionId": "s1", "status": "logged_out"})

    assert dashboard.registry.get("s1") is None
    assert dashboard.reconciler.conversations("s1") == []
    assert dashboard.conversations.find_message("s1", "m1") is None

    await _ready(dashboard)
    assert dashboard.reconciler.conversations("s1") == []
    assert dashboard.registry.get("s1").unread_count == 0
