"""Tests for the durable side-effect outbox."""

import json
import logging

from errors import TransportError
from outbox import SideEffectOutbox


def test_in_memory_outbox(tmp_path):
    outbox = SideEffectOutbox()
    outbox.add("serial-history", {"entry_key": "maintenance:1"}, TransportError("down"))
    assert len(outbox) == 1
    assert outbox.pending()[0]["last_error"] == "down"
    assert list(tmp_path.iterdir()) == []


def test_survives_restart(tmp_path):
    path = tmp_path / "queue" / "outbox.json"
    SideEffectOutbox(str(path)).add("parts-usage-logs", {"entryKey": "usage:1:7:0", "partName": "ผ้าเบรก"})
    reopened = SideEffectOutbox(str(path))
    assert reopened.pending()[0]["entry"]["partName"] == "ผ้าเบรก"
    assert "ผ้าเบรก" in path.read_text(encoding="utf-8")


def test_drain_keeps_undelivered(tmp_path):
    outbox = SideEffectOutbox(str(tmp_path / "outbox.json"))
    outbox.add("parts-usage-logs", {"entryKey": "a"})
    outbox.add("serial-history", {"entry_key": "b"})
    sent = []

    def send(resource, entry):
        if resource == "serial-history":
            raise TransportError("still down", status_code=503)
        sent.append(entry)

    delivered, remaining = outbox.drain(send)
    assert sent == [{"entryKey": "a"}]
    assert [item["resource"] for item in delivered] == ["parts-usage-logs"]
    assert remaining[0]["attempts"] == 2
    assert remaining[0]["last_error"] == "still down"
    assert len(SideEffectOutbox(str(tmp_path / "outbox.json"))) == 1


def test_rejected_entries_become_dead_letters(tmp_path, caplog):
    path = str(tmp_path / "outbox.json")
    outbox = SideEffectOutbox(path)
    outbox.add("parts-usage-logs", {"entryKey": "bad"})
    outbox.add("serial-history", {"entry_key": "busy"})
    outbox.add("serial-history", {"entry_key": "offline"})
    errors = {
        "bad": TransportError("Job not found", status_code=404),
        "busy": TransportError("Too many requests", status_code=429),
        "offline": TransportError("Cannot reach the server."),
    }

    def send(resource, entry):
        raise errors[entry.get("entryKey") or entry.get("entry_key")]

    with caplog.at_level(logging.ERROR, logger="outbox"):
        delivered, remaining = outbox.drain(send)
    assert delivered == []
    assert [item["entry"] for item in remaining] == [{"entry_key": "busy"}, {"entry_key": "offline"}]
    (dead,) = outbox.dead_letters()
    assert dead["entry"] == {"entryKey": "bad"}
    assert dead["status_code"] == 404
    assert "HTTP 404" in caplog.text

    reopened = SideEffectOutbox(path)
    assert len(reopened) == 2
    assert len(reopened.dead_letters()) == 1
    # dead letters are not sent again
    calls = []
    reopened.drain(lambda resource, entry: calls.append(entry))
    assert {"entryKey": "bad"} not in calls
    assert len(calls) == 2


def test_unreadable_file_starts_empty(tmp_path):
    path = tmp_path / "outbox.json"
    path.write_text("{not json", encoding="utf-8")
    assert len(SideEffectOutbox(str(path))) == 0


def test_reads_pending_list_file(tmp_path):
    path = tmp_path / "outbox.json"
    path.write_text(json.dumps([{"resource": "serial-history", "entry": {"entry_key": "x"}, "attempts": 1}]))
    outbox = SideEffectOutbox(str(path))
    assert len(outbox) == 1
    assert outbox.dead_letters() == []
    outbox.add("serial-history", {"entry_key": "y"})
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert [item["entry"]["entry_key"] for item in stored["pending"]] == ["x", "y"]
    assert stored["dead"] == []
