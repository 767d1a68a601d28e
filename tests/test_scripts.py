"""Tests for the operational scripts."""

from unittest.mock import patch

import pytest

import mailer
import replay_outbox
import send_stock_alerts
from errors import TransportError
from outbox import SideEffectOutbox


def test_stock_alerts_list_low_parts(client, seed):
    client.put(f"/api/parts/{seed['cable']['id']}", json={"stock_qty": 0})
    parts = send_stock_alerts.build_alerts()
    assert [p["part_number"] for p in parts] == ["P1"]
    body = send_stock_alerts.build_body(parts, 2)
    assert "Steering cable [P1] | In stock: 0 piece" in body


def test_stock_alerts_sent_to_each_recipient(client, seed, monkeypatch):
    client.put(f"/api/parts/{seed['cable']['id']}", json={"stock_qty": 1})
    monkeypatch.setenv("STOCK_ALERT_TO", "store@example.com, boss@example.com")
    with patch.object(send_stock_alerts, "send_email", return_value=2) as send_email:
        send_stock_alerts.main()
    send_email.assert_called_once()
    assert send_email.call_args.args[0] == ["store@example.com", "boss@example.com"]
    assert send_email.call_args.args[1] == "Low stock alert: 1 part(s)"


def test_stock_alerts_need_recipients(monkeypatch):
    monkeypatch.delenv("STOCK_ALERT_TO", raising=False)
    with pytest.raises(RuntimeError):
        send_stock_alerts.main()


def test_mailer_sends_each_address_on_one_connection(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_USER", "alerts@example.com")
    monkeypatch.setenv("SMTP_PASSWORD", "secret")
    monkeypatch.delenv("SMTP_FROM", raising=False)
    monkeypatch.delenv("SMTP_PORT", raising=False)
    with patch.object(mailer.smtplib, "SMTP") as smtp_class:
        assert mailer.send_email(["a@example.com", "b@example.com"], "Low stock", "body") == 2
    smtp_class.assert_called_once_with("smtp.example.com", 587)
    server = smtp_class.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("alerts@example.com", "secret")
    sent = [c.args[0] for c in server.send_message.call_args_list]
    assert [m["To"] for m in sent] == ["a@example.com", "b@example.com"]
    assert sent[0]["From"] == "alerts@example.com"


def test_mailer_needs_host(monkeypatch):
    monkeypatch.delenv("SMTP_HOST", raising=False)
    with pytest.raises(RuntimeError):
        mailer.send_email("a@example.com", "Low stock", "body")


def test_replay_outbox(tmp_path, monkeypatch):
    path = str(tmp_path / "outbox.json")
    SideEffectOutbox(path).add("serial-history", {"entry_key": "maintenance:1"})
    monkeypatch.setattr(replay_outbox.Config, "OUTBOX_PATH", path)
    with patch.object(replay_outbox, "ApiGateway") as gateway_class:
        assert replay_outbox.main() == 0
    gateway_class.return_value.create.assert_called_once_with("serial-history", {"entry_key": "maintenance:1"})
    assert len(SideEffectOutbox(path)) == 0


def test_replay_outbox_sets_aside_rejected_entries(tmp_path, monkeypatch):
    path = str(tmp_path / "outbox.json")
    SideEffectOutbox(path).add("parts-usage-logs", {"entryKey": "usage:9:7:0"})
    monkeypatch.setattr(replay_outbox.Config, "OUTBOX_PATH", path)
    with patch.object(replay_outbox, "ApiGateway") as gateway_class:
        gateway_class.return_value.create.side_effect = TransportError("Job not found", status_code=404)
        assert replay_outbox.main() == 0
    reopened = SideEffectOutbox(path)
    assert len(reopened) == 0
    assert reopened.dead_letters()[0]["entry"] == {"entryKey": "usage:9:7:0"}
