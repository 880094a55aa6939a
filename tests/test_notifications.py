from __future__ import annotations

from frontdesk.app.notifications import KIND_ERROR, KIND_INFO, KIND_SUCCESS, NotificationChannel


def test_show_replaces_current_message(qapp):
    channel = NotificationChannel(timeout_ms=4000)

    channel.success("Saved.")
    channel.error("Could not save.")

    assert channel.current.message == "Could not save."
    assert channel.current.kind == KIND_ERROR
    assert channel.current.visible


def test_default_timeout_is_four_seconds(qapp):
    channel = NotificationChannel()
    assert channel.timeout_ms == 4000


def test_message_hides_itself_after_timeout(qtbot):
    channel = NotificationChannel(timeout_ms=30)
    channel.success("Saved.")

    qtbot.waitUntil(lambda: not channel.current.visible, timeout=2000)
    assert channel.current.message == "Saved."


def test_new_message_restarts_the_timer(qtbot):
    channel = NotificationChannel(timeout_ms=200)
    channel.success("First")
    qtbot.wait(120)
    channel.error("Second")
    qtbot.wait(120)

    assert channel.current.visible
    assert channel.current.message == "Second"


def test_dismiss_stops_pending_timer(qtbot):
    channel = NotificationChannel(timeout_ms=4000)
    changes = []
    channel.changed.connect(changes.append)
    channel.show("Working", KIND_INFO)

    channel.dismiss()

    assert not channel.current.visible
    assert not channel.dismiss_pending
    channel.dismiss()
    assert len(changes) == 2


def test_unknown_kind_falls_back_to_info(qapp):
    channel = NotificationChannel()
    channel.show("Hello", "loud")
    assert channel.current.kind == KIND_INFO
    channel.show("Done", KIND_SUCCESS)
    assert channel.current.kind == KIND_SUCCESS
