"""Tests for the event bus."""

from toolshed.events import EventBus, PaymentFailed, SignInRequested


class TestEventBus:
    def test_delivers_by_type(self):
        bus = EventBus()
        seen = []
        bus.subscribe(SignInRequested, seen.append)

        assert bus.publish(SignInRequested(redirect="/checkout")) == 1
        assert bus.publish(PaymentFailed(intent_id=None, message="nope")) == 0
        assert seen == [SignInRequested(redirect="/checkout")]

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(SignInRequested, seen.append)
        unsubscribe()
        unsubscribe()

        bus.publish(SignInRequested(redirect="/checkout"))
        assert seen == []

    def test_broken_handler_does_not_stop_others(self, caplog):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.subscribe(SignInRequested, broken)
        bus.subscribe(SignInRequested, seen.append)

        assert bus.publish(SignInRequested(redirect="/checkout")) == 1
        assert len(seen) == 1
        assert "listener bug" in caplog.text
