"""
Tests for the logging push and email channels.

These tests verify that the mock channels log, track sent messages and
simulate failures.
"""

from core.channels import (
    ChannelType,
    LoggingEmailChannel,
    LoggingPushChannel,
)


class TestEmailChannel:
    """Tests for the mock email channel."""

    def test_send_email_success(self, email_channel: LoggingEmailChannel):
        """Test successful email send."""
        result = email_channel.send(
            to="a@b.com",
            subject="Test Subject",
            body="Test body content",
        )

        assert result.success is True
        assert result.channel == ChannelType.EMAIL
        assert result.recipient == "a@b.com"
        assert result.subject == "Test Subject"
        assert result.error is None

    def test_tracks_sent_messages(self, email_channel: LoggingEmailChannel):
        email_channel.send("a@example.com", "Subject A", "Body A")
        email_channel.send("b@example.com", "Subject B", "Body B")

        assert email_channel.get_sent_count() == 2
        assert email_channel.find_message_to("b@example.com").subject == "Subject B"

    def test_clear_history(self, email_channel: LoggingEmailChannel):
        email_channel.send("a@b.com", "Test", "Body")

        email_channel.clear_history()

        assert email_channel.get_sent_count() == 0

    def test_simulated_failure(self):
        """Test simulated email failure."""
        failing_channel = LoggingEmailChannel(fail_rate=1.0)

        result = failing_channel.send("a@b.com", "Test", "Body")

        assert result.success is False
        assert "failure" in result.error.lower()
        assert failing_channel.get_successful_sends() == []

    def test_failure_is_logged(self, caplog):
        LoggingEmailChannel(fail_recipients={"a@b.com"}).send("a@b.com", "Test", "Body")

        assert "EMAIL FAILED" in caplog.text


class TestPushChannel:
    """Tests for the mock push channel."""

    def test_send_push_success(self, push_channel: LoggingPushChannel):
        result = push_channel.send("device-token-1", {"title": "Estimate Viewed", "body": "Opened"})

        assert result.success is True
        assert result.channel == ChannelType.PUSH
        assert result.recipient == "device-token-1"
        assert result.subject == "Estimate Viewed"
        assert result.body == "Opened"

    def test_failure_for_specific_token(self):
        """Test that only the configured token fails."""
        channel = LoggingPushChannel(fail_recipients={"bad-token"})

        bad = channel.send("bad-token", {"title": "t", "body": "b"})
        good = channel.send("good-token", {"title": "t", "body": "b"})

        assert bad.success is False
        assert good.success is True
        assert channel.get_sent_count() == 2
        assert len(channel.get_successful_sends()) == 1

    def test_str_shows_status(self, push_channel: LoggingPushChannel):
        result = push_channel.send("device-token-1", {"title": "Estimate Viewed", "body": "Opened"})

        assert str(result).startswith("✓ PUSH to device-token-1")
