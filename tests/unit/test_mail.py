"""
Tests for outgoing e-mail bodies.

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

import pytest

from app.core import mail


@pytest.fixture
def sent(monkeypatch):
    """Capture send_email calls instead of talking to SMTP."""
    calls = []

    async def fake_send(to_address, subject, text_body, html_body=None):
        calls.append({"to": to_address, "subject": subject, "text": text_body, "html": html_body})
        return True

    monkeypatch.setattr(mail, "send_email", fake_send)
    return calls


class TestInviteEmail:
    @pytest.mark.asyncio
    async def test_inviter_name_and_link_are_escaped_in_html(self, sent):
        """
        Arrange: Inviter name carrying markup, link carrying a quote and ampersand
        Act: Send the invite
        Assert: HTML part holds escaped values, plain part keeps them as typed
        """
        name = '<script>alert("x")</script> Rao'
        link = 'https://app.example.com/invite?token=abc&x="><img src=y>'

        assert await mail.send_invite_email("meena@example.com", name, link) is True

        html_body = sent[0]["html"]
        assert "<script>" not in html_body
        assert "&lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt; Rao" in html_body
        assert 'href="https://app.example.com/invite?token=abc&amp;x=&quot;&gt;&lt;img src=y&gt;"' in html_body
        assert name in sent[0]["text"]
        assert link in sent[0]["text"]

    @pytest.mark.asyncio
    async def test_plain_values_unchanged(self, sent):
        await mail.send_invite_email("meena@example.com", "Asha Rao", "https://app.example.com/invite?token=abc")

        assert "<p>Asha Rao invited you" in sent[0]["html"]
        assert '<a href="https://app.example.com/invite?token=abc">' in sent[0]["html"]


class TestSendEmail:
    @pytest.mark.asyncio
    async def test_skipped_without_smtp(self):
        assert await mail.send_email("meena@example.com", "Hi", "Body") is False
