import pytest
import resend

import crud
import email_service
import schemas
from conftest import USER
from email_service import (
    MOCK_CLAIMABLE_REWARDS,
    MOCK_YIELD_DATA,
    build_summary_subject,
    email_config_status,
    process_daily_emails,
    send_test_email,
    send_welcome_email,
    send_yield_summary_email,
)
from email_templates import (
    generate_error_html,
    generate_no_data_html,
    generate_welcome_html,
    generate_yield_summary_html,
    get_trend_icon,
    get_value_color,
)


@pytest.fixture
def outbox(monkeypatch):
    """Captures Resend calls instead of sending them."""
    sent = []

    def fake_send(params):
        sent.append(params)
        return {"id": f"email-{len(sent)}"}

    monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_test_key_123456")
    monkeypatch.setattr(resend.Emails, "send", fake_send)
    return sent


def test_summary_subject():
    assert build_summary_subject(MOCK_YIELD_DATA) == "💰 Daily Yield: +$2341.89 Total | +$45.23 24h"

    losing = MOCK_YIELD_DATA.model_copy(update={"total_yield": "-12.5", "yield_24h": "0"})
    assert build_summary_subject(losing) == "💰 Daily Yield: $12.50 Total | $0.00 24h"


def test_value_colors_and_trend_icons():
    assert get_value_color("1.5") == "#10b981"
    assert get_value_color(-0.1) == "#ef4444"
    assert get_value_color(0) == "#6b7280"
    assert get_trend_icon(2) == "📈"
    assert get_trend_icon(-2) == "📉"
    assert get_trend_icon(0) == "➡️"


def test_summary_html_contents():
    html = generate_yield_summary_html(MOCK_YIELD_DATA, MOCK_CLAIMABLE_REWARDS)

    assert "$142,341.89" in html
    assert "+$2,341.89" in html
    assert "Alpha USDC Catalyst" in html
    assert "Claimable Rewards" in html
    assert "175.93" in html
    assert "0.0200" in html


def test_summary_html_limits_rows_and_escapes_names():
    breakdown = [
        schemas.VaultBreakdownItem(name=f"Vault {i}", balance="10", net_yield="1", apy=1.0) for i in range(6)
    ]
    breakdown[0] = schemas.VaultBreakdownItem(name="<script>x</script>", balance="10", net_yield="1", apy=1.0)
    data = MOCK_YIELD_DATA.model_copy(update={"vault_breakdown": breakdown})

    html = generate_yield_summary_html(data)

    assert "<script>x</script>" not in html
    assert "&lt;script&gt;" in html
    assert "Vault 4" in html
    assert "Vault 5" not in html
    assert "Claimable Rewards" not in html


def test_other_templates_escape_input():
    assert "0x&lt;b&gt;" in generate_welcome_html("0x<b>")
    assert "0x&lt;b&gt;" in generate_no_data_html("0x<b>")
    assert "&quot;oops&quot;" in generate_error_html('"oops"')


def test_config_status(monkeypatch):
    monkeypatch.setattr(email_service, "RESEND_API_KEY", None)
    assert email_config_status()["configured"] is False

    monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_abcdefghijkl")
    status = email_config_status()
    assert status["configured"] is True
    assert status["api_key_length"] == 15
    assert status["api_key_prefix"] == "re_abcde..."


async def test_send_without_api_key_is_disabled(monkeypatch):
    monkeypatch.setattr(email_service, "RESEND_API_KEY", "")
    assert not await send_welcome_email("alice@example.com", USER)


async def test_send_yield_summary_email(outbox):
    assert await send_yield_summary_email("alice@example.com", USER, MOCK_YIELD_DATA)

    params = outbox[0]
    assert params["to"] == ["alice@example.com"]
    assert params["subject"].startswith("💰 Daily Yield:")
    assert params["headers"] == {"X-Entity-Ref-ID": USER, "X-Notification-Type": "yield-summary"}
    assert resend.api_key == "re_test_key_123456"


async def test_send_test_email_uses_sample_data(outbox):
    assert await send_test_email("alice@example.com")
    assert outbox[0]["headers"]["X-Entity-Ref-ID"] == email_service.MOCK_ADDRESS


async def test_send_failures_return_false(monkeypatch):
    monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_key")

    def raising_send(params):
        raise RuntimeError("Invalid `to` field")

    monkeypatch.setattr(resend.Emails, "send", raising_send)
    assert not await send_welcome_email("alice@example.com", USER)

    monkeypatch.setattr(resend.Emails, "send", lambda params: {})
    assert not await send_welcome_email("alice@example.com", USER)


async def test_daily_emails_compute_each_wallet_once(db, outbox, monkeypatch):
    crud.save_email_subscription(db, USER, "alice@example.com")
    crud.save_email_subscription(db, USER, "bob@example.com")
    crud.save_email_subscription(db, "0xempty", "carol@example.com")
    crud.save_email_subscription(db, "0xgone", "dave@example.com")
    crud.remove_email_subscription(db, "0xgone", "dave@example.com")

    calculated = []

    async def fake_calculate(db, address, chain_ids=None, client=None, now=None):
        calculated.append(address)
        return MOCK_YIELD_DATA if address == USER.lower() else None

    async def fake_rewards(address, client=None):
        return MOCK_CLAIMABLE_REWARDS

    monkeypatch.setattr(email_service, "calculate_user_yield_data", fake_calculate)
    monkeypatch.setattr(email_service, "get_claimable_rewards_summary", fake_rewards)

    results = await process_daily_emails(db, batch_delay=0, client=object())

    assert sorted(calculated) == sorted(["0xempty", USER.lower()])
    assert results.total == 3
    assert results.successful == 2
    assert results.failed == 0
    assert sorted(params["to"][0] for params in outbox) == ["alice@example.com", "bob@example.com"]
    assert all(sub.last_emailed is not None for sub in crud.get_active_email_subscriptions(db) if sub.address == USER.lower())


async def test_daily_emails_without_subscriptions(db, outbox):
    results = await process_daily_emails(db, client=object())
    assert results.total == 0
    assert outbox == []
