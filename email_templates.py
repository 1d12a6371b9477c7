# email_templates.py
from html import escape
from typing import Optional, Union

import schemas
from config import APP_URL
from yield_utils import format_currency

MAX_BREAKDOWN_ROWS = 5

STYLES = """
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: 'Inter', -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
         line-height: 1.6; color: #1a202c; background-color: #f7fafc; padding: 20px 0; }
  .container { max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 16px;
               box-shadow: 0 4px 20px rgba(0, 0, 0, 0.1); overflow: hidden; }
  .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white;
            padding: 32px 24px; text-align: center; }
  .header-title { font-size: 28px; font-weight: 700; }
  .header-subtitle { font-size: 14px; opacity: 0.9; }
  .content { padding: 32px 24px; }
  .stats-grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; margin-bottom: 24px; }
  .stat-card { background: #f8fafc; border: 1px solid #e2e8f0; border-radius: 12px; padding: 16px; }
  .stat-label { font-size: 12px; color: #64748b; text-transform: uppercase; }
  .stat-value { font-size: 20px; font-weight: 700; }
  .change-section, .rewards-section { border-radius: 12px; padding: 20px; margin-bottom: 24px;
                                      background: #f0fdf4; border: 1px solid #bbf7d0; }
  .rewards-header { display: flex; justify-content: space-between; font-weight: 600; }
  .reward-item { display: flex; justify-content: space-between; padding: 6px 0; }
  .claim-button, .footer-button { display: inline-block; padding: 10px 20px; border-radius: 8px;
                                  text-decoration: none; font-weight: 500; }
  .claim-button, .footer-button.primary { background: #3b82f6; color: #ffffff; }
  .footer-button.secondary { background: #e2e8f0; color: #1a202c; }
  .vault-table { width: 100%; border-collapse: collapse; font-size: 14px; }
  .vault-table th, .vault-table td { padding: 10px 8px; text-align: left; border-bottom: 1px solid #e2e8f0; }
  .apy-badge { background: #eef2ff; color: #4f46e5; border-radius: 6px; padding: 2px 8px; }
  .motivation, .footer { text-align: center; padding: 24px; color: #64748b; }
  @media (max-width: 640px) {
    .stats-grid { grid-template-columns: 1fr; }
    .content { padding: 24px 16px; }
  }
"""


def get_value_color(value: Union[str, float]) -> str:
    num = float(value)
    if num > 0:
        return "#10b981"
    if num < 0:
        return "#ef4444"
    return "#6b7280"


def get_trend_icon(value: float) -> str:
    if value > 0:
        return "📈"
    if value < 0:
        return "📉"
    return "➡️"


def _signed_currency(value: Union[str, float]) -> str:
    num = float(value)
    return f"{'+' if num > 0 else ''}{format_currency(num)}"


def _signed_percentage(value: float) -> str:
    return f"{'+' if value > 0 else ''}{value:.2f}%"


def _rewards_section(rewards: Optional[schemas.ClaimableRewardsData]) -> str:
    if not rewards or rewards.total <= 0:
        return ""

    items = []
    for label, color, amount, decimals in (
        ("USDC", "#3b82f6", rewards.usdc, 2),
        ("MORPHO", "#8b5cf6", rewards.morpho, 2),
        ("FXN", "#f59e0b", rewards.fxn, 4),
    ):
        if amount > 0:
            items.append(
                f'<div class="reward-item"><div class="reward-token"><span style="color: {color};">●</span> '
                f'{label}</div><div class="reward-amount">{amount:.{decimals}f}</div></div>'
            )

    return f"""
      <div class="rewards-section">
        <div class="rewards-header">
          <div class="rewards-title">💰 Claimable Rewards</div>
          <div class="rewards-total">{format_currency(rewards.total)}</div>
        </div>
        <div class="reward-items">{''.join(items)}</div>
        <a href="{APP_URL}" class="claim-button">Claim Rewards</a>
      </div>"""


def _breakdown_rows(breakdown: list[schemas.VaultBreakdownItem]) -> str:
    rows = []
    for vault in breakdown[:MAX_BREAKDOWN_ROWS]:
        rows.append(
            f"""
          <tr class="vault-row">
            <td class="vault-name">{escape(vault.name)}</td>
            <td class="vault-balance">{format_currency(float(vault.balance))}</td>
            <td class="vault-yield" style="color: {get_value_color(vault.net_yield)}">{_signed_currency(vault.net_yield)}</td>
            <td><span class="apy-badge">{vault.apy:.2f}%</span></td>
          </tr>"""
        )
    return "".join(rows)


def generate_yield_summary_html(
    yield_data: schemas.YieldNotificationData,
    claimable_rewards: Optional[schemas.ClaimableRewardsData] = None,
) -> str:
    total_earned = float(yield_data.total_yield)
    yield_24h = float(yield_data.yield_24h)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Morpho Daily Yield Summary</title>
  <style>{STYLES}</style>
</head>
<body>
  <div class="container">
    <div class="header">
      <div class="header-title">Daily Yield Summary</div>
      <div class="header-subtitle">Your capital is working. Stay compounding 🚀</div>
    </div>
    <div class="content">
      <div class="stats-grid">
        <div class="stat-card">
          <div class="stat-label">Total Balance</div>
          <div class="stat-value">{format_currency(float(yield_data.total_balance))}</div>
        </div>
        <div class="stat-card">
          <div class="stat-label">Total Deposited</div>
          <div class="stat-value">{format_currency(float(yield_data.total_deposited))}</div>
        </div>
        <div class="stat-card">
          <div class="stat-label">Total Earned</div>
          <div class="stat-value" style="color: {get_value_color(total_earned)}">{_signed_currency(total_earned)}</div>
        </div>
        <div class="stat-card">
          <div class="stat-label">Yield %</div>
          <div class="stat-value" style="color: {get_value_color(yield_data.yield_percentage)}">{_signed_percentage(yield_data.yield_percentage)}</div>
        </div>
      </div>

      <div class="change-section">
        <div class="change-label">📊 24h Performance</div>
        <div class="change-value" style="color: {get_value_color(yield_24h)}">
          {get_trend_icon(yield_24h)} {_signed_currency(yield_24h)} ({_signed_percentage(yield_data.yield_24h_percentage)})
        </div>
      </div>
{_rewards_section(claimable_rewards)}
      <div class="vault-section">
        <div class="vault-title">📊 Vault Breakdown</div>
        <table class="vault-table">
          <thead>
            <tr class="vault-header"><th>Vault</th><th>Balance</th><th>Yield</th><th>APY</th></tr>
          </thead>
          <tbody>{_breakdown_rows(yield_data.vault_breakdown)}
          </tbody>
        </table>
      </div>

      <div class="motivation">Your capital is working. Stay compounding 🚀</div>
    </div>
    <div class="footer">
      <a href="{APP_URL}" class="footer-button primary">View Full Dashboard</a>
      <a href="{APP_URL}/unsubscribe" class="footer-button secondary">Unsubscribe</a>
      <p>Powered by Morpho Protocol</p>
    </div>
  </div>
</body>
</html>
"""


def generate_welcome_html(address: str) -> str:
    return f"""
<div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 40px 20px; background-color: #0f1419; color: #ffffff;">
  <div style="text-align: center; margin-bottom: 40px;">
    <h1 style="color: #ffffff; margin: 0; font-size: 28px;">Welcome to Morpho Yield Monitor!</h1>
  </div>
  <div style="background-color: #1a1a1a; border: 1px solid #262626; border-radius: 12px; padding: 32px; margin-bottom: 32px;">
    <h2 style="color: #ffffff; margin: 0 0 16px 0; font-size: 20px;">🎯 You're All Set!</h2>
    <p style="color: #a1a1aa; margin: 0 0 20px 0; line-height: 1.6;">
      Thank you for subscribing to daily yield notifications for your Morpho vault positions.
    </p>
    <p style="color: #a1a1aa; margin: 0 0 20px 0; line-height: 1.6;">
      <strong>Wallet Address:</strong> <code style="background: #262626; padding: 2px 6px; border-radius: 4px; color: #ffffff;">{escape(address)}</code>
    </p>
    <h3 style="color: #ffffff; margin: 24px 0 16px 0; font-size: 16px;">📧 What You'll Receive:</h3>
    <ul style="color: #a1a1aa; padding-left: 20px; line-height: 1.6;">
      <li>Daily email summaries with your yield performance</li>
      <li>Total balance, deposited amounts, and earnings</li>
      <li>24-hour yield changes and percentage gains</li>
      <li>Vault-by-vault breakdown of your positions</li>
      <li>Claimable rewards information when available</li>
    </ul>
  </div>
  <div style="text-align: center; margin-bottom: 32px;">
    <a href="{APP_URL}" style="background-color: #3b82f6; color: white; text-decoration: none; padding: 12px 24px; border-radius: 8px; font-weight: 500; display: inline-block;">View Your Dashboard</a>
  </div>
  <div style="text-align: center; padding: 20px; border-top: 1px solid #262626;">
    <p style="color: #6b7280; margin: 0; font-size: 12px;">
      You can unsubscribe at any time by visiting your dashboard or
      <a href="{APP_URL}/unsubscribe" style="color: #3b82f6;">clicking here</a>.
    </p>
  </div>
</div>
"""


def generate_no_data_html(address: str) -> str:
    return f"""
<html>
  <body style="font-family: Arial, sans-serif; padding: 40px; text-align: center;">
    <h2 style="color: #ef4444;">No Yield Data Found</h2>
    <p>No yield data found for address <code>{escape(address)}</code></p>
    <p>Make sure the wallet has positions in Morpho vaults.</p>
    <a href="/api/notifications/email/preview" style="color: #3b82f6;">View Mock Data Preview Instead</a>
  </body>
</html>
"""


def generate_error_html(message: str) -> str:
    return f"""
<html>
  <body style="font-family: Arial, sans-serif; padding: 40px; text-align: center;">
    <h2 style="color: #ef4444;">Error</h2>
    <p>Failed to generate preview: {escape(message)}</p>
    <a href="/api/notifications/email/preview" style="color: #3b82f6;">View Mock Data Preview Instead</a>
  </body>
</html>
"""
