# yield_utils.py
import math
from typing import Iterable, Literal, Optional, Union

import schemas

DEFAULT_SHARE_PRICE = 1_000_000

DEPOSIT = "MetaMorphoDeposit"
WITHDRAW = "MetaMorphoWithdraw"

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}

SortKey = Literal["apy", "yield", "balance", "name"]


def _price_per_share(share_price: Optional[float], asset_decimals: int) -> float:
    return (share_price or DEFAULT_SHARE_PRICE) / 10 ** asset_decimals


def _build_calculation(
    current_balance: float, total_deposited: float, total_withdrawn: float, price_per_share: float
) -> schemas.YieldCalculation:
    # Net yield = current balance - (total deposited - total withdrawn)
    net_yield = current_balance - (total_deposited - total_withdrawn)
    yield_percentage = net_yield / total_deposited * 100 if total_deposited > 0 else 0.0
    return schemas.YieldCalculation(
        current_balance=current_balance,
        total_deposited=total_deposited,
        total_withdrawn=total_withdrawn,
        net_yield=net_yield,
        yield_percentage=yield_percentage,
        price_per_share=price_per_share,
    )


def calculate_yield_from_transactions(
    vault: schemas.MorphoVault,
    position: schemas.UserVaultPosition,
    transactions: Iterable[schemas.Transaction],
) -> schemas.YieldCalculation:
    """
    Yield earned on one vault position, using the USD value of the wallet's
    deposits and withdrawals on that vault.
    """
    vault_address = vault.address.lower()
    vault_transactions = [tx for tx in transactions if tx.data.vault.address.lower() == vault_address]

    total_deposited = sum(tx.data.assets_usd or 0 for tx in vault_transactions if tx.type == DEPOSIT)
    total_withdrawn = sum(tx.data.assets_usd or 0 for tx in vault_transactions if tx.type == WITHDRAW)

    return _build_calculation(
        position.balance,
        total_deposited,
        total_withdrawn,
        _price_per_share(position.share_price, position.vault.asset.decimals),
    )


def calculate_yield(vault: schemas.MorphoVault, position: schemas.UserVaultPosition) -> schemas.YieldCalculation:
    """Yield from the position's own deposited/withdrawn figures, used when there is no transaction history."""
    return _build_calculation(
        position.balance,
        position.deposited,
        position.withdrawn,
        _price_per_share(position.share_price, position.vault.asset.decimals),
    )


def get_price_per_share(vault: schemas.MorphoVault) -> float:
    return _price_per_share(float(vault.share_price or DEFAULT_SHARE_PRICE), vault.asset.decimals)


def combine_vault_with_user_data(
    vault: schemas.MorphoVault,
    user_position: Optional[schemas.UserVaultPosition] = None,
    transactions: Optional[list[schemas.Transaction]] = None,
) -> schemas.VaultWithYield:
    vault_with_yield = schemas.VaultWithYield(**vault.model_dump())
    if user_position:
        vault_with_yield.user_position = user_position
        if transactions:
            vault_with_yield.yield_data = calculate_yield_from_transactions(vault, user_position, transactions)
        else:
            vault_with_yield.yield_data = calculate_yield(vault, user_position)
    return vault_with_yield


def calculate_total_net_yield(vaults: Iterable[schemas.VaultWithYield]) -> float:
    return sum(vault.yield_data.net_yield for vault in vaults if vault.yield_data)


def sort_vaults(vaults: Iterable[schemas.VaultWithYield], sort_by: SortKey) -> list[schemas.VaultWithYield]:
    """Returns a new list; numeric keys sort descending, names ascending."""
    if sort_by == "apy":
        return sorted(vaults, key=lambda v: v.apy.base + v.apy.rewards, reverse=True)
    if sort_by == "yield":
        return sorted(vaults, key=lambda v: v.yield_data.net_yield if v.yield_data else 0, reverse=True)
    if sort_by == "balance":
        return sorted(vaults, key=lambda v: v.yield_data.current_balance if v.yield_data else 0, reverse=True)
    if sort_by == "name":
        return sorted(vaults, key=lambda v: v.name.casefold())
    return list(vaults)


# --- FORMATTING ---

def format_currency(value: float, currency: str = "USD", decimals: int = 2) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{decimals}f}"


def format_token_amount(value: Union[str, float], symbol: str, decimals: int = 4) -> str:
    try:
        num_value = float(value)
    except (TypeError, ValueError):
        num_value = math.nan

    if num_value == 0 or math.isnan(num_value):
        return f"0 {symbol}"

    # Very small amounts get more decimals
    if abs(num_value) < 0.001:
        return f"{num_value:.8f} {symbol}"

    formatted = f"{num_value:,.{decimals}f}"
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    return f"{formatted} {symbol}"


def format_percentage(value: float, decimals: int = 2) -> str:
    return f"{value:.{decimals}f}%"


def format_apy(base_apy: float, rewards_apy: float) -> str:
    return format_percentage(base_apy + rewards_apy)


def truncate_address(address: str, chars: int = 4) -> str:
    if not address:
        return ""
    if len(address) <= chars * 2 + 2:
        return address
    return f"{address[:chars + 2]}...{address[-chars:]}"


def get_value_color_class(value: float) -> str:
    if value > 0:
        return "text-green-600"
    if value < 0:
        return "text-red-600"
    return "text-gray-600"


def calculate_reward_amount(user_balance: float, reward_apr: float, reward_token_symbol: str = "REWARD") -> str:
    """Annual reward for a balance at the given APR (percent), formatted as a token amount."""
    if reward_apr <= 0:
        return "0"
    annual_reward_amount = user_balance * (reward_apr / 100)
    decimals = 2 if reward_token_symbol == "MORPHO" else 4
    return format_token_amount(annual_reward_amount, reward_token_symbol, decimals)
