import pytest

import schemas
from yield_utils import (
    calculate_reward_amount,
    calculate_total_net_yield,
    calculate_yield,
    calculate_yield_from_transactions,
    combine_vault_with_user_data,
    format_apy,
    format_currency,
    format_percentage,
    format_token_amount,
    get_price_per_share,
    get_value_color_class,
    sort_vaults,
    truncate_address,
)

USDC = schemas.Asset(symbol="USDC", decimals=6, address="0xusdc")


def make_vault(address="0xVault", name="Vault", base=4.0, rewards=0.0):
    return schemas.MorphoVault(
        id=address, name=name, address=address, share_price="1020000",
        apy=schemas.VaultApy(base=base, rewards=rewards), asset=USDC,
    )


def make_position(address="0xVault", balance=1100.0, deposited=1000.0, withdrawn=0.0, share_price=1020000):
    return schemas.UserVaultPosition(
        vault=schemas.PositionVault(id=address, address=address, name="Vault", asset=USDC),
        balance=balance, deposited=deposited, withdrawn=withdrawn, shares="1", share_price=share_price,
    )


def make_tx(tx_type, amount, vault="0xVault"):
    return schemas.Transaction.model_validate({
        "id": f"{tx_type}-{amount}", "timestamp": 1, "hash": "0x1", "type": tx_type,
        "data": {"shares": "1", "assets": amount, "assetsUsd": amount, "vault": {"address": vault}},
    })


def test_yield_from_transactions_nets_out_withdrawals():
    transactions = [
        make_tx("MetaMorphoDeposit", 1000.0),
        make_tx("MetaMorphoDeposit", 500.0, vault="0xVAULT"),
        make_tx("MetaMorphoWithdraw", 600.0),
        make_tx("MetaMorphoDeposit", 10_000.0, vault="0xOther"),
    ]
    result = calculate_yield_from_transactions(make_vault(), make_position(balance=950.0), transactions)

    assert result.total_deposited == 1500.0
    assert result.total_withdrawn == 600.0
    assert result.net_yield == pytest.approx(50.0)
    assert result.yield_percentage == pytest.approx(50.0 / 1500.0 * 100)
    assert result.price_per_share == pytest.approx(1.02)


def test_yield_from_transactions_without_deposits_has_zero_percentage():
    result = calculate_yield_from_transactions(make_vault(), make_position(balance=10.0), [])
    assert result.net_yield == 10.0
    assert result.yield_percentage == 0


def test_missing_usd_amount_counts_as_zero():
    tx = schemas.Transaction.model_validate({
        "id": "x", "timestamp": 1, "hash": "0x", "type": "MetaMorphoDeposit",
        "data": {"assetsUsd": None, "vault": {"address": "0xVault"}},
    })
    result = calculate_yield_from_transactions(make_vault(), make_position(balance=5.0), [tx])
    assert result.total_deposited == 0


def test_calculate_yield_uses_position_figures():
    result = calculate_yield(make_vault(), make_position(balance=1100.0, deposited=1000.0, withdrawn=50.0))
    assert result.net_yield == pytest.approx(150.0)
    assert result.yield_percentage == pytest.approx(15.0)


def test_price_per_share_defaults_to_one():
    position = make_position(share_price=None)
    assert calculate_yield(make_vault(), position).price_per_share == 1.0
    assert get_price_per_share(make_vault()) == pytest.approx(1.02)


def test_combine_prefers_transactions_when_present():
    position = make_position(balance=1100.0, deposited=1000.0)
    with_tx = combine_vault_with_user_data(make_vault(), position, [make_tx("MetaMorphoDeposit", 1090.0)])
    without_tx = combine_vault_with_user_data(make_vault(), position, [])
    no_position = combine_vault_with_user_data(make_vault())

    assert with_tx.yield_data.net_yield == pytest.approx(10.0)
    assert without_tx.yield_data.net_yield == pytest.approx(100.0)
    assert no_position.user_position is None and no_position.yield_data is None


def test_total_net_yield_ignores_vaults_without_positions():
    vaults = [
        combine_vault_with_user_data(make_vault(), make_position(balance=110.0, deposited=100.0)),
        combine_vault_with_user_data(make_vault(), make_position(balance=95.0, deposited=100.0)),
        combine_vault_with_user_data(make_vault()),
    ]
    assert calculate_total_net_yield(vaults) == pytest.approx(5.0)


def test_sort_vaults():
    low = combine_vault_with_user_data(make_vault(name="beta", base=2.0), make_position(balance=500.0))
    high = combine_vault_with_user_data(make_vault(name="Alpha", base=3.0, rewards=1.0), make_position(balance=50.0))
    empty = combine_vault_with_user_data(make_vault(name="gamma", base=1.0))

    assert [v.name for v in sort_vaults([low, high, empty], "apy")] == ["Alpha", "beta", "gamma"]
    assert [v.name for v in sort_vaults([high, empty, low], "balance")] == ["beta", "Alpha", "gamma"]
    assert [v.name for v in sort_vaults([empty, low, high], "name")] == ["Alpha", "beta", "gamma"]


def test_format_currency():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(-12.5) == "-$12.50"
    assert format_currency(3, "EUR", 0) == "€3"


def test_format_token_amount():
    assert format_token_amount(0, "USDC") == "0 USDC"
    assert format_token_amount("not-a-number", "USDC") == "0 USDC"
    assert format_token_amount(0.0005, "ETH") == "0.00050000 ETH"
    assert format_token_amount(1234.5, "USDC") == "1,234.5 USDC"
    assert format_token_amount("2", "MORPHO", 2) == "2 MORPHO"


def test_percentages_and_apy():
    assert format_percentage(4.567) == "4.57%"
    assert format_percentage(4.5, 1) == "4.5%"
    assert format_apy(3.25, 1.5) == "4.75%"


def test_truncate_address():
    assert truncate_address("") == ""
    assert truncate_address("0x1234") == "0x1234"
    assert truncate_address("0x1234567890abcdef") == "0x1234...cdef"


def test_value_color_class():
    assert get_value_color_class(1) == "text-green-600"
    assert get_value_color_class(-1) == "text-red-600"
    assert get_value_color_class(0) == "text-gray-600"


def test_calculate_reward_amount():
    assert calculate_reward_amount(1000.0, 0) == "0"
    assert calculate_reward_amount(1000.0, 5.0, "MORPHO") == "50 MORPHO"
    assert calculate_reward_amount(10.0, 1.5) == "0.15 REWARD"
