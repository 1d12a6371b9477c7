from datetime import datetime, timedelta, timezone

import pytest

import crud
from conftest import USER, VAULT_A, position_item, transaction_item, vault_item
from yield_calculator import calculate_user_yield_data, clear_yield_history, get_user_vaults_on_chain, get_yield_history

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


async def test_user_vaults_only_include_open_positions(mock_client):
    vaults = await get_user_vaults_on_chain(USER, 1, mock_client())

    assert [v.name for v in vaults] == ["Alpha USDC"]
    assert vaults[0].yield_data.net_yield == pytest.approx(50.0)


async def test_zero_balance_positions_are_dropped(mock_client):
    client = mock_client(positions=[position_item(VAULT_A, "Alpha USDC", shares="0")])
    assert await get_user_vaults_on_chain(USER, 1, client) == []


async def test_calculates_totals_and_breakdown(db, mock_client):
    data = await calculate_user_yield_data(db, USER, [1], mock_client(), now=NOW)

    assert data.total_balance == "1050.000000"
    assert data.total_deposited == "1200.000000"
    assert data.total_yield == "50.000000"
    assert data.yield_percentage == pytest.approx(50 / 1200 * 100)
    assert data.yield_24h == "0.000000"
    assert data.yield_24h_percentage == 0
    assert [(item.name, item.balance, item.net_yield) for item in data.vault_breakdown] == [
        ("Alpha USDC", "1050.000000", "50.000000"),
    ]
    assert data.vault_breakdown[0].apy == pytest.approx(4.5)


async def test_stores_a_snapshot(db, mock_client):
    await calculate_user_yield_data(db, USER, [1], mock_client(), now=NOW)

    history = crud.get_yield_history(db, USER, now=NOW)
    assert len(history) == 1
    assert history[0].total_balance == pytest.approx(1050.0)
    assert history[0].total_yield == pytest.approx(50.0)
    assert history[0].chain_data == {"1": {"balance": pytest.approx(1050.0), "yield": pytest.approx(50.0)}}


async def test_24h_change_uses_snapshot_older_than_a_day(db, mock_client):
    crud.save_yield_history(db, USER, 1040.0, 1200.0, 40.0, timestamp=NOW - timedelta(hours=25))
    crud.save_yield_history(db, USER, 1049.0, 1200.0, 49.0, timestamp=NOW - timedelta(hours=1))

    data = await calculate_user_yield_data(db, USER, [1], mock_client(), now=NOW)

    assert data.yield_24h == "10.000000"
    assert data.yield_24h_percentage == pytest.approx(25.0)


async def test_24h_percentage_is_zero_when_previous_yield_not_positive(db, mock_client):
    crud.save_yield_history(db, USER, 1000.0, 1200.0, 0.0, timestamp=NOW - timedelta(days=2))

    data = await calculate_user_yield_data(db, USER, [1], mock_client(), now=NOW)

    assert data.yield_24h == "50.000000"
    assert data.yield_24h_percentage == 0


async def test_failing_chain_is_skipped(db, mock_client):
    data = await calculate_user_yield_data(db, USER, [1, 8453], mock_client(fail_chains=(8453,)), now=NOW)

    assert data.total_balance == "1050.000000"
    assert len(data.vault_breakdown) == 1


async def test_totals_span_chains(db, mock_client):
    data = await calculate_user_yield_data(db, USER, [1, 8453], mock_client(), now=NOW)

    assert data.total_balance == "2100.000000"
    assert data.total_yield == "100.000000"
    assert len(data.vault_breakdown) == 2


async def test_breakdown_sorted_by_balance(db, mock_client):
    client = mock_client(
        vaults=[vault_item(VAULT_A, "Alpha USDC"), vault_item("0xVaultC", "Gamma USDC")],
        positions=[
            position_item(VAULT_A, "Alpha USDC"),
            position_item("0xVaultC", "Gamma USDC", shares="5000000000000000000000"),
        ],
    )
    data = await calculate_user_yield_data(db, USER, [1], client, now=NOW)

    assert [item.name for item in data.vault_breakdown] == ["Gamma USDC", "Alpha USDC"]


async def test_no_positions_returns_none(db, mock_client):
    data = await calculate_user_yield_data(db, USER, [1], mock_client(positions=[]), now=NOW)

    assert data is None
    assert crud.get_yield_history(db, USER, now=NOW) == []


async def test_all_chains_failing_returns_none(db, mock_client):
    assert await calculate_user_yield_data(db, USER, [1], mock_client(fail_chains=(1,)), now=NOW) is None


def test_history_helpers(db):
    crud.save_yield_history(db, USER, 10.0, 9.0, 1.0)
    crud.save_yield_history(db, "0xsomeoneelse", 10.0, 9.0, 1.0)

    assert len(get_yield_history(db, USER)) == 1
    assert clear_yield_history(db, USER) == 1
    assert get_yield_history(db, USER) == []
    assert len(get_yield_history(db, "0xSomeoneElse")) == 1


async def test_numeric_transaction_shares_keep_chain_in_totals(db, mock_client):
    deposit = transaction_item("1", "MetaMorphoDeposit", VAULT_A, 1000.0)
    deposit["data"]["shares"] = 952380952380952380952

    data = await calculate_user_yield_data(db, USER, [1], mock_client(transactions=[deposit]), now=NOW)

    assert data.total_balance == "1050.000000"
    assert data.total_deposited == "1000.000000"
    assert data.total_yield == "50.000000"
