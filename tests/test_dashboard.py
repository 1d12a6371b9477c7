import pytest

from chains import get_chain_name, get_morpho_chain_by_id
from conftest import USER, VAULT_A, VAULT_B, position_item
from dashboard import UnsupportedChainError, build_chain_vault_data, vault_from_position
from morpho_api import MorphoAPIError, parse_position


async def test_listing_without_address(mock_client):
    data = await build_chain_vault_data(8453, client=mock_client())

    assert data.chain_name == "Base"
    assert [v.name for v in data.vaults] == ["Alpha USDC", "Beta USDC"]
    assert all(v.user_position is None for v in data.vaults)
    assert data.total_net_yield == 0
    assert data.transactions == []


async def test_listing_with_address_merges_positions(mock_client):
    data = await build_chain_vault_data(1, USER, mock_client())

    by_address = {v.address: v for v in data.vaults}
    assert by_address[VAULT_A].yield_data.net_yield == pytest.approx(50.0)
    assert by_address[VAULT_B].user_position is None
    assert data.total_net_yield == pytest.approx(50.0)
    assert len(data.transactions) == 3


async def test_positions_outside_listing_are_appended(mock_client):
    client = mock_client(positions=[position_item(VAULT_A, "Alpha USDC"), position_item("0xHidden", "Hidden USDC")])

    data = await build_chain_vault_data(1, USER, client)

    hidden = data.vaults[-1]
    assert hidden.name == "Hidden USDC"
    assert hidden.user_position is not None
    assert float(hidden.total_assets) == pytest.approx(1050.0 * 100 * 10 ** 6)


def test_vault_from_position_uses_position_apy():
    vault = vault_from_position(parse_position(position_item(VAULT_A, "Alpha USDC")))

    assert vault.address == VAULT_A
    assert vault.share_price == "1000000"
    assert vault.apy.base == pytest.approx(4.5)


async def test_unsupported_chain(mock_client):
    with pytest.raises(UnsupportedChainError):
        await build_chain_vault_data(10, client=mock_client())


async def test_upstream_failure_propagates(mock_client):
    with pytest.raises(MorphoAPIError):
        await build_chain_vault_data(1, USER, mock_client(fail_chains=(1,)))


def test_chain_lookup():
    assert get_chain_name(42161) == "Arbitrum"
    assert get_chain_name(999) == "Unknown"
    assert get_morpho_chain_by_id(1).explorer_url == "https://etherscan.io"
    assert get_morpho_chain_by_id(999) is None
