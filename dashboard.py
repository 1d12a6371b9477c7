# dashboard.py
import asyncio
import logging
from typing import Optional

import httpx

import schemas
from chains import get_chain_name, is_supported_chain
from morpho_api import get_user_transactions, get_user_vault_positions, get_vaults_cached
from yield_utils import calculate_total_net_yield, combine_vault_with_user_data

logger = logging.getLogger(__name__)

# A vault missing from the general listing is assumed to hold ~100x the user's balance
USER_ONLY_VAULT_TVL_MULTIPLIER = 100


class UnsupportedChainError(ValueError):
    pass


def vault_from_position(position: schemas.UserVaultPosition) -> schemas.MorphoVault:
    """Minimal vault record for a position whose vault is not in the general listing."""
    decimals = position.vault.asset.decimals
    estimated_total_assets = position.balance * USER_ONLY_VAULT_TVL_MULTIPLIER
    return schemas.MorphoVault(
        id=position.vault.address,
        name=position.vault.name,
        address=position.vault.address,
        total_assets=str(estimated_total_assets * 10 ** decimals),
        total_supply="0",
        share_price="1000000",
        apy=position.apy or schemas.VaultApy(),
        asset=position.vault.asset,
    )


def merge_vaults_with_positions(
    vaults: list[schemas.MorphoVault],
    positions: list[schemas.UserVaultPosition],
    transactions: list[schemas.Transaction],
) -> list[schemas.VaultWithYield]:
    positions_by_vault = {position.vault.address.lower(): position for position in positions}
    merged = [
        combine_vault_with_user_data(vault, positions_by_vault.get(vault.address.lower()), transactions)
        for vault in vaults
    ]

    listed = {vault.address.lower() for vault in vaults}
    for position in positions:
        if position.vault.address.lower() not in listed:
            merged.append(combine_vault_with_user_data(vault_from_position(position), position, transactions))
    return merged


async def build_chain_vault_data(
    chain_id: int, address: Optional[str] = None, client: Optional[httpx.AsyncClient] = None
) -> schemas.ChainVaultData:
    """Vault listing for a chain, enriched with a wallet's positions and yield when an address is given."""
    if not is_supported_chain(chain_id):
        raise UnsupportedChainError(f"Chain {chain_id} is not supported by Morpho")

    transactions: list[schemas.Transaction] = []
    if address:
        vaults, positions, transactions = await asyncio.gather(
            get_vaults_cached(chain_id, client),
            get_user_vault_positions(address, chain_id, client),
            get_user_transactions(address, chain_id, client),
        )
        vaults_with_user_data = merge_vaults_with_positions(vaults, positions, transactions)
    else:
        vaults = await get_vaults_cached(chain_id, client)
        vaults_with_user_data = [combine_vault_with_user_data(vault) for vault in vaults]

    return schemas.ChainVaultData(
        chain_id=chain_id,
        chain_name=get_chain_name(chain_id),
        vaults=vaults_with_user_data,
        total_net_yield=calculate_total_net_yield(vaults_with_user_data),
        transactions=transactions,
    )
