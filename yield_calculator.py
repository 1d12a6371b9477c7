# yield_calculator.py
import asyncio
import logging
from datetime import datetime
from typing import Optional, Sequence

import httpx
from sqlalchemy.orm import Session

import crud
import schemas
from chains import DEFAULT_YIELD_CHAIN_IDS
from config import HTTP_TIMEOUT_SECONDS
from morpho_api import get_user_transactions, get_user_vault_positions, get_vaults_cached
from yield_utils import combine_vault_with_user_data

logger = logging.getLogger(__name__)


async def get_user_vaults_on_chain(
    address: str, chain_id: int, client: httpx.AsyncClient
) -> list[schemas.VaultWithYield]:
    """Listed vaults on a chain in which the wallet currently holds a positive balance."""
    vaults, positions, transactions = await asyncio.gather(
        get_vaults_cached(chain_id, client),
        get_user_vault_positions(address, chain_id, client),
        get_user_transactions(address, chain_id, client),
    )
    positions_by_vault = {position.vault.address.lower(): position for position in positions}

    user_vaults = []
    for vault in vaults:
        position = positions_by_vault.get(vault.address.lower())
        if position is None:
            continue
        combined = combine_vault_with_user_data(vault, position, transactions)
        if combined.yield_data and combined.yield_data.current_balance > 0:
            user_vaults.append(combined)
    return user_vaults


async def calculate_user_yield_data(
    db: Session,
    address: str,
    chain_ids: Optional[Sequence[int]] = None,
    client: Optional[httpx.AsyncClient] = None,
    now: Optional[datetime] = None,
) -> Optional[schemas.YieldNotificationData]:
    """
    Totals, 24h change and per-vault breakdown for a wallet across chains.

    Each call also stores the current totals as a yield history snapshot.
    Returns None when the wallet has no open positions or the calculation fails.
    """
    chain_ids = list(chain_ids or DEFAULT_YIELD_CHAIN_IDS)
    if client is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as own_client:
            return await calculate_user_yield_data(db, address, chain_ids, own_client, now)

    try:
        all_vaults: list[schemas.VaultWithYield] = []
        chain_data = {}
        for chain_id in chain_ids:
            try:
                chain_vaults = await get_user_vaults_on_chain(address, chain_id, client)
            except Exception as e:
                logger.warning(f"Failed to fetch data for chain {chain_id}: {e}")
                continue
            all_vaults.extend(chain_vaults)
            if chain_vaults:
                chain_data[str(chain_id)] = {
                    "balance": sum(v.yield_data.current_balance for v in chain_vaults),
                    "yield": sum(v.yield_data.net_yield for v in chain_vaults),
                }

        if not all_vaults:
            return None

        total_balance = sum(v.yield_data.current_balance for v in all_vaults)
        total_deposited = sum(v.yield_data.total_deposited for v in all_vaults)
        total_yield = sum(v.yield_data.net_yield for v in all_vaults)

        yield_24h = 0.0
        yield_24h_percentage = 0.0
        previous = crud.get_yield_24h_ago(db, address, now=now)
        if previous:
            yield_24h = total_yield - previous.total_yield
            yield_24h_percentage = yield_24h / previous.total_yield * 100 if previous.total_yield > 0 else 0.0

        crud.save_yield_history(
            db, address, total_balance, total_deposited, total_yield, chain_data=chain_data, timestamp=now
        )

        breakdown = sorted(
            (
                schemas.VaultBreakdownItem(
                    name=v.name,
                    balance=f"{v.yield_data.current_balance:.6f}",
                    net_yield=f"{v.yield_data.net_yield:.6f}",
                    apy=v.apy.base,
                )
                for v in all_vaults
            ),
            key=lambda item: float(item.balance),
            reverse=True,
        )

        yield_percentage = total_yield / total_deposited * 100 if total_deposited > 0 else 0.0

        return schemas.YieldNotificationData(
            total_balance=f"{total_balance:.6f}",
            total_deposited=f"{total_deposited:.6f}",
            total_yield=f"{total_yield:.6f}",
            yield_percentage=yield_percentage,
            yield_24h=f"{yield_24h:.6f}",
            yield_24h_percentage=yield_24h_percentage,
            vault_breakdown=breakdown,
        )
    except Exception as e:
        logger.error(f"Failed to calculate yield data for {address}: {e}", exc_info=True)
        db.rollback()
        return None


def get_yield_history(db: Session, address: str, days: int = 30) -> list[schemas.HistoricalYieldData]:
    return crud.get_yield_history(db, address, days=days)


def clear_yield_history(db: Session, address: str) -> int:
    return crud.clear_yield_history(db, address)
