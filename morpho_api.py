# morpho_api.py
"""
Client for Morpho's public GraphQL API.

Vault listings, a user's vault positions and a user's deposit/withdraw
history are fetched one chain at a time and mapped onto the models in
``schemas``. APYs are converted from decimals to percentages here so the
rest of the service only ever deals in percent.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import ValidationError

import schemas
from chains import is_supported_chain
from config import HTTP_TIMEOUT_SECONDS, MORPHO_GRAPHQL_URL, VAULT_CACHE_SECONDS

logger = logging.getLogger(__name__)

DEFAULT_SHARE_PRICE = 1_000_000  # 1.0 in 6-decimal asset units
SHARE_DECIMALS = 18

GET_VAULTS_QUERY = """
  query GetVaults($chainIds: [Int!]!) {
    vaults(where: { chainId_in: $chainIds }, first: 100) {
      items {
        address
        symbol
        name
        asset { address symbol decimals }
        metadata { description }
        state {
          totalAssets
          totalSupply
          sharePrice
          apy
          netApy
          rewards {
            supplyApr
            asset { symbol name address }
          }
        }
      }
    }
  }
"""

GET_USER_VAULTS_QUERY = """
  query GetUserVaults($chainIds: [Int!]!, $userAddresses: [String!]!) {
    vaultPositions(where: { chainId_in: $chainIds, userAddress_in: $userAddresses }, first: 100) {
      items {
        user { address }
        vault {
          address
          symbol
          name
          asset { address symbol decimals }
          state { sharePrice apy netApy }
        }
        state { shares }
      }
    }
  }
"""

GET_USER_TRANSACTIONS_QUERY = """
  query GetUserTransactions($userAddress: String!, $chainIds: [Int!]!) {
    transactions(
      where: {
        userAddress_in: [$userAddress],
        chainId_in: $chainIds,
        type_in: [MetaMorphoDeposit, MetaMorphoWithdraw]
      },
      first: 100,
      orderBy: Timestamp
    ) {
      items {
        id
        timestamp
        hash
        type
        data {
          ... on VaultTransactionData {
            shares
            assets
            assetsUsd
            vault { address symbol name }
          }
        }
      }
    }
  }
"""


class MorphoAPIError(Exception):
    """Raised when the Morpho API cannot be reached or answers with errors."""


def handle_graphql_error(error: Any) -> str:
    """Turns an httpx error, GraphQL payload or exception into a readable message."""
    if isinstance(error, dict) and error.get("errors"):
        return ", ".join(e.get("message", "Unknown error") for e in error["errors"])
    if isinstance(error, httpx.HTTPStatusError):
        return f"HTTP {error.response.status_code} from {error.request.url}"
    if isinstance(error, Exception) and str(error):
        return str(error)
    return "An unknown error occurred"


def is_supported_chain_id(chain_id: int) -> bool:
    return is_supported_chain(chain_id)


async def run_query(query: str, variables: dict, client: Optional[httpx.AsyncClient] = None) -> dict:
    """POSTs a GraphQL query and returns its ``data`` object."""
    if client is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as own_client:
            return await run_query(query, variables, own_client)

    try:
        response = await client.post(MORPHO_GRAPHQL_URL, json={"query": query, "variables": variables})
        response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError) as e:
        raise MorphoAPIError(handle_graphql_error(e)) from e

    if payload.get("errors"):
        raise MorphoAPIError(handle_graphql_error(payload))
    return payload.get("data") or {}


def _apy_from_state(state: dict) -> tuple[float, float]:
    apy = state.get("apy") or 0
    net_apy = state.get("netApy") or 0
    base = (net_apy or apy) * 100
    rewards = max(0.0, (apy - net_apy) * 100)
    return base, rewards


def parse_vault(raw: dict) -> schemas.MorphoVault:
    state = raw.get("state") or {}
    share_price = float(state.get("sharePrice") or DEFAULT_SHARE_PRICE)
    base, rewards = _apy_from_state(state)
    reward_tokens = [
        schemas.VaultReward(supply_apr=(reward.get("supplyApr") or 0) * 100, asset=reward.get("asset"))
        for reward in state.get("rewards") or []
    ]
    return schemas.MorphoVault(
        id=raw["address"],
        name=raw.get("name") or raw.get("symbol") or raw["address"],
        address=raw["address"],
        total_assets=str(state.get("totalAssets") or "0"),
        total_supply=str(state.get("totalSupply") or "0"),
        share_price=str(share_price),
        apy=schemas.VaultApy(base=base, rewards=rewards, reward_tokens=reward_tokens),
        asset=schemas.Asset(**raw["asset"]),
    )


def parse_position(raw: dict) -> schemas.UserVaultPosition:
    vault = raw["vault"]
    vault_state = vault.get("state") or {}
    shares = float(raw["state"]["shares"])
    share_price = float(vault_state.get("sharePrice") or DEFAULT_SHARE_PRICE)
    asset_decimals = vault["asset"]["decimals"]

    # shares carry 18 decimals, sharePrice is in asset decimals
    balance = shares * share_price / 10 ** SHARE_DECIMALS / 10 ** asset_decimals
    # Without deposit history, assume the shares were bought at a share price of 1.0
    original_value = shares * DEFAULT_SHARE_PRICE / 10 ** SHARE_DECIMALS / 10 ** asset_decimals
    base, _ = _apy_from_state(vault_state)

    return schemas.UserVaultPosition(
        vault=schemas.PositionVault(
            id=vault["address"],
            address=vault["address"],
            name=vault.get("name") or vault.get("symbol") or vault["address"],
            asset=schemas.Asset(**vault["asset"]),
        ),
        balance=balance,
        deposited=original_value,
        withdrawn=0.0,
        shares=str(raw["state"]["shares"]),
        share_price=share_price,
        timestamp=raw["state"].get("timestamp"),
        apy=schemas.VaultApy(base=base, rewards=0.0),
    )


async def get_vaults(chain_id: int, client: Optional[httpx.AsyncClient] = None) -> list[schemas.MorphoVault]:
    try:
        data = await run_query(GET_VAULTS_QUERY, {"chainIds": [chain_id]}, client)
    except MorphoAPIError as e:
        logger.error(f"Error fetching vaults for chain {chain_id}: {e}")
        raise MorphoAPIError(f"Failed to fetch vaults: {e}") from e
    return [parse_vault(item) for item in ((data.get("vaults") or {}).get("items") or [])]


async def get_user_vault_positions(
    user_address: str, chain_id: int, client: Optional[httpx.AsyncClient] = None
) -> list[schemas.UserVaultPosition]:
    variables = {"chainIds": [chain_id], "userAddresses": [user_address.lower()]}
    try:
        data = await run_query(GET_USER_VAULTS_QUERY, variables, client)
    except MorphoAPIError as e:
        logger.error(f"Error fetching user vaults for chain {chain_id}: {e}")
        raise MorphoAPIError(f"Failed to fetch user positions: {e}") from e
    return [parse_position(item) for item in ((data.get("vaultPositions") or {}).get("items") or [])]


async def get_user_transactions(
    user_address: str, chain_id: int, client: Optional[httpx.AsyncClient] = None
) -> list[schemas.Transaction]:
    variables = {"userAddress": user_address.lower(), "chainIds": [chain_id]}
    try:
        data = await run_query(GET_USER_TRANSACTIONS_QUERY, variables, client)
    except MorphoAPIError as e:
        logger.error(f"Error fetching user transactions for chain {chain_id}: {e}")
        raise MorphoAPIError(f"Failed to fetch user transactions: {e}") from e
    items = (data.get("transactions") or {}).get("items") or []
    try:
        return [schemas.Transaction.model_validate(item) for item in items if item.get("data")]
    except ValidationError as e:
        logger.error(f"Unexpected transaction payload for chain {chain_id}: {e}")
        raise MorphoAPIError(f"Failed to parse user transactions: {e}") from e


# --- VAULT LIST CACHE ---
# Every subscriber on a chain sees the same vault list, so it is shared for VAULT_CACHE_SECONDS.

_vault_cache: dict[int, tuple[datetime, list[schemas.MorphoVault]]] = {}
cache_lock = asyncio.Lock()


def _fresh_entry(chain_id: int) -> Optional[list[schemas.MorphoVault]]:
    entry = _vault_cache.get(chain_id)
    if entry and (datetime.now() - entry[0]).total_seconds() < VAULT_CACHE_SECONDS:
        return entry[1]
    return None


def clear_vault_cache() -> None:
    _vault_cache.clear()


async def get_vaults_cached(chain_id: int, client: Optional[httpx.AsyncClient] = None) -> list[schemas.MorphoVault]:
    """
    Returns the vault list for a chain using a double-checked locking pattern
    so concurrent callers trigger a single upstream fetch.
    """
    cached = _fresh_entry(chain_id)
    if cached is not None:
        logger.debug(f"CACHE HIT - vaults for chain {chain_id} (fast path)")
        return cached

    async with cache_lock:
        cached = _fresh_entry(chain_id)
        if cached is not None:
            logger.debug(f"CACHE HIT - vaults for chain {chain_id} (after waiting for lock)")
            return cached

        logger.info(f"CACHE MISS - fetching vaults for chain {chain_id}")
        try:
            vaults = await get_vaults(chain_id, client)
        except MorphoAPIError:
            stale = _vault_cache.get(chain_id)
            if stale:
                logger.info(f"API failed, returning stale vaults for chain {chain_id} as fallback")
                return stale[1]
            raise

        _vault_cache[chain_id] = (datetime.now(), vaults)
        return vaults
