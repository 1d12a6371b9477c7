# rewards.py
"""
Claimable reward aggregation.

Three upstream sources report incentive tokens owed to a wallet:

* Merkl (``/users/{address}/rewards``) - per chain, with token metadata and
  a per-campaign breakdown of amount / claimed / pending.
* Morpho rewards (``/users/{address}/rewards``) - ``claimable_now`` and
  ``claimable_next`` per program, no token metadata.
* Morpho distributions (``/users/{address}/distributions``) - merkle-root
  claimables, no token metadata.

Merkl is used as the base. The Morpho sources fill in tokens Merkl does not
know about and replace a Merkl figure only when they report a larger one.
"""
import asyncio
import logging
import time
from typing import Optional, Sequence

import httpx
from pydantic import ValidationError

import schemas
from config import HTTP_TIMEOUT_SECONDS, MERKL_API_URL, MORPHO_REWARDS_API_URL

logger = logging.getLogger(__name__)

MERKL_CHAIN_IDS = [1, 8453, 137, 130, 747474, 42161, 10]

REQUEST_HEADERS = {
    "accept": "*/*",
    "origin": "https://app.morpho.org",
    "referer": "https://app.morpho.org/",
}

UNKNOWN_SYMBOL = "UNKNOWN"
DEFAULT_DECIMALS = 18


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def extract_merkl_rewards(payload) -> list[schemas.MerklReward]:
    """Flattens Merkl's list of per-chain objects into a list of rewards."""
    rewards = []
    if not isinstance(payload, list):
        return rewards

    for chain_data in payload:
        if not isinstance(chain_data, dict):
            continue
        if isinstance(chain_data.get("rewards"), list):
            raw_rewards = chain_data["rewards"]
        else:
            # Older payloads key rewards by index
            raw_rewards = [value for key, value in chain_data.items() if key.isdigit() and isinstance(value, dict)]
        for raw in raw_rewards:
            try:
                rewards.append(schemas.MerklReward.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed Merkl reward: {e}")
    return rewards


async def get_claimable_rewards_from_merkl(
    user_address: str,
    chain_ids: Sequence[int] = MERKL_CHAIN_IDS,
    client: Optional[httpx.AsyncClient] = None,
) -> list[schemas.MerklReward]:
    if client is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as own_client:
            return await get_claimable_rewards_from_merkl(user_address, chain_ids, own_client)

    url = f"{MERKL_API_URL}/users/{user_address}/rewards"
    params = [("chainId", chain_id) for chain_id in chain_ids]
    try:
        response = await client.get(url, params=params, headers=REQUEST_HEADERS)
        response.raise_for_status()
        return extract_merkl_rewards(response.json())
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Error fetching claimable rewards from Merkl: {e}")
        return []


async def _get_json_or_default(client: httpx.AsyncClient, url: str, params: dict, default):
    """A failed or non-2xx source counts as empty."""
    try:
        response = await client.get(url, params=params, headers=REQUEST_HEADERS)
    except httpx.HTTPError as e:
        logger.warning(f"Reward source {url} unreachable: {e}")
        return default
    if not response.is_success:
        logger.warning(f"Reward source {url} returned {response.status_code}")
        return default
    try:
        return response.json()
    except ValueError:
        logger.warning(f"Reward source {url} returned invalid JSON")
        return default


def combine_rewards(
    merkl_rewards: list[schemas.MerklReward],
    morpho_rewards: list[dict],
    morpho_distributions: list[dict],
) -> list[schemas.CombinedReward]:
    combined: dict[str, schemas.CombinedReward] = {}
    token_info = {reward.token.address.lower(): reward.token for reward in merkl_rewards}

    def lookup(address: str) -> tuple[str, int, float]:
        token = token_info.get(address)
        if token is None:
            return UNKNOWN_SYMBOL, DEFAULT_DECIMALS, 0.0
        return token.symbol, token.decimals or DEFAULT_DECIMALS, token.price or 0.0

    for reward in merkl_rewards:
        address = reward.token.address.lower()
        claimable_raw = sum(_to_float(b.amount) - _to_float(b.claimed) for b in reward.breakdowns)
        accruing_raw = sum(_to_float(b.pending) for b in reward.breakdowns)
        scale = 10 ** reward.token.decimals
        price = reward.token.price or 0.0
        claimable, accruing = claimable_raw / scale, accruing_raw / scale
        combined[address] = schemas.CombinedReward(
            symbol=reward.token.symbol,
            name=reward.token.symbol,
            address=reward.token.address,
            claimable=claimable,
            accruing=accruing,
            claimable_value=claimable * price,
            accruing_value=accruing * price,
            price=price,
            sources=["merkl"],
        )

    morpho_totals: dict[str, dict] = {}
    for entry in morpho_rewards:
        amount = entry.get("amount") or entry.get("for_supply")
        if not amount:
            continue
        address = entry["asset"]["address"].lower()
        symbol, decimals, price = lookup(address)
        totals = morpho_totals.setdefault(
            address, {"claimable": 0.0, "accruing": 0.0, "symbol": symbol, "price": price}
        )
        totals["claimable"] += _to_float(amount.get("claimable_now")) / 10 ** decimals
        totals["accruing"] += _to_float(amount.get("claimable_next")) / 10 ** decimals

    distribution_totals: dict[str, dict] = {}
    for entry in morpho_distributions:
        address = entry["asset"]["address"].lower()
        symbol, decimals, price = lookup(address)
        totals = distribution_totals.setdefault(address, {"claimable": 0.0, "symbol": symbol, "price": price})
        totals["claimable"] += _to_float(entry.get("claimable")) / 10 ** decimals

    for address, totals in morpho_totals.items():
        existing = combined.get(address)
        if existing is None:
            combined[address] = schemas.CombinedReward(
                symbol=totals["symbol"],
                name=totals["symbol"],
                address=address,
                claimable=totals["claimable"],
                accruing=totals["accruing"],
                claimable_value=totals["claimable"] * totals["price"],
                accruing_value=totals["accruing"] * totals["price"],
                price=totals["price"],
                sources=["morpho-rewards"],
            )
            continue
        if totals["claimable"] > existing.claimable:
            existing.claimable = totals["claimable"]
            existing.claimable_value = totals["claimable"] * totals["price"]
            existing.sources.append("morpho-rewards")
        if totals["accruing"] > existing.accruing:
            existing.accruing = totals["accruing"]
            existing.accruing_value = totals["accruing"] * totals["price"]

    for address, totals in distribution_totals.items():
        existing = combined.get(address)
        if existing is None:
            combined[address] = schemas.CombinedReward(
                symbol=totals["symbol"],
                name=totals["symbol"],
                address=address,
                claimable=totals["claimable"],
                accruing=0.0,
                claimable_value=totals["claimable"] * totals["price"],
                accruing_value=0.0,
                price=totals["price"],
                sources=["morpho-distributions"],
            )
            continue
        if totals["claimable"] > existing.claimable:
            existing.claimable = totals["claimable"]
            existing.claimable_value = totals["claimable"] * totals["price"]
            existing.sources.append("morpho-distributions")

    return list(combined.values())


async def get_claimable_rewards_from_all_sources(
    user_address: str, chain_id: int = 1, client: Optional[httpx.AsyncClient] = None
) -> list[schemas.CombinedReward]:
    if client is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as own_client:
            return await get_claimable_rewards_from_all_sources(user_address, chain_id, own_client)

    # noCache busts the CDN in front of the Morpho rewards API
    morpho_params = {"trusted": "true", "chain_id": chain_id, "noCache": int(time.time() * 1000)}
    morpho_rewards, morpho_distributions, merkl_payload = await asyncio.gather(
        _get_json_or_default(client, f"{MORPHO_REWARDS_API_URL}/users/{user_address}/rewards", morpho_params, {}),
        _get_json_or_default(
            client, f"{MORPHO_REWARDS_API_URL}/users/{user_address}/distributions", morpho_params, {}
        ),
        _get_json_or_default(client, f"{MERKL_API_URL}/users/{user_address}/rewards", {"chainId": chain_id}, []),
    )

    try:
        return combine_rewards(
            extract_merkl_rewards(merkl_payload),
            morpho_rewards.get("data") or [],
            morpho_distributions.get("data") or [],
        )
    except (KeyError, TypeError, AttributeError) as e:
        logger.error(f"Error combining rewards for {user_address}: {e}", exc_info=True)
        return []


def summarize_claimable_rewards(rewards: list[schemas.CombinedReward]) -> schemas.ClaimableRewardsData:
    """Token amounts for the tokens shown in emails, plus the USD value of everything claimable."""
    amounts = {"USDC": 0.0, "MORPHO": 0.0, "FXN": 0.0}
    for reward in rewards:
        symbol = reward.symbol.upper()
        if symbol in amounts:
            amounts[symbol] += reward.claimable
    return schemas.ClaimableRewardsData(
        usdc=amounts["USDC"],
        morpho=amounts["MORPHO"],
        fxn=amounts["FXN"],
        total=sum(reward.claimable_value for reward in rewards),
    )
