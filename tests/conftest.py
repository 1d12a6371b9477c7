import os

# Must be set before any project module reads its configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_SECRET"] = ""
os.environ["CRON_SECRET"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["VAPID_PRIVATE_KEY"] = ""

import asyncio
import json

import httpx
import pytest

import models  # noqa: F401
import morpho_api
from database import Base, SessionLocal, engine

USER = "0xAbC0000000000000000000000000000000000001"
VAULT_A = "0xVaultA000000000000000000000000000000000A"
VAULT_B = "0xVaultB000000000000000000000000000000000B"
USDC = {"address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "symbol": "USDC", "decimals": 6}


def vault_item(address, name, share_price="1050000", apy=0.05, net_apy=0.045):
    return {
        "address": address,
        "symbol": name.replace(" ", ""),
        "name": name,
        "asset": USDC,
        "metadata": {"description": None},
        "state": {
            "totalAssets": "5000000000000",
            "totalSupply": "4800000000000000000000000",
            "sharePrice": share_price,
            "apy": apy,
            "netApy": net_apy,
            "rewards": [{"supplyApr": 0.01, "asset": {"symbol": "MORPHO", "name": "Morpho", "address": "0xM0"}}],
        },
    }


def position_item(vault_address, name, shares="1000000000000000000000", share_price=1050000):
    return {
        "user": {"address": USER.lower()},
        "vault": {
            "address": vault_address,
            "symbol": name.replace(" ", ""),
            "name": name,
            "asset": USDC,
            "state": {"sharePrice": share_price, "apy": 0.05, "netApy": 0.045},
        },
        "state": {"shares": shares},
    }


def transaction_item(tx_id, tx_type, vault_address, assets_usd):
    return {
        "id": tx_id,
        "timestamp": 1700000000,
        "hash": f"0xhash{tx_id}",
        "type": tx_type,
        "data": {
            "shares": "1",
            "assets": assets_usd * 1e6,
            "assetsUsd": assets_usd,
            "vault": {"address": vault_address, "symbol": "V", "name": "Vault"},
        },
    }


# One vault with a 1050 USDC position on 1000 USD deposited
DEFAULT_VAULTS = [vault_item(VAULT_A, "Alpha USDC"), vault_item(VAULT_B, "Beta USDC")]
DEFAULT_POSITIONS = [position_item(VAULT_A, "Alpha USDC")]
DEFAULT_TRANSACTIONS = [
    transaction_item("1", "MetaMorphoDeposit", VAULT_A, 1200.0),
    transaction_item("2", "MetaMorphoWithdraw", VAULT_A.lower(), 200.0),
    transaction_item("3", "MetaMorphoDeposit", VAULT_B, 999.0),
]


def morpho_handler(vaults=None, positions=None, transactions=None, fail_chains=(), calls=None):
    """Builds an httpx MockTransport handler that answers Morpho GraphQL queries."""
    vaults = DEFAULT_VAULTS if vaults is None else vaults
    positions = DEFAULT_POSITIONS if positions is None else positions
    transactions = DEFAULT_TRANSACTIONS if transactions is None else transactions

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        query, variables = body["query"], body["variables"]
        if calls is not None:
            calls.append((query, variables))
        if variables["chainIds"][0] in fail_chains:
            return httpx.Response(500, json={"message": "boom"})
        if "query GetVaults(" in query:
            return httpx.Response(200, json={"data": {"vaults": {"items": vaults}}})
        if "query GetUserVaults(" in query:
            return httpx.Response(200, json={"data": {"vaultPositions": {"items": positions}}})
        if "query GetUserTransactions(" in query:
            return httpx.Response(200, json={"data": {"transactions": {"items": transactions}}})
        return httpx.Response(400, json={"errors": [{"message": "unknown query"}]})

    return handler


@pytest.fixture(autouse=True)
def reset_vault_cache(monkeypatch):
    # A contended lock binds to the event loop of the test that used it
    monkeypatch.setattr(morpho_api, "cache_lock", asyncio.Lock())
    morpho_api.clear_vault_cache()
    yield
    morpho_api.clear_vault_cache()


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mock_client():
    """Factory for an AsyncClient backed by the Morpho mock handler."""
    clients = []

    def make(**kwargs):
        client = httpx.AsyncClient(transport=httpx.MockTransport(morpho_handler(**kwargs)))
        clients.append(client)
        return client

    return make
