# chains.py
from typing import Optional

from pydantic import BaseModel

from config import MORPHO_GRAPHQL_URL


class NativeCurrency(BaseModel):
    name: str
    symbol: str
    decimals: int = 18


class Chain(BaseModel):
    id: int
    name: str
    graphql_endpoint: str
    native_currency: NativeCurrency
    rpc_url: str
    explorer_name: str
    explorer_url: str


ETHER = NativeCurrency(name="Ether", symbol="ETH")

MORPHO_CHAINS: list[Chain] = [
    Chain(id=1, name="Ethereum", graphql_endpoint=MORPHO_GRAPHQL_URL, native_currency=ETHER,
          rpc_url="https://eth.llamarpc.com", explorer_name="Etherscan", explorer_url="https://etherscan.io"),
    Chain(id=137, name="Polygon", graphql_endpoint=MORPHO_GRAPHQL_URL,
          native_currency=NativeCurrency(name="MATIC", symbol="MATIC"),
          rpc_url="https://polygon-rpc.com", explorer_name="PolygonScan", explorer_url="https://polygonscan.com"),
    Chain(id=42161, name="Arbitrum", graphql_endpoint=MORPHO_GRAPHQL_URL, native_currency=ETHER,
          rpc_url="https://arb1.arbitrum.io/rpc", explorer_name="Arbiscan", explorer_url="https://arbiscan.io"),
    Chain(id=8453, name="Base", graphql_endpoint=MORPHO_GRAPHQL_URL, native_currency=ETHER,
          rpc_url="https://mainnet.base.org", explorer_name="BaseScan", explorer_url="https://basescan.org"),
    # Unichain and Katana ids point at their testnets until mainnet ids are published
    Chain(id=1301, name="Unichain", graphql_endpoint=MORPHO_GRAPHQL_URL, native_currency=ETHER,
          rpc_url="https://sepolia.unichain.org", explorer_name="Uniscan", explorer_url="https://sepolia.uniscan.xyz"),
    Chain(id=1002, name="Katana", graphql_endpoint=MORPHO_GRAPHQL_URL, native_currency=ETHER,
          rpc_url="https://katana-rpc.kakarot.org", explorer_name="Katana Explorer",
          explorer_url="https://katana-explorer.kakarot.org"),
]

MORPHO_CHAIN_IDS = [chain.id for chain in MORPHO_CHAINS]

# Chains summed into yield summaries when a subscriber has not picked any
DEFAULT_YIELD_CHAIN_IDS = [1, 137, 42161, 8453]


def get_morpho_chain_by_id(chain_id: int) -> Optional[Chain]:
    return next((chain for chain in MORPHO_CHAINS if chain.id == chain_id), None)


def is_supported_chain(chain_id: int) -> bool:
    return chain_id in MORPHO_CHAIN_IDS


def get_chain_name(chain_id: int) -> str:
    chain = get_morpho_chain_by_id(chain_id)
    return chain.name if chain else "Unknown"
