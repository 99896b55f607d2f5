"""Environment-backed settings for Fusion transfers"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class ChainConfig:
    chain_id: int
    name: str
    native_symbol: str
    rpc_url: str
    address_explorer: str


CHAINS = {
    "polygon": ChainConfig(
        chain_id=137,
        name="Polygon",
        native_symbol="MATIC",
        rpc_url="https://polygon-rpc.com",
        address_explorer="https://polygonscan.com/address/{address}",
    ),
}

MEE_API_URL = "https://network.biconomy.io/v1"
MEE_VERSION = "2.1.0"
EXPLORER_TX_URL = "https://meescan.biconomy.io/details/{hash}"


@dataclass(frozen=True)
class Settings:
    chain: ChainConfig = field(default_factory=lambda: CHAINS["polygon"])
    api_key: str = ""
    project_id: str = ""
    walletconnect_project_id: str = ""
    api_url: str = MEE_API_URL
    default_token_address: str = ""
    default_token_decimals: int = 18
    default_token_symbol: str = ""
    default_token_name: str = ""

    @property
    def sponsorship_enabled(self) -> bool:
        return bool(self.api_key)

    def explorer_tx_url(self, tx_hash: str) -> str:
        return EXPLORER_TX_URL.format(hash=tx_hash)

    def explorer_address_url(self, address: str) -> str:
        return self.chain.address_explorer.format(address=address)


def _int_or_default(raw: str | None, default: int) -> int:
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def load_settings(env_file: str | Path | None = None, network: str = "polygon") -> Settings:
    """
    Load settings from an optional .env file and the process environment.

    A missing API key is not reported here; the quote negotiator raises
    ConfigurationError for it before any wallet interaction.

    Args:
        env_file: Path to a dotenv file (default: search for ".env")
        network: Key into CHAINS (default: "polygon")
    """
    load_dotenv(env_file)

    base = CHAINS[network]
    rpc_url = os.getenv("POLYGON_RPC_URL") or base.rpc_url
    chain = ChainConfig(
        chain_id=base.chain_id,
        name=base.name,
        native_symbol=base.native_symbol,
        rpc_url=rpc_url,
        address_explorer=base.address_explorer,
    )

    return Settings(
        chain=chain,
        api_key=os.getenv("BICONOMY_API_KEY", ""),
        project_id=os.getenv("BICONOMY_PROJECT_ID", ""),
        walletconnect_project_id=os.getenv("WALLETCONNECT_PROJECT_ID", ""),
        api_url=os.getenv("BICONOMY_API_URL") or MEE_API_URL,
        default_token_address=os.getenv("DEFAULT_TOKEN_ADDRESS", ""),
        default_token_decimals=_int_or_default(os.getenv("DEFAULT_TOKEN_DECIMALS"), 18),
        default_token_symbol=os.getenv("DEFAULT_TOKEN_SYMBOL", ""),
        default_token_name=os.getenv("DEFAULT_TOKEN_NAME", ""),
    )
