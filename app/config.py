import os
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from listing_manager.sdk.clarity import (
    InvalidPrincipal,
    c32_address_decode,
    validate_contract_name,
    validate_function_name,
)
from listing_manager.sdk.transactions import NETWORKS, POST_CONDITION_MODES
from listing_manager.stacks_listing_manager import CONTRACT_NAME, LIST_MODEL_FUNCTION


class ConfigError(RuntimeError):
    """Configurazione mancante o non valida: il processo non deve partire."""


class Settings(BaseModel):
    """Configurazione di processo, letta una volta all'avvio e immutabile."""

    model_config = ConfigDict(frozen=True)

    network: str = "testnet"
    stacks_api_url: str = ""
    contract_address: str
    contract_name: str = CONTRACT_NAME
    contract_function: str = LIST_MODEL_FUNCTION
    private_key: SecretStr
    tx_fee: int = Field(10_000, ge=0)
    post_condition_mode: str = "deny"
    confirm_timeout: float = Field(600.0, gt=0)
    poll_interval: float = Field(10.0, gt=0)

    web3_storage_token: SecretStr
    web3_storage_api_url: str = "https://api.web3.storage"
    ipfs_gateway_url: str = "https://w3s.link"
    http_timeout: float = Field(60.0, gt=0)

    port: int = 3001
    cors_allow_origins: str = "*"

    @field_validator("network")
    @classmethod
    def _known_network(cls, v: str) -> str:
        v = v.lower()
        if v not in NETWORKS:
            raise ValueError(f"network deve essere uno tra {sorted(NETWORKS)}")
        return v

    @field_validator("contract_address")
    @classmethod
    def _valid_contract_address(cls, v: str) -> str:
        try:
            c32_address_decode(v)
        except InvalidPrincipal as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("contract_name")
    @classmethod
    def _valid_contract_name(cls, v: str) -> str:
        validate_contract_name(v)
        return v

    @field_validator("contract_function")
    @classmethod
    def _valid_contract_function(cls, v: str) -> str:
        validate_function_name(v)
        return v

    @field_validator("post_condition_mode")
    @classmethod
    def _known_post_condition_mode(cls, v: str) -> str:
        v = v.lower()
        if v not in POST_CONDITION_MODES:
            raise ValueError(f"post_condition_mode deve essere uno tra {sorted(POST_CONDITION_MODES)}")
        return v

    @property
    def cors_origins(self):
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


REQUIRED_ENV: Dict[str, str] = {
    "CONTRACT_ADDRESS": "contract_address",
    "PRIVATE_KEY": "private_key",
    "WEB3_STORAGE_TOKEN": "web3_storage_token",
}

OPTIONAL_ENV: Dict[str, str] = {
    "STACKS_NETWORK": "network",
    "STACKS_API_URL": "stacks_api_url",
    "CONTRACT_NAME": "contract_name",
    "CONTRACT_FUNCTION": "contract_function",
    "TX_FEE": "tx_fee",
    "POST_CONDITION_MODE": "post_condition_mode",
    "CONFIRM_TIMEOUT_SECONDS": "confirm_timeout",
    "CONFIRM_POLL_SECONDS": "poll_interval",
    "WEB3_STORAGE_API_URL": "web3_storage_api_url",
    "IPFS_GATEWAY_URL": "ipfs_gateway_url",
    "HTTP_TIMEOUT_SECONDS": "http_timeout",
    "PORT": "port",
    "CORS_ALLOW_ORIGINS": "cors_allow_origins",
}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Costruisce Settings dalle variabili d'ambiente (più `.env`, se presente).
    Solleva ConfigError elencando tutte le variabili obbligatorie mancanti.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    missing = [name for name in REQUIRED_ENV if not (environ.get(name) or "").strip()]
    if missing:
        raise ConfigError(f"Variabili d'ambiente obbligatorie mancanti: {', '.join(missing)}")

    values = {
        field: environ[name].strip()
        for name, field in {**REQUIRED_ENV, **OPTIONAL_ENV}.items()
        if (environ.get(name) or "").strip()
    }
    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigError(f"Configurazione non valida: {e}") from e
