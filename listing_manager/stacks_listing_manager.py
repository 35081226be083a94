# -*- coding: utf-8 -*-
"""
stacks_listing_manager.py
-------------------------
Classe ad alto livello che usa StacksClient per pubblicare un modello sul
contratto marketplace (`<CONTRACT_ADDRESS>.ai-marketplace`, funzione
`list-model`):

  - codifica degli argomenti tipizzati [uint price, optional principal]
  - costruzione e firma della contract-call con la chiave del servizio
  - broadcast verso il nodo Stacks
  - attesa bloccante della conferma (con timeout) ed estrazione del token id
    dal risultato `(ok uN)` della transazione

Nessun retry automatico: una nuova transazione richiede un nuovo nonce, la
decisione spetta al chiamante.

Requisiti:
  - stacks_sdk.py, transactions.py, clarity.py raggiungibili come
    'listing_manager.sdk.*'
  - requests, pycryptodome, eth-keys installati
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from listing_manager.sdk.clarity import (
    UINT128_MAX,
    ClarityType,
    ClarityValue,
    c32_address_decode,
    cv_repr,
    deserialize_cv,
    optional_principal_cv,
    uint_cv,
)
from listing_manager.sdk.stacks_sdk import (
    ApiError,
    BroadcastRejected,
    ConfirmationTimeout,
    StacksClient,
    normalize_txid,
)
from listing_manager.sdk.transactions import (
    StacksPrivateKey,
    build_contract_call,
    get_network,
    sign_transaction,
)

logger = logging.getLogger("model_relay.listing")

CONTRACT_NAME = "ai-marketplace"
LIST_MODEL_FUNCTION = "list-model"

STATUS_SUCCESS = "success"
STATUS_PENDING = "pending"
STATUS_NOT_FOUND = "not_found"
# tx_status finali diversi da "success" (abort on-chain o scarto dal mempool)
FAILED_STATUS_PREFIXES = ("abort_by_response", "abort_by_post_condition", "dropped_")


def build_listing_args(price: int, payment_token: Optional[str] = None) -> List[ClarityValue]:
    """
    Argomenti posizionali di `list-model`: sempre due elementi.
    payment_token assente -> `none` esplicito.
    """
    if isinstance(price, bool) or not isinstance(price, int):
        raise ValueError(f"price deve essere un intero, non {price!r}")
    if not 0 < price <= UINT128_MAX:
        raise ValueError(f"price deve essere > 0 e <= uint128, non {price}")
    return [uint_cv(price), optional_principal_cv(payment_token)]


def extract_listing_id(tx: Dict[str, Any]) -> int:
    """Token id dal `tx_result` di una transazione confermata: (ok uN) -> N."""
    result = tx.get("tx_result") or {}
    raw = result.get("hex") if isinstance(result, dict) else None
    if not raw:
        raise ApiError(f"Transazione senza tx_result: {tx.get('tx_id')}", txid=tx.get("tx_id"))

    try:
        cv = deserialize_cv(raw)
    except ValueError as e:
        raise ApiError(f"tx_result non decodificabile: {raw}", txid=tx.get("tx_id")) from e

    if cv.type_id != ClarityType.RESPONSE_OK or cv.value.type_id != ClarityType.UINT:
        raise ApiError(f"Risultato list-model inatteso: {cv_repr(cv)}", txid=tx.get("tx_id"))
    return cv.value.value


class ModelLister(ABC):
    """Port: pubblicazione di un modello sul marketplace on-chain."""

    @abstractmethod
    def list_model(self, price: int, payment_token: Optional[str] = None) -> int:
        """Pubblica il listing e ritorna il token id; blocca fino alla conferma."""

    @abstractmethod
    def listing_status(self, txid: str) -> Dict[str, Any]:
        """Singola lettura dello stato: {txid, status, tokenId}."""


class StacksListingManager(ModelLister):
    """
    Metodi di alto livello:
      - list_model()
      - listing_status()
      - wait_for_listing()

    Il nonce viene letto dal nodo a ogni chiamata; la chiave viene caricata
    a ogni firma, così un errore di chiave emerge come SigningError.
    """

    DEFAULT_FEE = 10_000            # microSTX
    DEFAULT_CONFIRM_TIMEOUT = 600.0  # secondi
    DEFAULT_POLL_INTERVAL = 10.0     # secondi

    def __init__(
        self,
        contract_address: str,
        private_key: str,
        network: str = "testnet",
        api_url: Optional[str] = None,
        contract_name: str = CONTRACT_NAME,
        function_name: str = LIST_MODEL_FUNCTION,
        fee: int = DEFAULT_FEE,
        post_condition_mode: str = "deny",
        confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        http_timeout: Optional[float] = 60.0,
        client: Optional[StacksClient] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        c32_address_decode(contract_address)

        self.network = get_network(network)
        self.contract_address = contract_address
        self.contract_name = contract_name
        self.function_name = function_name
        self.fee = int(fee)
        self.post_condition_mode = post_condition_mode
        self.confirm_timeout = float(confirm_timeout)
        self.poll_interval = float(poll_interval)
        self.client = client or StacksClient(api_url or self.network.default_api_url, timeout=http_timeout)

        self._private_key = private_key
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Any, client: Optional[StacksClient] = None) -> "StacksListingManager":
        return cls(
            contract_address=settings.contract_address,
            private_key=settings.private_key.get_secret_value(),
            network=settings.network,
            api_url=settings.stacks_api_url or None,
            contract_name=settings.contract_name,
            function_name=settings.contract_function,
            fee=settings.tx_fee,
            post_condition_mode=settings.post_condition_mode,
            confirm_timeout=settings.confirm_timeout,
            poll_interval=settings.poll_interval,
            http_timeout=settings.http_timeout,
            client=client,
        )

    # ------------- Chiave -------------
    def _signer(self) -> StacksPrivateKey:
        return StacksPrivateKey(self._private_key)

    @property
    def sender_address(self) -> str:
        return self._signer().address(self.network.address_version)

    @property
    def contract_id(self) -> str:
        return f"{self.contract_address}.{self.contract_name}"

    # ------------- API di alto livello -------------
    def list_model(self, price: int, payment_token: Optional[str] = None) -> int:
        function_args = build_listing_args(price, payment_token)

        signer = self._signer()
        sender = signer.address(self.network.address_version)
        nonce = self.client.get_account_nonce(sender)

        tx = build_contract_call(
            network=self.network,
            signer_key=signer,
            nonce=nonce,
            fee=self.fee,
            contract_address=self.contract_address,
            contract_name=self.contract_name,
            function_name=self.function_name,
            function_args=function_args,
            post_condition_mode=self.post_condition_mode,
        )
        signed = sign_transaction(tx, signer)

        try:
            txid = self.client.broadcast_transaction(signed.serialize())
        except ApiError as e:
            # il txid è noto anche se il nodo non ha risposto
            e.txid = e.txid or signed.txid()
            raise
        logger.info(
            "list-model broadcast txid=%s contract=%s sender=%s nonce=%d args=[%s]",
            txid, self.contract_id, sender, nonce, " ".join(cv_repr(a) for a in function_args),
        )
        return self.wait_for_listing(txid)

    def listing_status(self, txid: str) -> Dict[str, Any]:
        txid = normalize_txid(txid)
        return self._status_of(txid, self.client.get_transaction(txid))

    @staticmethod
    def _status_of(txid: str, tx: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if tx is None:
            return {"txid": txid, "status": STATUS_NOT_FOUND, "tokenId": None}

        status = tx.get("tx_status", STATUS_PENDING)
        token_id = extract_listing_id(tx) if status == STATUS_SUCCESS else None
        return {"txid": txid, "status": status, "tokenId": token_id}

    def wait_for_listing(self, txid: str) -> int:
        """
        Polling dello stato fino a conferma. Solleva:
          - BroadcastRejected se la tx viene abortita o scartata
          - ConfirmationTimeout se la deadline scade (esito NON definitivo)

        Un errore del nodo durante il polling non è un esito: la tx è già in
        rete, quindi si continua fino alla deadline. Ogni errore che esce da
        qui riporta il txid.
        """
        txid = normalize_txid(txid)
        deadline = self._clock() + self.confirm_timeout
        state = STATUS_PENDING
        while True:
            try:
                tx = self.client.get_transaction(txid)
            except ApiError as e:
                logger.warning("Polling di %s fallito, nuovo tentativo: %s", txid, e)
                state = "nodo non raggiungibile"
            else:
                try:
                    status = self._status_of(txid, tx)
                except ApiError as e:
                    e.txid = e.txid or txid
                    raise
                state = status["status"]

                if state == STATUS_SUCCESS:
                    logger.info("list-model confermata txid=%s tokenId=%s", txid, status["tokenId"])
                    return status["tokenId"]

                if state.startswith(FAILED_STATUS_PREFIXES):
                    raise BroadcastRejected(
                        f"Transazione {txid} non andata a buon fine: {state}",
                        reason=state,
                        txid=txid,
                    )

            if self._clock() >= deadline:
                raise ConfirmationTimeout(
                    f"Conferma di {txid} non osservata entro {self.confirm_timeout:.0f}s (ultimo stato: {state})",
                    txid=txid,
                )

            logger.debug("In attesa di conferma txid=%s stato=%s", txid, state)
            self._sleep(self.poll_interval)
