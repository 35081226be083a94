# -*- coding: utf-8 -*-
"""
Stacks Python SDK
=================

Client minimale per le API REST di un nodo Stacks (core node + extended API
di Hiro), limitato a ciò che serve per pubblicare una contract-call firmata:

  - lettura del nonce dell'account mittente
  - broadcast della transazione serializzata
  - lettura dello stato di una transazione (mempool / blocco)

Ogni metodo restituisce il JSON decodificato oppure solleva ApiError (o una
sottoclasse) in caso di HTTP error / problemi di parsing.

Uso tipico:
-----------
from listing_manager.sdk.stacks_sdk import StacksClient

client = StacksClient(base_url="https://api.testnet.hiro.so")
nonce = client.get_account_nonce("ST2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKQ9H6DPR")
txid = client.broadcast_transaction(raw_tx_bytes)
client.get_transaction(txid)

Licenza: MIT
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

import requests


class ApiError(RuntimeError):
    """Errore generico per chiamate verso la rete Stacks."""

    def __init__(self, message: str, txid: Optional[str] = None) -> None:
        super().__init__(message)
        self.txid = txid


class SigningError(ApiError):
    """La chiave del servizio non produce una firma valida."""


class BroadcastRejected(ApiError):
    """La rete ha rifiutato la transazione (nonce, fee, call malformata, abort)."""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        reason_data: Optional[Any] = None,
        txid: Optional[str] = None,
    ) -> None:
        super().__init__(message, txid=txid)
        self.reason = reason
        self.reason_data = reason_data


class ConfirmationTimeout(ApiError):
    """
    Conferma non osservata entro la deadline. Non è un esito definitivo:
    la transazione può ancora essere inclusa in un blocco successivo.
    """


def normalize_txid(txid: str) -> str:
    txid = txid.strip().strip('"').lower()
    return txid if txid.startswith("0x") else f"0x{txid}"


TXID_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")


def is_valid_txid(txid: str) -> bool:
    """32 byte in hex, con o senza prefisso "0x"."""
    return isinstance(txid, str) and bool(TXID_PATTERN.match(normalize_txid(txid)))


class StacksClient:
    def __init__(self, base_url: str, timeout: Optional[float] = 60.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    # --------------------------
    # Helpers
    # --------------------------
    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _get(
        self, path: str, params: Optional[Dict[str, Any]] = None, txid: Optional[str] = None
    ) -> requests.Response:
        try:
            return requests.get(self._url(path), params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(f"Errore di connessione verso {self._url(path)}: {e}", txid=txid) from e

    @staticmethod
    def _json(resp: requests.Response, path: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(f"Impossibile decodificare JSON da {path}: {resp.text}") from e

    # --------------------------
    # Account
    # --------------------------
    def get_account(self, address: str) -> Dict[str, Any]:
        path = f"/v2/accounts/{address}"
        resp = self._get(path, params={"proof": 0})
        if not resp.ok:
            raise ApiError(f"HTTP {resp.status_code} su {path}: {resp.text}")
        return self._json(resp, path)

    def get_account_nonce(self, address: str) -> int:
        res = self.get_account(address)
        if not isinstance(res, dict) or "nonce" not in res:
            raise ApiError(f"Risposta account senza nonce: {res}")
        try:
            return int(res["nonce"])
        except (TypeError, ValueError) as e:
            raise ApiError(f"Nonce non valido per {address}: {res['nonce']!r}") from e

    # --------------------------
    # Transazioni
    # --------------------------
    def broadcast_transaction(self, raw_tx: bytes) -> str:
        """
        Pubblica la transazione serializzata. Ritorna il txid ("0x...").

        Il nodo risponde 200 con il txid (stringa JSON) oppure 400 con
        {"error": "transaction rejected", "reason": "BadNonce", ...}.
        """
        path = "/v2/transactions"
        try:
            resp = requests.post(
                self._url(path),
                data=raw_tx,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ApiError(f"Errore di connessione verso {self._url(path)}: {e}") from e

        if resp.ok:
            body = self._json(resp, path)
            if not isinstance(body, str):
                raise ApiError(f"Risposta broadcast inattesa: {body}")
            return normalize_txid(body)

        if 400 <= resp.status_code < 500:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            reason = body.get("reason") or body.get("error") or resp.text
            txid = body.get("txid")
            raise BroadcastRejected(
                f"Transazione rifiutata dal nodo: {reason}",
                reason=reason,
                reason_data=body.get("reason_data"),
                txid=normalize_txid(txid) if txid else None,
            )

        raise ApiError(f"HTTP {resp.status_code} su {path}: {resp.text}")

    def get_transaction(self, txid: str) -> Optional[Dict[str, Any]]:
        """Stato della transazione; None se il nodo non la conosce (ancora)."""
        txid = normalize_txid(txid)
        path = f"/extended/v1/tx/{txid}"
        resp = self._get(path, txid=txid)
        if resp.status_code == 404:
            return None
        if not resp.ok:
            raise ApiError(f"HTTP {resp.status_code} su {path}: {resp.text}", txid=txid)
        try:
            body = resp.json()
        except ValueError as e:
            raise ApiError(f"Impossibile decodificare JSON da {path}: {resp.text}", txid=txid) from e
        if not isinstance(body, dict):
            raise ApiError(f"Risposta inattesa da {path}: {body}", txid=txid)
        return body
