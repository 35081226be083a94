# -*- coding: utf-8 -*-
"""
w3s_storage.py
--------------
Upload e lettura di file sulla rete IPFS tramite l'API HTTP compatibile
web3.storage.

  put(file_bytes, file_name) -> CID     POST {api_url}/upload
  get(cid) -> bytes                     GET  {gateway_url}/ipfs/{cid}

Il CID indirizza esattamente i byte caricati: ricaricare gli stessi byte
produce lo stesso CID (proprietà della rete, non di questo modulo).
Nessuna scrittura su disco locale.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import requests

logger = logging.getLogger("model_relay.storage")


class StorageUnavailable(RuntimeError):
    """La rete di storage non ha accettato (o restituito) il contenuto."""


class StorageUploader(ABC):
    """Port: storage content-addressed (put/get)."""

    @abstractmethod
    def put(self, file_bytes: bytes, file_name: str) -> str:
        """Carica i byte e ritorna il CID."""

    @abstractmethod
    def get(self, cid: str) -> bytes:
        """Ritorna i byte indirizzati dal CID."""


class Web3StorageUploader(StorageUploader):
    DEFAULT_API_URL = "https://api.web3.storage"
    DEFAULT_GATEWAY_URL = "https://w3s.link"

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        gateway_url: str = DEFAULT_GATEWAY_URL,
        timeout: Optional[float] = 60.0,
    ) -> None:
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "Web3StorageUploader":
        return cls(
            token=settings.web3_storage_token.get_secret_value(),
            api_url=settings.web3_storage_api_url,
            gateway_url=settings.ipfs_gateway_url,
            timeout=settings.http_timeout,
        )

    def put(self, file_bytes: bytes, file_name: str) -> str:
        if not file_bytes:
            raise ValueError("file_bytes non può essere vuoto.")

        url = f"{self.api_url}/upload"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/octet-stream",
        }
        # il nome è solo metadato
        if file_name:
            headers["X-Name"] = quote(file_name)

        try:
            resp = requests.post(url, data=file_bytes, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise StorageUnavailable(f"Errore di connessione verso {url}: {e}") from e

        if not resp.ok:
            raise StorageUnavailable(f"HTTP {resp.status_code} su /upload: {resp.text}")

        try:
            cid = resp.json().get("cid")
        except (ValueError, AttributeError) as e:
            raise StorageUnavailable(f"Impossibile decodificare JSON da /upload: {resp.text}") from e
        if not cid:
            raise StorageUnavailable(f"Risposta /upload senza cid: {resp.text}")

        logger.info("Caricato %s (%d byte) -> cid=%s", file_name or "<senza nome>", len(file_bytes), cid)
        return cid

    def get(self, cid: str) -> bytes:
        url = f"{self.gateway_url}/ipfs/{cid}"
        try:
            resp = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise StorageUnavailable(f"Errore di connessione verso {url}: {e}") from e

        if not resp.ok:
            raise StorageUnavailable(f"HTTP {resp.status_code} su /ipfs/{cid}: {resp.text}")
        return resp.content
