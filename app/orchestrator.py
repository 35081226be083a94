"""
Flusso upload-and-list: validazione della richiesta, upload su IPFS,
pubblicazione del listing on-chain.

L'ordine è fisso: prima lo storage, poi la transazione. Un fallimento dopo
l'upload lascia al massimo un file "caricato ma non listato", recuperabile
riprovando solo il listing con il CID restituito nell'errore.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ipfs_storage.w3s_storage import StorageUploader
from listing_manager.sdk.clarity import UINT128_MAX, is_valid_principal
from listing_manager.sdk.stacks_sdk import is_valid_txid, normalize_txid
from listing_manager.stacks_listing_manager import ModelLister

logger = logging.getLogger("model_relay.api")


class ValidationError(ValueError):
    """Input del chiamante non valido: nessuna chiamata di rete effettuata."""


class ListingFailed(RuntimeError):
    """
    Upload riuscito ma listing on-chain fallito. `cause` è l'errore originale
    (SigningError, BroadcastRejected, ConfirmationTimeout, o qualunque altra
    eccezione del lister), `cid` il contenuto già caricato.
    """

    def __init__(self, cause: Exception, cid: str) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.cid = cid

    @property
    def kind(self) -> str:
        return type(self.cause).__name__

    @property
    def txid(self) -> Optional[str]:
        return getattr(self.cause, "txid", None)


@dataclass(frozen=True)
class UploadRequest:
    file_bytes: bytes
    file_name: str
    price: int
    payment_token: Optional[str] = None


@dataclass(frozen=True)
class ListingResult:
    listing_id: int
    cid: str

    def to_response(self) -> Dict[str, Any]:
        return {"success": True, "tokenId": self.listing_id, "ipfsCid": self.cid}


def parse_price(price: Any) -> int:
    if price is None or (isinstance(price, str) and not price.strip()):
        raise ValidationError("Price missing")
    if isinstance(price, bool):
        raise ValidationError("Price must be a positive integer")
    if isinstance(price, int):
        value = price
    else:
        text = str(price).strip()
        if not text.isdigit():
            raise ValidationError("Price must be a positive integer")
        value = int(text)
    if value <= 0:
        raise ValidationError("Price must be a positive integer")
    if value > UINT128_MAX:
        raise ValidationError("Price exceeds uint128")
    return value


def parse_payment_token(payment_token: Optional[str]) -> Optional[str]:
    token = (payment_token or "").strip()
    if not token:
        return None
    if not is_valid_principal(token):
        raise ValidationError(f"Invalid paymentToken principal: {token}")
    return token


class UploadOrchestrator:
    def __init__(self, uploader: StorageUploader, lister: ModelLister) -> None:
        self.uploader = uploader
        self.lister = lister

    @staticmethod
    def build_request(
        file_bytes: Optional[bytes],
        file_name: Optional[str],
        price: Any,
        payment_token: Optional[str] = None,
    ) -> UploadRequest:
        """Valida i campi grezzi del form; solleva ValidationError."""
        if file_bytes is None:
            raise ValidationError("File missing")
        if len(file_bytes) == 0:
            raise ValidationError("File is empty")
        return UploadRequest(
            file_bytes=file_bytes,
            file_name=file_name or "",
            price=parse_price(price),
            payment_token=parse_payment_token(payment_token),
        )

    def handle(self, request: UploadRequest) -> ListingResult:
        # StorageUnavailable propaga: nessuna transazione tentata
        cid = self.uploader.put(request.file_bytes, request.file_name)

        try:
            listing_id = self.lister.list_model(request.price, request.payment_token)
        except Exception as e:
            # dopo l'upload ogni errore deve riportare il CID
            logger.error("Listing fallito dopo upload cid=%s: %s: %s", cid, type(e).__name__, e)
            raise ListingFailed(e, cid) from e

        logger.info("Modello listato tokenId=%s cid=%s", listing_id, cid)
        return ListingResult(listing_id=listing_id, cid=cid)

    def listing_status(self, txid: str) -> Dict[str, Any]:
        """Singola lettura dello stato; un txid malformato non arriva al nodo."""
        if not is_valid_txid(txid):
            raise ValidationError(f"Invalid txid: {txid}")
        return self.lister.listing_status(normalize_txid(txid))
