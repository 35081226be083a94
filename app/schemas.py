from pydantic import BaseModel, Field
from typing import Optional


# =============================================================================
# UPLOAD MODEL
# =============================================================================
class UploadModelResponse(BaseModel):
    """
    Risposta di un upload-and-list riuscito.

    **Campi**:
    - **success**: sempre `true`.
    - **tokenId**: Identificativo del listing creato on-chain.
    - **ipfsCid**: CID del file caricato su IPFS.
    """
    success: bool = Field(
        True,
        description="Esito dell'operazione."
    )
    tokenId: int = Field(
        ...,
        ge=0,
        description="Identificativo del listing restituito da `list-model`."
    )
    ipfsCid: str = Field(
        ...,
        description="Content identifier del modello caricato."
    )


class ErrorResponse(BaseModel):
    """
    Corpo degli errori.

    **Campi**:
    - **error**: Messaggio descrittivo.
    - **kind**: Tipo di errore (StorageUnavailable, SigningError, BroadcastRejected, ConfirmationTimeout).
    - **ipfsCid**: CID già caricato, presente solo se l'errore è avvenuto dopo l'upload.
    - **txid**: Transazione coinvolta, se nota.
    """
    error: str = Field(
        ...,
        description="Messaggio di errore."
    )
    kind: Optional[str] = Field(
        None,
        description="Tipo di errore."
    )
    ipfsCid: Optional[str] = Field(
        None,
        description="CID del file già caricato: permette di ritentare il solo listing."
    )
    txid: Optional[str] = Field(
        None,
        description="Transazione Stacks coinvolta, se nota (utile dopo un ConfirmationTimeout)."
    )


# =============================================================================
# LISTING STATUS
# =============================================================================
class ListingStatusResponse(BaseModel):
    """
    Stato di una transazione `list-model`.

    **Campi**:
    - **txid**: Identificativo della transazione.
    - **status**: `success`, `pending`, `not_found` oppure lo stato di abort/drop del nodo.
    - **tokenId**: Valorizzato solo con `status = success`.
    """
    txid: str = Field(
        ...,
        description="Identificativo della transazione."
    )
    status: str = Field(
        ...,
        description="Stato riportato dal nodo Stacks."
    )
    tokenId: Optional[int] = Field(
        None,
        description="Identificativo del listing, se confermato."
    )
