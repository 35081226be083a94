import logging
import time
from typing import Optional

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import Settings, load_settings
from app.logging_config import setup_logging
from app.orchestrator import ListingFailed, UploadOrchestrator, ValidationError
from app.schemas import ErrorResponse, ListingStatusResponse, UploadModelResponse
from ipfs_storage.w3s_storage import StorageUnavailable, StorageUploader, Web3StorageUploader
from listing_manager.sdk.stacks_sdk import ApiError
from listing_manager.stacks_listing_manager import ModelLister, StacksListingManager

logger = logging.getLogger("model_relay.api")

DESCRIPTION = """
Questa API riceve il file di un modello AI, lo carica su IPFS e lo pubblica sul
contratto marketplace Stacks (`ai-marketplace`, funzione `list-model`) con
prezzo e token di pagamento opzionale.

La risposta arriva dopo la conferma on-chain della transazione. Se il listing
fallisce dopo l'upload, il corpo dell'errore riporta `ipfsCid` (e `txid`, se
noto) per ritentare senza ricaricare il file.
"""

router = APIRouter(prefix="/api")


@router.post(
    "/upload-model",
    response_model=UploadModelResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Models"],
)
def upload_model(
    request: Request,
    modelFile: Optional[UploadFile] = File(None),
    price: Optional[str] = Form(None),
    paymentToken: Optional[str] = Form(None),
):
    """
    **Upload & List**

    Carica il modello su IPFS e crea il listing on-chain.

    **Parametri di input** (multipart/form-data):
    - **modelFile**: File del modello (obbligatorio, non vuoto).
    - **price**: Prezzo, intero positivo (obbligatorio).
    - **paymentToken**: Principal del token di pagamento (opzionale).

    **Risposta**:
    ```json
    { "success": true, "tokenId": 1, "ipfsCid": "bafy..." }
    ```
    """
    orchestrator: UploadOrchestrator = request.app.state.orchestrator

    file_bytes = modelFile.file.read() if modelFile is not None else None
    file_name = modelFile.filename if modelFile is not None else None

    upload = orchestrator.build_request(file_bytes, file_name, price, paymentToken)
    return orchestrator.handle(upload).to_response()


@router.get(
    "/listing-status/{txid}",
    response_model=ListingStatusResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Models"],
)
def listing_status(txid: str, request: Request):
    """
    **Stato del listing**

    Singola lettura dello stato di una transazione `list-model`, utile dopo un
    `ConfirmationTimeout` per verificare se la transazione è stata poi confermata.
    """
    orchestrator: UploadOrchestrator = request.app.state.orchestrator
    return orchestrator.listing_status(txid)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    content = {"error": message}
    content.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=status_code, content=content)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
            return _error(400, f"{field}: {first.get('msg', 'invalid')}")
        return _error(400, "Invalid request")

    @app.exception_handler(StorageUnavailable)
    async def _storage_unavailable(request: Request, exc: StorageUnavailable):
        logger.error("Upload IPFS fallito: %s", exc)
        return _error(500, str(exc), kind="StorageUnavailable")

    @app.exception_handler(ListingFailed)
    async def _listing_failed(request: Request, exc: ListingFailed):
        return _error(500, str(exc), kind=exc.kind, ipfsCid=exc.cid, txid=exc.txid)

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError):
        logger.error("Errore rete Stacks: %s: %s", type(exc).__name__, exc)
        return _error(500, str(exc), kind=type(exc).__name__, txid=exc.txid)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Eccezione non gestita %s %s: %s", request.method, request.url.path, exc)
        return _error(500, str(exc))


def create_app(
    settings: Optional[Settings] = None,
    uploader: Optional[StorageUploader] = None,
    lister: Optional[ModelLister] = None,
) -> FastAPI:
    """
    Costruisce l'applicazione. Senza `settings` legge l'ambiente: una
    configurazione mancante fa fallire l'avvio (ConfigError), non la prima
    richiesta. `uploader` e `lister` sostituiscono i client di rete (test).
    """
    # load_settings() legge anche .env, quindi prima di LOG_LEVEL
    settings = settings or load_settings()
    setup_logging()

    if uploader is None:
        uploader = Web3StorageUploader.from_settings(settings)
    if lister is None:
        manager = StacksListingManager.from_settings(settings)
        # la chiave deve essere utilizzabile già all'avvio
        logger.info("Signer %s -> contratto %s", manager.sender_address, manager.contract_id)
        lister = manager

    app = FastAPI(
        title="Model Marketplace Upload API",
        description=DESCRIPTION,
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.orchestrator = UploadOrchestrator(uploader, lister)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, "%s %s %d %.0fms", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    @app.get("/", tags=["Health Check"])
    def root():
        """
        **Health Check**

        Verifica che il servizio sia attivo.
        """
        return {"message": "Model marketplace upload API attiva."}

    app.include_router(router)
    _register_exception_handlers(app)

    logger.info(
        "Avvio: %s",
        {
            "network": settings.network,
            "stacks_api_url": settings.stacks_api_url or "(default)",
            "contract": f"{settings.contract_address}.{settings.contract_name}",
            "function": settings.contract_function,
            "confirm_timeout": settings.confirm_timeout,
            "PRIVATE_KEY_set": bool(settings.private_key.get_secret_value()),
            "WEB3_STORAGE_TOKEN_set": bool(settings.web3_storage_token.get_secret_value()),
        },
    )
    return app


if __name__ == "__main__":
    import uvicorn

    _settings = load_settings()
    uvicorn.run(create_app(_settings), host="0.0.0.0", port=_settings.port)
