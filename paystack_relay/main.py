import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response

from .errors import GatewayError
from .gateway import PaystackClient
from .logging_config import setup_logging
from .mailer import SmtpMailer
from .models import InitializePaymentRequest, InitializePaymentResponse
from .settings import Settings
from .signature import SIGNATURE_HEADER
from .store import OrderStore
from .webhook import WebhookHandler

logger = logging.getLogger(__name__)

MISSING_DETAILS_MESSAGE = "Missing required payment details. Ensure cart and shipping info are included."


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def get_store(settings: Settings = Depends(get_settings)) -> OrderStore:
    return OrderStore(settings)


def get_gateway(settings: Settings = Depends(get_settings)) -> PaystackClient:
    return PaystackClient(settings)


def get_notifier(settings: Settings = Depends(get_settings)) -> SmtpMailer:
    return SmtpMailer(settings)


def get_webhook_handler(
    settings: Settings = Depends(get_settings),
    store: OrderStore = Depends(get_store),
    notifier: SmtpMailer = Depends(get_notifier),
) -> WebhookHandler:
    return WebhookHandler(settings, store, notifier)


def frontend_redirect(settings: Settings, page: str, **params: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.frontend_url}/{page}?{urlencode(params)}", status_code=302)


_settings = get_settings()
setup_logging(_settings)

app = FastAPI(title="Paystack Relay", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(_settings.cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.error("Rejected %s: invalid request body", request.url.path)
    return JSONResponse(
        status_code=400,
        content={"message": MISSING_DETAILS_MESSAGE, "errors": jsonable_encoder(exc.errors())},
    )


@app.get("/", response_class=PlainTextResponse)
def root():
    return "Paystack relay is running"


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/api/paystack/initialize", response_model=InitializePaymentResponse)
async def initialize_payment(req: InitializePaymentRequest, gateway: PaystackClient = Depends(get_gateway)):
    try:
        authorization = await gateway.initialize_transaction(req)
    except GatewayError as exc:
        logger.error("Error initializing Paystack transaction for order %s: %s", req.order_id, exc.detail)
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to initialize payment", "error": jsonable_encoder(exc.detail)},
        )

    return InitializePaymentResponse(message="Payment initialization successful", data=authorization)


@app.post("/api/paystack/webhook")
async def paystack_webhook(
    request: Request,
    signature: Optional[str] = Header(None, alias=SIGNATURE_HEADER),
    handler: WebhookHandler = Depends(get_webhook_handler),
):
    """
    Fulfilment happens here, not in /verify. The body is read as raw bytes
    because the signature covers them exactly as sent.
    """
    raw_body = await request.body()
    # Store and SMTP calls are blocking
    result = await run_in_threadpool(handler.handle_event, raw_body, signature)
    return Response(status_code=result.status_code)


@app.get("/api/paystack/verify")
async def verify_payment(
    trxref: Optional[str] = None,
    reference: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    gateway: PaystackClient = Depends(get_gateway),
):
    """
    Browser lands here after checkout. Only decides where to send the user;
    orders are written by the webhook.
    """
    transaction_reference = trxref or reference
    if not transaction_reference:
        logger.error("Transaction reference missing in verification callback.")
        raise HTTPException(status_code=400, detail="Transaction reference missing.")

    try:
        transaction = await gateway.verify_transaction(transaction_reference)
    except GatewayError as exc:
        logger.error("Error verifying Paystack transaction %s: %s", transaction_reference, exc.detail)
        return frontend_redirect(settings, "checkout-failure", status="error", message="Verification failed")

    if transaction.succeeded:
        logger.info("Callback: Redirecting user for successful transaction %s.", transaction_reference)
        return frontend_redirect(settings, "checkout-success", status="success", reference=transaction_reference)

    message = transaction.gateway_response or "Payment was not successful"
    logger.error("Paystack transaction %s not successful: %s", transaction_reference, message)
    return frontend_redirect(settings, "checkout-failure", status="failed", message=message)
