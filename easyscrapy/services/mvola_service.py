"""MVola mobile-money payments: merchant-pay client and session unlock flow.

The gateway's callback is only a hint: every state change goes through
``sync_payment``, which asks the gateway for the transaction status itself.
"""

import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from easyscrapy.config import get_settings
from easyscrapy.constants import (
    MVOLA_CURRENCY,
    MVOLA_DESCRIPTION_MAX,
    MVOLA_DESCRIPTION_PATTERN,
    MVOLA_MERCHANT_PAY_PATH,
    MVOLA_MSISDN_PATTERN,
    MVOLA_TOKEN_SCOPE,
)
from easyscrapy.db.encryption import encrypt
from easyscrapy.http_client import get_http_client
from easyscrapy.models.payment import MvolaPayment
from easyscrapy.models.user import User
from easyscrapy.services import credit_service
from easyscrapy.services.email_service import send_download_email
from easyscrapy.services.pack_service import get_pack
from easyscrapy.services.payment_service import AlreadyPaidError, PackNotFoundError, grant_download_access
from easyscrapy.services.session_service import SessionNotFoundError, SessionRepository
from easyscrapy_cli.utils import now_utc

logger = logging.getLogger(__name__)

_TOKEN_REFRESH_MARGIN = 60  # seconds


class MvolaError(Exception):
    """Raised on validation failures or gateway errors."""


def clean_msisdn(msisdn: str) -> str:
    return re.sub(r"\D", "", msisdn or "")


def validate_msisdn(msisdn: str) -> str:
    cleaned = clean_msisdn(msisdn)
    if not re.match(MVOLA_MSISDN_PATTERN, cleaned):
        raise MvolaError("Format MSISDN client invalide")
    return cleaned


def validate_description(description: str) -> None:
    if len(description) > MVOLA_DESCRIPTION_MAX:
        raise MvolaError(f"La description ne peut pas dépasser {MVOLA_DESCRIPTION_MAX} caractères")
    if not re.match(MVOLA_DESCRIPTION_PATTERN, description):
        raise MvolaError(
            'La description contient des caractères non autorisés. '
            'Seuls les caractères alphanumériques et "- . _ ," sont autorisés'
        )


def validate_amount(amount: float) -> int:
    if amount <= 0:
        raise MvolaError("Le montant doit être supérieur à 0")
    if int(amount) != amount:
        raise MvolaError("Le montant doit être un nombre entier (pas de décimales)")
    return int(amount)


@dataclass
class ParsedCallback:
    transaction_status: str | None
    server_correlation_id: str | None
    transaction_reference: str | None
    request_date: str | None
    fees: list = field(default_factory=list)
    metadata: list = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.transaction_status == "completed"

    @property
    def is_failed(self) -> bool:
        return self.transaction_status == "failed"


def parse_callback(body: Any) -> ParsedCallback:
    if not isinstance(body, dict):
        raise MvolaError("Format de callback invalide")
    return ParsedCallback(
        transaction_status=body.get("transactionStatus"),
        server_correlation_id=body.get("serverCorrelationId"),
        transaction_reference=body.get("transactionReference"),
        request_date=body.get("requestDate"),
        fees=body.get("fees") or [],
        metadata=body.get("metadata") or [],
    )


class MvolaClient:
    """Async client for the MVola merchant-pay API (OAuth2 client credentials)."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        settings = get_settings()
        self.base_url = settings.mvola_base_url
        self.consumer_key = settings.mvola_consumer_key
        self.consumer_secret = settings.mvola_consumer_secret
        self.partner_name = settings.mvola_partner_name
        self.partner_msisdn = settings.mvola_partner_msisdn
        self.language = settings.mvola_language
        self.callback_url = settings.mvola_callback_url
        self._client = client
        self._token: str | None = None
        self._token_expires_at = 0.0

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    async def get_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        if not self.consumer_key or not self.consumer_secret:
            raise MvolaError("MVola credentials are not configured")

        try:
            resp = await self.client.post(
                f"{self.base_url}/token",
                auth=(self.consumer_key, self.consumer_secret),
                data={"grant_type": "client_credentials", "scope": MVOLA_TOKEN_SCOPE},
                headers={"Cache-Control": "no-cache"},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("MVola token HTTP error: %s - %s", e.response.status_code, e.response.text[:500])
            raise MvolaError(f"Échec de la génération du token: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("MVola token error: %s", e)
            raise MvolaError(f"Échec de la génération du token: {e}") from e

        self._token = data["access_token"]
        self._token_expires_at = time.monotonic() + int(data.get("expires_in", 3600)) - _TOKEN_REFRESH_MARGIN
        return self._token

    async def _headers(self) -> dict[str, str]:
        token = await self.get_token()
        return {
            "Version": "1.0",
            "Authorization": f"Bearer {token}",
            "X-CorrelationID": str(uuid.uuid4()),
            "UserLanguage": self.language,
            "UserAccountIdentifier": f"msisdn;{self.partner_msisdn}",
            "partnerName": self.partner_name,
            "Cache-Control": "no-cache",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        headers = await self._headers()
        headers.update(kwargs.pop("headers", {}))
        try:
            resp = await self.client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("MVola HTTP error on %s: %s - %s", path, e.response.status_code, e.response.text[:500])
            raise MvolaError(f"MVola error: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("MVola request error on %s: %s", path, e)
            raise MvolaError(f"MVola error: {e}") from e

    async def initiate(
        self, amount: int, customer_msisdn: str, description: str, client_transaction_id: str
    ) -> dict[str, Any]:
        amount = validate_amount(amount)
        customer_msisdn = validate_msisdn(customer_msisdn)
        validate_description(description)

        body = {
            "amount": str(amount),
            "currency": MVOLA_CURRENCY,
            "descriptionText": description,
            "requestDate": now_utc().strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "debitParty": [{"key": "msisdn", "value": customer_msisdn}],
            "creditParty": [{"key": "msisdn", "value": self.partner_msisdn}],
            "metadata": [{"key": "partnerName", "value": self.partner_name}],
            "requestingOrganisationTransactionReference": client_transaction_id,
            "originalTransactionReference": "",
        }
        headers = {"X-Callback-URL": self.callback_url} if self.callback_url else {}
        return await self._request("POST", MVOLA_MERCHANT_PAY_PATH, json=body, headers=headers)

    async def get_status(self, server_correlation_id: str) -> dict[str, Any]:
        return await self._request("GET", f"{MVOLA_MERCHANT_PAY_PATH}status/{server_correlation_id}")

    async def get_transaction_details(self, transaction_id: str) -> dict[str, Any]:
        return await self._request("GET", f"{MVOLA_MERCHANT_PAY_PATH}{transaction_id}")


def get_mvola_client() -> MvolaClient:
    """FastAPI dependency (overridable in tests)."""
    return MvolaClient()


async def initiate_payment(
    repo: SessionRepository,
    mvola: MvolaClient,
    user: User,
    session_id: str,
    pack_id: str,
    msisdn: str,
) -> MvolaPayment:
    db = repo.db
    cleaned = validate_msisdn(msisdn)

    pack = await get_pack(db, pack_id)
    if not pack:
        raise PackNotFoundError(f"Pack {pack_id} not found")
    session = await repo.get(session_id)
    if not session or (session.user_id is not None and session.user_id != user.id):
        raise SessionNotFoundError(f"Session {session_id} not found")
    if session.is_paid:
        raise AlreadyPaidError(f"Session {session_id} is already paid")

    client_transaction_id = f"ES{uuid.uuid4().hex[:20]}"
    description = f"EasyScrapy {pack.name}"[:MVOLA_DESCRIPTION_MAX]
    response = await mvola.initiate(int(pack.price), cleaned, description, client_transaction_id)

    if session.user_id is None:
        session.user_id = user.id
    session.pack_id = pack.id
    payment = MvolaPayment(
        user_id=user.id,
        session_id=session.id,
        pack_id=pack.id,
        amount=float(pack.price),
        currency=MVOLA_CURRENCY,
        customer_msisdn=encrypt(cleaned),
        client_transaction_id=client_transaction_id,
        server_correlation_id=response.get("serverCorrelationId"),
        status="pending",
        status_reason=response.get("status"),
    )
    db.add(payment)
    await db.commit()
    await db.refresh(payment)
    logger.info(
        "MVola payment initiated: session=%s pack=%s correlation=%s",
        session.id, pack.id, payment.server_correlation_id,
    )
    return payment


async def get_payment_by_correlation(db: AsyncSession, server_correlation_id: str) -> MvolaPayment | None:
    result = await db.execute(
        select(MvolaPayment).where(MvolaPayment.server_correlation_id == server_correlation_id)
    )
    return result.scalar_one_or_none()


async def sync_payment(repo: SessionRepository, mvola: MvolaClient, payment: MvolaPayment) -> MvolaPayment:
    """Ask the gateway for the transaction status and apply it to a pending row."""
    db = repo.db
    result = await db.execute(
        select(MvolaPayment)
        .where(MvolaPayment.id == payment.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one()
    if payment.status != "pending" or not payment.server_correlation_id:
        return payment

    status_data = await mvola.get_status(payment.server_correlation_id)
    gateway_status = status_data.get("status")
    payment.attempts = (payment.attempts or 0) + 1

    if gateway_status == "completed":
        unlocked = await _complete_payment(repo, payment, status_data)
        await db.commit()
        if unlocked is not None:
            user = await db.get(User, payment.user_id)
            if user:
                await send_download_email(user.email, unlocked.id, unlocked.download_url, unlocked.total_items)
    elif gateway_status == "failed":
        payment.status = "failed"
        payment.status_reason = status_data.get("notificationMethod") or "failed"
        await db.commit()
        logger.warning("MVola payment %s failed", payment.server_correlation_id)
    else:
        await db.commit()
    return payment


async def _complete_payment(repo: SessionRepository, payment: MvolaPayment, status_data: dict[str, Any]):
    payment.status = "completed"
    payment.status_reason = status_data.get("objectReference") or "completed"

    session = await repo.get(payment.session_id, for_update=True) if payment.session_id else None
    if session is None or session.is_paid:
        logger.info("MVola payment %s completed, session already paid or missing", payment.server_correlation_id)
        return None

    grant_download_access(
        repo, session,
        payment_method="mvola",
        payment_intent_id=payment.server_correlation_id,
        pack_id=payment.pack_id,
    )
    pack = await get_pack(repo.db, payment.pack_id)
    if pack:
        await credit_service.add_credits(
            repo.db, payment.user_id, float(pack.nb_downloads), "purchase",
            reference_id=f"mvola_{payment.client_transaction_id}",
            description=f"Achat {pack.name} (MVola)",
            metadata={"packId": pack.id, "sessionId": session.id},
        )
    logger.info("Session %s unlocked by MVola payment %s", session.id, payment.server_correlation_id)
    return session
