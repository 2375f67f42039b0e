"""Webhook receiver for identity provider account events."""

import hmac
import json
import logging

from fastapi import APIRouter, Header, HTTPException, Request, status
from pydantic import ValidationError

from src.clinic.features.webhooks.models import AuthEvent, WebhookResponse
from src.clinic.services.auth.dependencies import get_services
from src.clinic.services.directory import InvalidRoleError, NewUser, Role, UserNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/auth",
    response_model=WebhookResponse,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": AuthEvent.model_json_schema()}},
        }
    },
)
async def receive_auth_event(
    request: Request,
    x_webhook_secret: str | None = Header(None),
) -> WebhookResponse:
    """
    Handle an account event from the identity provider.

    `user.created` provisions the local record (role from metadata, PATIENT
    when absent). `user.deleted` deactivates it; records are never removed.
    Every other event type is acknowledged and ignored.

    Raises:
        HTTPException: 401 if the shared secret is missing or wrong
        HTTPException: 400 if the payload is malformed, or carries an invalid role or no email
        HTTPException: 500 if provisioning or deactivation fails
    """
    services = get_services(request)
    expected = services.webhook_secret
    if not expected or not x_webhook_secret or not hmac.compare_digest(
        x_webhook_secret.encode(), expected.encode()
    ):
        logger.warning("Rejected webhook with invalid secret", extra={"error_type": "webhook_auth"})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

    try:
        event = AuthEvent.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.warning(f"Malformed webhook payload: {e}", extra={"error_type": "webhook_payload"})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed event payload"
        ) from e

    logger.info(f"Auth event received: {event.type}", extra={"auth_id": event.data.id})

    if event.type == "user.created":
        return await _provision(request, event)
    if event.type == "user.deleted":
        return await _deactivate(request, event)
    return WebhookResponse()


async def _provision(request: Request, event: AuthEvent) -> WebhookResponse:
    data = event.data
    if not data.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing email")

    metadata = {**data.user_metadata, **data.app_metadata}
    try:
        user, created = await get_services(request).sync.provision(
            NewUser(
                auth_id=data.id,
                email=data.email,
                name=metadata.get("full_name") or metadata.get("name"),
                role=metadata.get("role") or Role.PATIENT.value,
                specialty=metadata.get("specialty"),
            )
        )
    except InvalidRoleError as e:
        logger.error(f"Invalid role in user.created for {data.id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role") from e
    except Exception as e:
        logger.error(f"Failed to provision {data.id} from webhook: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to provision user"
        ) from e

    return WebhookResponse(created=created)


async def _deactivate(request: Request, event: AuthEvent) -> WebhookResponse:
    auth_id = event.data.id
    try:
        await get_services(request).sync.set_active(auth_id, False)
    except UserNotFoundError:
        # Never provisioned locally
        logger.info(f"user.deleted for unknown user {auth_id}", extra={"auth_id": auth_id})
        return WebhookResponse()
    except Exception as e:
        logger.error(f"Failed to deactivate {auth_id} from webhook: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to deactivate user"
        ) from e

    logger.info(f"Deactivated {auth_id} after provider deletion", extra={"auth_id": auth_id})
    return WebhookResponse()
