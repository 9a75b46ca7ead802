"""Tenant and actor resolution for incoming requests.

Authentication is handled upstream; by the time a request reaches this
service the gateway has stamped it with ``X-Tenant-ID`` and, for
user-initiated calls, ``X-Actor-ID`` (``X-User-ID`` is accepted as an alias).
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from .config import settings
from .exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Tenant scope and acting identity for a single request."""

    tenant_id: str
    actor_id: Optional[str] = None


def parse_uuid(value: Optional[str], field_name: str) -> str:
    """Validate a UUID string and return it in canonical form."""
    if value is None or not str(value).strip():
        raise ValidationError(
            detail=f"{field_name} is required", error_code="INVALID_IDENTIFIER"
        )
    try:
        return str(uuid.UUID(str(value).strip()))
    except ValueError:
        raise ValidationError(
            detail=f"{field_name} is not a valid identifier: {value}",
            error_code="INVALID_IDENTIFIER",
        )


async def get_request_context(
    x_tenant_id: Optional[str] = Header(None),
    x_actor_id: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
) -> RequestContext:
    """Resolve the tenant and actor for the current request."""
    tenant_value = x_tenant_id or settings.default_tenant_id
    tenant_id = parse_uuid(tenant_value, "X-Tenant-ID")

    actor_value = x_actor_id or x_user_id
    actor_id = parse_uuid(actor_value, "X-Actor-ID") if actor_value else None

    return RequestContext(tenant_id=tenant_id, actor_id=actor_id)
