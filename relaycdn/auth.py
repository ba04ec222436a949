"""
auth.py – request identity helpers for the relaycdn API.

Two concerns live here:
  client id  – network origin used as the quota key. First entry of
               X-Forwarded-For, then X-Real-IP, then the socket peer, else
               "Unknown".
  admin      – a single shared password (ADMIN_PASSWORD). Mutating admin
               routes expect it in the X-Admin-Password header. There is no
               lockout and no session; every request carries the secret.
"""

import logging

from fastapi import Depends, Request

from relaycdn.admin import AdminOperations
from relaycdn.errors import AuthFailure
from relaycdn.quota import UNKNOWN_CLIENT
from relaycdn.services import Services, get_services

logger = logging.getLogger("relaycdn.auth")

ADMIN_HEADER = "X-Admin-Password"


def resolve_client_id(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def get_admin(services: Services = Depends(get_services)) -> AdminOperations:
    return services.admin


def require_admin(
    request: Request,
    admin: AdminOperations = Depends(get_admin),
) -> AdminOperations:
    """
    FastAPI dependency guarding admin mutations.

    Raises 503 while ADMIN_PASSWORD is unset and 401 for a wrong or missing
    header.
    """
    supplied = request.headers.get(ADMIN_HEADER, "")
    if not admin.authenticate(supplied):
        client_id = resolve_client_id(request)
        logger.warning(
            "Rejected admin request from %s – invalid or missing %s",
            client_id,
            ADMIN_HEADER,
            extra={"client_id": client_id},
        )
        raise AuthFailure("Invalid or missing admin password")
    return admin
