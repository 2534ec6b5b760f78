"""CommonSKU client lookup used to validate client names on the intake form."""

from __future__ import annotations

import logging

from ..models import ClientValidation
from ..settings import Settings
from .http import build_url, request_json

logger = logging.getLogger(__name__)

SERVICE = "commonsku"


class CommonSkuClient:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.timeout_s = settings.http_timeout_s

    def validate_client(self, client_name: str) -> ClientValidation:
        api_key = self.settings.commonsku_api_key
        if not api_key:
            logger.warning("commonsku_validate event=skipped reason=api_key_not_configured")
            return ClientValidation(exists=False, message="CommonSKU API not configured")

        raw = request_json(
            service=SERVICE,
            url=build_url(
                self.settings.commonsku_base_url, "/clients", {"client_name": client_name}
            ),
            headers={"x-api-key": api_key},
            timeout_s=self.timeout_s,
        )
        clients = raw.get("clients") or []
        if not clients:
            return ClientValidation(exists=False, message="Client not found in CommonSKU")

        client = clients[0] if isinstance(clients[0], dict) else {}
        client_id = client.get("id")
        return ClientValidation(
            exists=True,
            client_id=str(client_id) if client_id is not None else None,
            client_data=client or None,
            message="Client found in CommonSKU",
        )
