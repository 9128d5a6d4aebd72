"""Evolution API client, instance status checks and failover dispatch.

All outbound HTTP goes through `build_http_client()` so tests can swap the
transport. Remote failures are logged and turned into `EvolutionError`
(or an error entry in the returned attempts); nothing here retries except
the explicit try-next-endpoint loop in `dispatch_with_failover`.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import httpx

from ..config import settings

logger = logging.getLogger("painel.evolution")


class EvolutionError(Exception):
    """Raised when an Evolution (or webhook) call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class NoEndpointConfigured(EvolutionError):
    pass


def build_http_client() -> httpx.Client:
    return httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS)


def http_client(http: Optional[httpx.Client] = None):
    """Context manager yielding `http` unchanged, or a new client closed on exit."""
    if http is not None:
        return nullcontext(http)
    return build_http_client()


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _json_or_text(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return response.text[:500]


class EvolutionEndpoint:
    """A sendable Evolution API target (a configured instance or the env fallback)."""

    def __init__(self, api_url: str, api_key: str, instance: str, instance_id: Optional[str] = None, name: Optional[str] = None):
        self.api_url = _clean(api_url).rstrip("/")
        self.api_key = _clean(api_key)
        self.instance = _clean(instance)
        self.instance_id = instance_id
        self.name = name or self.instance

    @classmethod
    def from_instance(cls, inst) -> "EvolutionEndpoint":
        return cls(inst.evolution_api_url, inst.evolution_api_key, inst.evolution_instance, inst.id, inst.nome)

    @classmethod
    def from_settings(cls) -> Optional["EvolutionEndpoint"]:
        ep = cls(settings.EVOLUTION_API_URL, settings.EVOLUTION_API_KEY, settings.EVOLUTION_INSTANCE, None, "env")
        return ep if ep.is_complete() else None

    def is_complete(self) -> bool:
        return bool(self.api_url and self.api_key and self.instance) and self.api_url != "-"


class EvolutionClient:
    def __init__(self, endpoint: EvolutionEndpoint, http: httpx.Client):
        self.endpoint = endpoint
        self.http = http

    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "apikey": self.endpoint.api_key}

    def _post(self, path: str, payload: dict):
        url = f"{self.endpoint.api_url}/{path}/{self.endpoint.instance}"
        try:
            resp = self.http.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("evolution_request_failed instance=%s error=%s", self.endpoint.name, exc)
            raise EvolutionError(str(exc)) from exc
        data = _json_or_text(resp)
        if not resp.is_success:
            logger.warning("evolution_http_error instance=%s status=%s", self.endpoint.name, resp.status_code)
            raise EvolutionError(f"Evolution API error: {resp.status_code}", resp.status_code, data)
        return data

    def connection_state(self) -> dict:
        url = f"{self.endpoint.api_url}/instance/connectionState/{self.endpoint.instance}"
        try:
            resp = self.http.get(url, headers={"apikey": self.endpoint.api_key})
        except httpx.HTTPError as exc:
            raise EvolutionError(str(exc)) from exc
        if not resp.is_success:
            raise EvolutionError(f"HTTP {resp.status_code}", resp.status_code, resp.text[:500])
        data = _json_or_text(resp)
        return data if isinstance(data, dict) else {}

    def send_text(self, number: str, text: str):
        return self._post("message/sendText", {"number": number, "text": text})

    def send_media(self, number: str, media_url: str, media_type: str = "image", caption: Optional[str] = None):
        payload = {"number": number, "mediatype": media_type or "image", "media": media_url, "caption": caption or ""}
        return self._post("message/sendMedia", payload)


def send_webhook(instance, http: httpx.Client, phone: str, message: Optional[str], media_url=None, media_type=None, caption=None):
    """POST a message to a webhook-type instance with its custom headers."""
    headers = {"Content-Type": "application/json"}
    headers.update(instance.webhook_headers or {})
    payload = {
        "phone": phone,
        "message": message,
        "media_url": media_url,
        "media_type": media_type,
        "caption": caption,
        "instance_name": instance.nome,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    try:
        resp = http.post(instance.webhook_url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise EvolutionError(str(exc)) from exc
    if not resp.is_success:
        raise EvolutionError(f"Webhook error: {resp.status_code} - {resp.text[:300]}", resp.status_code)
    return _json_or_text(resp)


def _state_of(data: dict) -> Optional[str]:
    state = data.get("state")
    if not state and isinstance(data.get("instance"), dict):
        state = data["instance"].get("state")
    return state


def check_instance_status(instance, http: httpx.Client) -> dict:
    """Probe one instance and map its state to connected/connecting/disconnected/error."""
    out = {"id": instance.id, "nome": instance.nome}
    if (instance.api_type or "evolution") == "webhook":
        return {**out, "status": "connected", "message": "Webhook (sem verificação)"}
    endpoint = EvolutionEndpoint.from_instance(instance)
    if not endpoint.is_complete():
        return {**out, "status": "error", "message": "Dados incompletos"}
    try:
        data = EvolutionClient(endpoint, http).connection_state()
    except EvolutionError as exc:
        logger.warning("instance_status_failed instance=%s error=%s", instance.nome, exc)
        return {**out, "status": "error", "message": str(exc) or "Erro desconhecido"}
    state = _state_of(data)
    if state == "open":
        status = "connected"
    elif state == "connecting":
        status = "connecting"
    else:
        status = "disconnected"
    return {**out, "status": status, "message": state}


def failover_candidates(instances: Iterable, preferred_id: Optional[str] = None) -> List[EvolutionEndpoint]:
    """Sendable endpoints in priority order.

    `instances` are expected already ordered by `ordem`. Inactive, webhook
    and incomplete instances are skipped; `preferred_id` is moved first.
    The environment endpoint is used only when nothing else qualifies.
    """
    candidates = [
        EvolutionEndpoint.from_instance(i)
        for i in instances
        if i.is_active and (i.api_type or "evolution") == "evolution"
    ]
    candidates = [c for c in candidates if c.is_complete()]
    if preferred_id:
        preferred = [c for c in candidates if c.instance_id == preferred_id]
        candidates = preferred + [c for c in candidates if c.instance_id != preferred_id]
    if not candidates:
        env = EvolutionEndpoint.from_settings()
        if env:
            candidates = [env]
    return candidates


def dispatch_with_failover(
    endpoints: List[EvolutionEndpoint],
    phone: str,
    message: str,
    http: httpx.Client,
    media_url: Optional[str] = None,
    media_type: Optional[str] = None,
    caption: Optional[str] = None,
) -> dict:
    """Try each endpoint in order and stop at the first success.

    Returns `{"data", "endpoint", "attempts"}`. Raises `NoEndpointConfigured`
    for an empty list and `EvolutionError` carrying the attempts when all fail.
    """
    if not endpoints:
        raise NoEndpointConfigured("Configuração da Evolution API incompleta")
    attempts = []
    last_error: Optional[EvolutionError] = None
    for endpoint in endpoints:
        client = EvolutionClient(endpoint, http)
        try:
            if media_url:
                data = client.send_media(phone, media_url, media_type or "image", caption or message)
            else:
                data = client.send_text(phone, message)
        except EvolutionError as exc:
            last_error = exc
            attempts.append({"instance_id": endpoint.instance_id, "instance_name": endpoint.name, "success": False, "error": str(exc)})
            continue
        attempts.append({"instance_id": endpoint.instance_id, "instance_name": endpoint.name, "success": True})
        logger.info("whatsapp_sent instance=%s attempts=%s", endpoint.name, len(attempts))
        return {"data": data, "endpoint": endpoint, "attempts": attempts}
    logger.warning("whatsapp_dispatch_failed attempts=%s", len(attempts))
    raise EvolutionError(
        "Erro ao enviar mensagem via Evolution API",
        last_error.status_code if last_error else None,
        {"last_error": str(last_error), "response": last_error.details if last_error else None, "attempts": attempts},
    )
