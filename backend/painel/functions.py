"""Serverless-style JSON handlers mounted under `/functions/v1`.

Each handler is stateless: it authenticates the caller, delegates to a
service and answers JSON. Error bodies keep the shapes the frontend
expects (`{"error": ...}` or `{"success": false, "error": ...}`), raised
as `FunctionError` and rendered by the app's exception handler.

Endpoints implemented:
- POST /functions/v1/initialize-admin
- POST /functions/v1/create-user
- POST /functions/v1/update-user
- GET|POST /functions/v1/check-instance-status
- POST /functions/v1/cleanup-orphan-files
- GET|POST /functions/v1/google-drive-auth
- POST /functions/v1/send-whatsapp
- POST /functions/v1/send-chat-message
- POST /functions/v1/receive-whatsapp-webhook
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from . import messaging, models, services
from .auth import SERVICE_ROLE, bearer_scheme, is_service_role, user_from_token
from .config import settings
from .database import get_session
from .schemas import ChatMessageIn, CleanupIn, CreateUserIn, InitializeAdminIn, SendWhatsappIn, UpdateUserIn
from .utils import evolution
from .utils.drive import DriveAuthError
from .utils.rate_limit import SlidingWindowLimiter

logger = logging.getLogger("painel.functions")

router = APIRouter(prefix="/functions/v1", tags=["functions"])
webhook_limiter = SlidingWindowLimiter(settings.WEBHOOK_RATE_LIMIT_PER_MIN)


class FunctionError(Exception):
    """An error answered as a JSON body with `status_code`."""

    def __init__(self, status_code: int, body: dict):
        super().__init__(body.get("error"))
        self.status_code = status_code
        self.body = body


def _user(credentials: Optional[HTTPAuthorizationCredentials], session: Session) -> models.Profile:
    if credentials is None:
        raise FunctionError(401, {"error": "Não autenticado"})
    try:
        return user_from_token(credentials.credentials, session)
    except HTTPException:
        raise FunctionError(401, {"error": "Não autenticado"})


def _admin(credentials, session: Session) -> models.Profile:
    user = _user(credentials, session)
    if not services.PermissionService(session).is_admin(user):
        raise FunctionError(403, {"error": "Sem permissão"})
    return user


def _caller(credentials, session: Session, permission: Optional[str] = None):
    """User or service role; users additionally need `permission` when given."""
    if credentials is None:
        raise FunctionError(401, {"error": "Autorização necessária"})
    if is_service_role(credentials.credentials):
        return SERVICE_ROLE
    try:
        user = user_from_token(credentials.credentials, session)
    except HTTPException:
        raise FunctionError(401, {"error": "Token inválido ou expirado"})
    if permission and not services.PermissionService(session).has_permission(user, permission):
        raise FunctionError(403, {"error": "Sem permissão"})
    return user


@router.post("/initialize-admin")
def initialize_admin(payload: InitializeAdminIn, db: Session = Depends(get_session)):
    """Create the first administrator account.

    Refused with 409 once an administrator exists, so the endpoint can stay
    public for first-run setup.
    """
    svc = services.UserAdminService(db)
    try:
        user = svc.initialize_admin(payload.email, payload.password, payload.full_name)
    except services.AlreadyInitialized as e:
        raise FunctionError(409, {"error": str(e)})
    except ValueError as e:
        raise FunctionError(400, {"error": str(e)})
    return {"success": True, "user": services.user_to_dict(user)}


@router.post("/create-user")
def create_user(
    payload: CreateUserIn,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
):
    """Admin-only: create a user with whatsapp and access profiles."""
    admin = _admin(credentials, db)
    logger.info("create_user requested_by=%s", admin.id)
    try:
        user = services.UserAdminService(db).create_user(
            payload.email, payload.password, payload.full_name, payload.whatsapp, payload.access_profile_ids
        )
    except ValueError as e:
        raise FunctionError(400, {"error": str(e)})
    return {"success": True, "user": services.user_to_dict(user, payload.access_profile_ids)}


@router.post("/update-user")
def update_user(
    payload: UpdateUserIn,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
):
    """Admin-only: update a user; roles are replaced with `access_profile_ids`."""
    _admin(credentials, db)
    try:
        user = services.UserAdminService(db).update_user(
            payload.user_id,
            payload.email,
            payload.password,
            payload.full_name,
            payload.whatsapp,
            payload.is_active,
            payload.access_profile_ids,
        )
    except ValueError as e:
        raise FunctionError(400, {"error": str(e)})
    return {"success": True, "user": services.user_to_dict(user, payload.access_profile_ids)}


@router.api_route("/check-instance-status", methods=["GET", "POST"])
def check_instance_status(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
):
    """Report the connection state of every configured WhatsApp instance."""
    _caller(credentials, db)
    with evolution.build_http_client() as http:
        statuses = messaging.InstanceService(db, http).check_statuses()
    return {"statuses": statuses}


@router.post("/cleanup-orphan-files")
def cleanup_orphan_files(
    payload: Optional[CleanupIn] = Body(default=None),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
):
    """Count (default) or delete stored files no record references."""
    _caller(credentials, db, permission="storage.limpar")
    action = payload.action if payload else "count"
    try:
        return services.StorageMaintenanceService(db).run(action)
    except SQLAlchemyError as e:
        logger.exception("cleanup_failed")
        raise FunctionError(500, {"success": False, "error": str(e)})


@router.api_route("/google-drive-auth", methods=["GET", "POST"])
def google_drive_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
):
    """Return a fresh Google Drive access token from the stored refresh token."""
    _caller(credentials, db)
    with evolution.build_http_client() as http:
        try:
            token = services.DriveService(db, http).access_token()
        except DriveAuthError as e:
            raise FunctionError(401, {
                "error": str(e),
                "details": e.details,
                "suggestion": "Verifique se suas credenciais OAuth2 estão corretas",
            })
    if token is None:
        raise FunctionError(404, {
            "error": "Configurações do Google Drive não encontradas",
            "suggestion": "Configure suas credenciais OAuth2 em Configurações > Google Drive",
        })
    return token


@router.api_route("/send-whatsapp", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def send_whatsapp_wrong_method():
    raise FunctionError(405, {"success": False, "error": "Método não permitido. Use POST."})


@router.post("/send-whatsapp")
def send_whatsapp(
    payload: SendWhatsappIn,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
):
    """Send a message through the first instance that accepts it.

    Instances are tried in ascending `ordem` (a requested `instance_id`
    first); the environment endpoint is used only when none is configured.
    """
    _caller(credentials, db, permission="whatsapp.enviar")
    if not payload.phone or not payload.message:
        raise FunctionError(400, {"success": False, "error": "Telefone e mensagem são obrigatórios"})
    with evolution.build_http_client() as http:
        try:
            return messaging.DispatchService(db, http).send(
                payload.phone,
                payload.message,
                instance_id=payload.instance_id,
                media_url=payload.media_url,
                media_type=payload.media_type,
                caption=payload.caption,
            )
        except evolution.NoEndpointConfigured as e:
            raise FunctionError(500, {"success": False, "error": str(e)})
        except evolution.EvolutionError as e:
            details = e.details or {}
            raise FunctionError(502, {
                "success": False,
                "error": str(e),
                "details": details,
                "attempts": details.get("attempts", []),
            })


@router.post("/send-chat-message")
def send_chat_message(
    payload: ChatMessageIn,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
):
    """Reply to a conversation from the inbox as the authenticated user."""
    user = _caller(credentials, db, permission="atendimento.acessar")
    if user == SERVICE_ROLE:
        raise FunctionError(403, {"success": False, "error": "a user session is required"})
    with evolution.build_http_client() as http:
        try:
            return messaging.AtendimentoService(db, http).send_reply(
                user, payload.conversation_id, payload.content, payload.message_type, payload.media_url, payload.caption
            )
        except LookupError as e:
            raise FunctionError(404, {"success": False, "error": str(e)})
        except ValueError as e:
            raise FunctionError(400, {"success": False, "error": str(e)})


@router.post("/receive-whatsapp-webhook")
def receive_whatsapp_webhook(request: Request, payload: dict = Body(...), db: Session = Depends(get_session)):
    """Inbound Evolution webhook: stores customer messages in the inbox."""
    client = request.client.host if request.client else "unknown"
    retry_after = webhook_limiter.hit(client)
    if retry_after:
        raise FunctionError(429, {"success": False, "error": f"rate limit exceeded; retry after {retry_after}s"})
    try:
        return messaging.AtendimentoService(db).receive_webhook(payload)
    except SQLAlchemyError as e:
        logger.exception("webhook_failed")
        raise FunctionError(500, {"success": False, "error": str(e)})
