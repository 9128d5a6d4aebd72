"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the pedidos / mockups /
atendimento backend. Controllers are intentionally thin: they accept
requests, check permissions, delegate to services and return JSON.
The serverless-style functions live in `painel.functions`.

Endpoint groups:
- /auth (sign-in, sign-out, session)
- /usuarios, /perfis, /permissions
- /pedidos (CRUD, batch, import, photos, customer lookup, approval)
- /mockups, /canvases, /templates, /mockups/queue
- /whatsapp/instances, /atendimento
- /drive/settings
- /storage/v1/object/public/{bucket}/{path}
"""

import json
import logging
import os
import time
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from sqlmodel import Session

from . import messaging, models, repositories, services
from .auth import get_current_user, require_permission
from .config import settings
from .database import create_db_and_tables, engine, get_session
from .functions import FunctionError, router as functions_router
from .schemas import (
    AccessProfileIn,
    ApplyTemplateIn,
    AreasIn,
    CanvasIn,
    ConversationStatusIn,
    DriveSettingsIn,
    InstanceIn,
    LoginIn,
    MockupIn,
    NewConversationIn,
    NoteIn,
    PedidoApprovalIn,
    PedidoBatchUpdate,
    PedidoIn,
    PedidoUpdate,
    QueueAddIn,
    QuickReplyIn,
    SaveCanvasAsTemplateIn,
    TemplateIn,
)
from .utils.evolution import build_http_client
from .utils.mockup_queue import MockupQueue
from .utils.phones import format_phone, replace_variables
from .utils.rate_limit import SlidingWindowLimiter
from .utils.storage import StorageError, get_storage

app = FastAPI(title="Painel de Pedidos API")
logger = logging.getLogger("painel.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
_login_limiter = SlidingWindowLimiter(settings.LOGIN_RATE_LIMIT_PER_MIN)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()
app.include_router(functions_router)


def _generate_mockup_job(item: dict) -> dict:
    """Queue worker: render one pedido in its own DB session and HTTP client."""
    with Session(engine, expire_on_commit=False) as session, build_http_client() as http:
        pedido = repositories.PedidoRepository(session).get(item["pedido_id"])
        if not pedido:
            raise ValueError(f"pedido not found: {item['pedido_id']}")
        return services.MockupGenerationService(session, http=http).generate(pedido, item["tipo_gerar"])


mockup_queue = MockupQueue(worker=_generate_mockup_job, prune_seconds=settings.MOCKUP_QUEUE_PRUNE_SECONDS)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if not request.url.path.startswith("/storage/"):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(FunctionError)
async def function_error_handler(request: Request, exc: FunctionError):
    if exc.status_code >= 500:
        logger.warning("function_error path=%s status=%s", request.url.path, exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.body)


def _read_upload(file: UploadFile) -> bytes:
    if not file.filename:
        raise HTTPException(status_code=400, detail="no file")
    if len(file.filename) > 200 or "/" in file.filename or "\\" in file.filename:
        raise HTTPException(status_code=400, detail="invalid filename")
    content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="file too large")
    return content


def _or_404(obj, what: str):
    if obj is None or obj is False:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return obj


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


# --- auth ---


@app.post("/auth/sign-in")
def sign_in(payload: LoginIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate with email + password and return a JWT access token."""
    client = request.client.host if request.client else "unknown"
    retry_after = _login_limiter.hit(client)
    if retry_after:
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )
    token = services.AuthService(db).authenticate(payload.email, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail="invalid credentials")
    return {"access_token": token, "token_type": "bearer"}


@app.post("/auth/sign-out")
def sign_out(user: models.Profile = Depends(get_current_user)):
    """Tokens are stateless; clients drop them on sign-out."""
    return {"status": "ok"}


@app.get("/auth/session")
def current_session(user: models.Profile = Depends(get_current_user), db: Session = Depends(get_session)):
    """Return the signed-in user, whether they are admin and their permission codes."""
    return services.PermissionService(db).session_payload(user)


# --- users and access profiles ---


@app.get("/usuarios")
def list_users(db: Session = Depends(get_session), user=Depends(require_permission("usuarios.gerenciar"))):
    return services.UserAdminService(db).list_users()


@app.get("/permissions")
def list_permissions(db: Session = Depends(get_session), user=Depends(require_permission("perfis.gerenciar"))):
    """Permissions grouped by category."""
    return services.AccessProfileService(db).permissions_by_category()


@app.get("/perfis")
def list_access_profiles(db: Session = Depends(get_session), user=Depends(require_permission("perfis.gerenciar"))):
    return services.AccessProfileService(db).list()


@app.post("/perfis", status_code=201)
def create_access_profile(payload: AccessProfileIn, db: Session = Depends(get_session), user=Depends(require_permission("perfis.gerenciar"))):
    svc = services.AccessProfileService(db)
    try:
        profile = svc.create(payload.name, payload.description, payload.permission_ids, payload.code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return svc.to_dict(profile)


@app.put("/perfis/{profile_id}")
def update_access_profile(profile_id: str, payload: AccessProfileIn, db: Session = Depends(get_session), user=Depends(require_permission("perfis.gerenciar"))):
    svc = services.AccessProfileService(db)
    try:
        profile = svc.update(profile_id, payload.name, payload.description, payload.permission_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return svc.to_dict(_or_404(profile, "access profile"))


@app.delete("/perfis/{profile_id}")
def delete_access_profile(profile_id: str, db: Session = Depends(get_session), user=Depends(require_permission("perfis.gerenciar"))):
    try:
        _or_404(services.AccessProfileService(db).delete(profile_id), "access profile")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "ok"}


# --- pedidos ---


@app.get("/pedidos")
def list_pedidos(
    arquivado: Optional[bool] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_session),
    user=Depends(require_permission("pedidos.visualizar")),
):
    """List pedidos newest first; filter by archive flag and free text."""
    return repositories.PedidoRepository(db).list(arquivado=arquivado, search=search)


@app.post("/pedidos", status_code=201)
def create_pedido(payload: PedidoIn, db: Session = Depends(get_session), user=Depends(require_permission("pedidos.criar"))):
    try:
        return services.PedidoService(db).create(payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/pedidos/batch")
def batch_update_pedidos(payload: PedidoBatchUpdate, db: Session = Depends(get_session), user=Depends(require_permission("pedidos.editar"))):
    """Apply status/archive/print-date fields to several pedidos at once."""
    fields = payload.model_dump(exclude={"ids"}, exclude_unset=True)
    try:
        updated = services.PedidoService(db).batch_update(payload.ids, fields)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"updated": updated}


@app.post("/pedidos/import")
def import_pedidos(
    file: UploadFile = File(...),
    dry_run: bool = Form(default=False),
    db: Session = Depends(get_session),
    user=Depends(require_permission("pedidos.criar")),
):
    """Upload an XLSX, CSV or JSON spreadsheet and create one pedido per row.

    Returns a summary with the created count and the skipped rows.
    """
    content = _read_upload(file)
    try:
        return services.PedidoService(db).import_file(content, file.filename, dry_run=dry_run)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/pedidos/by-phone/{phone}")
def pedidos_by_phone(phone: str, db: Session = Depends(get_session), user=Depends(require_permission("atendimento.acessar"))):
    """Customer panel lookup: pedidos whose phone matches, with or without country code."""
    return services.PedidoService(db).find_by_customer_phone(phone)


@app.get("/pedidos/{pedido_id}")
def get_pedido(pedido_id: str, db: Session = Depends(get_session), user=Depends(require_permission("pedidos.visualizar"))):
    return _or_404(repositories.PedidoRepository(db).get(pedido_id), "pedido")


@app.put("/pedidos/{pedido_id}")
def update_pedido(pedido_id: str, payload: PedidoUpdate, db: Session = Depends(get_session), user=Depends(require_permission("pedidos.editar"))):
    pedido = services.PedidoService(db).update(pedido_id, payload.model_dump(exclude_unset=True))
    return _or_404(pedido, "pedido")


@app.delete("/pedidos/{pedido_id}")
def delete_pedido(pedido_id: str, db: Session = Depends(get_session), user=Depends(require_permission("pedidos.excluir"))):
    """Delete a pedido and its stored photos, approval images and moulds."""
    _or_404(services.PedidoService(db).delete(pedido_id), "pedido")
    return {"status": "ok"}


@app.post("/pedidos/{pedido_id}/fotos")
def upload_client_photo(
    pedido_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_session),
    user=Depends(require_permission("pedidos.editar")),
):
    content = _read_upload(file)
    try:
        pedido = services.PedidoService(db).add_client_photo(pedido_id, content)
    except ValueError as e:
        raise HTTPException(status_code=415, detail=str(e))
    return _or_404(pedido, "pedido")


@app.delete("/pedidos/{pedido_id}/fotos")
def delete_client_photo(pedido_id: str, url: str, db: Session = Depends(get_session), user=Depends(require_permission("pedidos.editar"))):
    try:
        pedido = services.PedidoService(db).remove_client_photo(pedido_id, url)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _or_404(pedido, "pedido")


@app.post("/pedidos/{pedido_id}/aprovacao")
def set_pedido_approval(pedido_id: str, payload: PedidoApprovalIn, db: Session = Depends(get_session), user: models.Profile = Depends(require_permission("atendimento.acessar"))):
    """Approve or reject the layout from the customer panel (audited)."""
    return _or_404(services.PedidoService(db).set_approval(pedido_id, payload.aprovado, user), "pedido")


@app.get("/pedidos/{pedido_id}/mensagem")
def render_pedido_message(pedido_id: str, template: str, db: Session = Depends(get_session), user=Depends(require_permission("whatsapp.enviar"))):
    """Fill a message template's `{placeholders}` from the pedido."""
    pedido = _or_404(repositories.PedidoRepository(db).get(pedido_id), "pedido")
    return {
        "message": replace_variables(template, pedido),
        "telefone": pedido.telefone,
        "telefone_formatado": format_phone(pedido.telefone),
    }


# --- mockups, canvases and templates ---


@app.post("/mockups/queue", status_code=202)
def enqueue_mockups(payload: QueueAddIn, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerar"))):
    """Queue mockup generation for pedidos; pedidos already pending are skipped."""
    repo = repositories.PedidoRepository(db)
    added, skipped = [], []
    for pedido_id in payload.pedido_ids:
        pedido = repo.get(pedido_id)
        if not pedido:
            skipped.append({"pedido_id": pedido_id, "reason": "not found"})
            continue
        item = mockup_queue.add(pedido.id, pedido.numero_pedido, payload.tipo_gerar)
        if item is None:
            skipped.append({"pedido_id": pedido_id, "reason": "already queued"})
        else:
            added.append(item)
    return {"added": added, "skipped": skipped}


@app.get("/mockups/queue")
def get_mockup_queue(user=Depends(require_permission("mockups.gerar"))):
    return mockup_queue.snapshot()


@app.post("/mockups/images")
def upload_mockup_image(file: UploadFile = File(...), db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    """Upload a canvas base image under `mockups/` and return its public URL."""
    content = _read_upload(file)
    try:
        return services.MockupService(db).upload_image(content)
    except ValueError as e:
        raise HTTPException(status_code=415, detail=str(e))


@app.get("/mockups")
def list_mockups(codigo: Optional[str] = None, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    svc = services.MockupService(db)
    return [svc.to_dict(m, with_canvases=False) for m in svc.repo.list(codigo)]


@app.get("/mockups/{mockup_id}")
def get_mockup(mockup_id: str, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    svc = services.MockupService(db)
    return svc.to_dict(_or_404(svc.repo.get(mockup_id), "mockup"))


@app.post("/mockups", status_code=201)
def create_mockup(payload: MockupIn, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    try:
        return services.MockupService(db).create(payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/mockups/{mockup_id}")
def update_mockup(mockup_id: str, payload: MockupIn, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    try:
        mockup = services.MockupService(db).update(mockup_id, payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _or_404(mockup, "mockup")


@app.delete("/mockups/{mockup_id}")
def delete_mockup(mockup_id: str, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    _or_404(services.MockupService(db).delete(mockup_id), "mockup")
    return {"status": "ok"}


@app.post("/mockups/{mockup_id}/canvases", status_code=201)
def add_canvas(mockup_id: str, payload: CanvasIn, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    return _or_404(services.MockupService(db).add_canvas(mockup_id, payload.model_dump()), "mockup")


@app.put("/canvases/{canvas_id}")
def update_canvas(canvas_id: str, payload: CanvasIn, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    return _or_404(services.MockupService(db).update_canvas(canvas_id, payload.model_dump()), "canvas")


@app.delete("/canvases/{canvas_id}")
def delete_canvas(canvas_id: str, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    _or_404(services.MockupService(db).delete_canvas(canvas_id), "canvas")
    return {"status": "ok"}


@app.put("/canvases/{canvas_id}/areas")
def save_canvas_areas(canvas_id: str, payload: AreasIn, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    """Replace every area of the canvas."""
    areas = services.MockupService(db).save_areas(canvas_id, [a.model_dump() for a in payload.areas])
    return _or_404(areas, "canvas")


@app.post("/canvases/{canvas_id}/template", status_code=201)
def save_canvas_as_template(canvas_id: str, payload: SaveCanvasAsTemplateIn, db: Session = Depends(get_session), user=Depends(require_permission("templates.gerenciar"))):
    svc = services.TemplateService(db)
    try:
        template = svc.save_canvas_as_template(canvas_id, payload.name, payload.description)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return svc.to_dict(_or_404(template, "canvas"))


@app.post("/canvases/{canvas_id}/apply-template")
def apply_template(canvas_id: str, payload: ApplyTemplateIn, db: Session = Depends(get_session), user=Depends(require_permission("mockups.gerenciar"))):
    areas = services.TemplateService(db).apply_to_canvas(payload.template_id, canvas_id, payload.replace)
    return _or_404(areas, "template or canvas")


@app.get("/templates")
def list_templates(db: Session = Depends(get_session), user=Depends(require_permission("templates.gerenciar"))):
    svc = services.TemplateService(db)
    return [svc.to_dict(t) for t in svc.repo.list_all()]


@app.post("/templates", status_code=201)
def create_template(payload: TemplateIn, db: Session = Depends(get_session), user=Depends(require_permission("templates.gerenciar"))):
    svc = services.TemplateService(db)
    try:
        template = svc.create(payload.name, payload.description, [i.model_dump() for i in payload.items])
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return svc.to_dict(template)


@app.put("/templates/{template_id}")
def update_template(template_id: str, payload: TemplateIn, db: Session = Depends(get_session), user=Depends(require_permission("templates.gerenciar"))):
    svc = services.TemplateService(db)
    template = svc.update(template_id, payload.name, payload.description, [i.model_dump() for i in payload.items])
    return svc.to_dict(_or_404(template, "template"))


@app.delete("/templates/{template_id}")
def delete_template(template_id: str, db: Session = Depends(get_session), user=Depends(require_permission("templates.gerenciar"))):
    _or_404(services.TemplateService(db).delete(template_id), "template")
    return {"status": "ok"}


# --- whatsapp instances ---


@app.get("/whatsapp/instances")
def list_instances(db: Session = Depends(get_session), user=Depends(require_permission("whatsapp.configurar"))):
    return messaging.InstanceService(db).list()


@app.post("/whatsapp/instances", status_code=201)
def create_instance(payload: InstanceIn, db: Session = Depends(get_session), user=Depends(require_permission("whatsapp.configurar"))):
    try:
        return messaging.InstanceService(db).create(payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/whatsapp/instances/{instance_id}")
def update_instance(instance_id: str, payload: InstanceIn, db: Session = Depends(get_session), user=Depends(require_permission("whatsapp.configurar"))):
    try:
        instance = messaging.InstanceService(db).update(instance_id, payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _or_404(instance, "instance")


@app.delete("/whatsapp/instances/{instance_id}")
def delete_instance(instance_id: str, db: Session = Depends(get_session), user=Depends(require_permission("whatsapp.configurar"))):
    _or_404(messaging.InstanceService(db).delete(instance_id), "instance")
    return {"status": "ok"}


# --- atendimento ---


@app.get("/atendimento/conversations")
def list_conversations(
    instance_id: Optional[str] = None,
    status: Optional[str] = None,
    assigned_to: Optional[str] = None,
    search: Optional[str] = None,
    grouped: bool = False,
    db: Session = Depends(get_session),
    user=Depends(require_permission("atendimento.acessar")),
):
    """List inbox conversations; `grouped=true` merges them by contact phone."""
    svc = messaging.AtendimentoService(db)
    conversations = svc.list_conversations(instance_id, status, assigned_to, search)
    return svc.group_by_contact(conversations) if grouped else conversations


@app.post("/atendimento/conversations", status_code=201)
def start_conversation(payload: NewConversationIn, db: Session = Depends(get_session), user=Depends(require_permission("atendimento.acessar"))):
    svc = messaging.AtendimentoService(db)
    try:
        conv = svc.start_conversation(payload.phone, payload.name, payload.instance_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return svc.conversation_to_dict(conv)


@app.get("/atendimento/conversations/{conversation_id}/messages")
def conversation_messages(conversation_id: str, db: Session = Depends(get_session), user=Depends(require_permission("atendimento.acessar"))):
    """Messages oldest first; reading them clears the unread counter."""
    return _or_404(messaging.AtendimentoService(db).messages_for(conversation_id), "conversation")


@app.patch("/atendimento/conversations/{conversation_id}/status")
def update_conversation_status(conversation_id: str, payload: ConversationStatusIn, db: Session = Depends(get_session), user: models.Profile = Depends(require_permission("atendimento.acessar"))):
    svc = messaging.AtendimentoService(db)
    conv = svc.update_status(conversation_id, payload.status, user)
    return svc.conversation_to_dict(_or_404(conv, "conversation"))


@app.get("/atendimento/audit")
def list_audit(entity_type: str, entity_id: str, db: Session = Depends(get_session), user=Depends(require_permission("atendimento.acessar"))):
    return repositories.AuditLogRepository(db).list_for_entity(entity_type, entity_id)


@app.get("/atendimento/notes")
def list_notes(conversation_id: Optional[str] = None, contact_id: Optional[str] = None, db: Session = Depends(get_session), user=Depends(require_permission("atendimento.acessar"))):
    return messaging.NoteService(db).list(conversation_id, contact_id)


@app.post("/atendimento/notes", status_code=201)
def create_note(payload: NoteIn, db: Session = Depends(get_session), user: models.Profile = Depends(require_permission("atendimento.acessar"))):
    try:
        return messaging.NoteService(db).create(user, payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/atendimento/notes/{note_id}")
def delete_note(note_id: str, db: Session = Depends(get_session), user: models.Profile = Depends(require_permission("atendimento.acessar"))):
    is_admin = services.PermissionService(db).is_admin(user)
    try:
        _or_404(messaging.NoteService(db).delete(note_id, user, is_admin), "note")
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return {"status": "ok"}


@app.get("/atendimento/quick-replies")
def list_quick_replies(active_only: bool = True, db: Session = Depends(get_session), user=Depends(require_permission("atendimento.acessar"))):
    return messaging.QuickReplyService(db).list(active_only)


@app.post("/atendimento/quick-replies", status_code=201)
def create_quick_reply(payload: QuickReplyIn, db: Session = Depends(get_session), user=Depends(require_permission("respostas_rapidas.gerenciar"))):
    try:
        return messaging.QuickReplyService(db).create(payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/atendimento/quick-replies/{reply_id}")
def update_quick_reply(reply_id: str, payload: QuickReplyIn, db: Session = Depends(get_session), user=Depends(require_permission("respostas_rapidas.gerenciar"))):
    return _or_404(messaging.QuickReplyService(db).update(reply_id, payload.model_dump()), "quick reply")


@app.delete("/atendimento/quick-replies/{reply_id}")
def delete_quick_reply(reply_id: str, db: Session = Depends(get_session), user=Depends(require_permission("respostas_rapidas.gerenciar"))):
    _or_404(messaging.QuickReplyService(db).delete(reply_id), "quick reply")
    return {"status": "ok"}


# --- google drive ---


@app.get("/drive/settings")
def get_drive_settings(db: Session = Depends(get_session), user=Depends(require_permission("drive.configurar"))):
    """Current Drive settings with the secrets masked."""
    current = services.DriveService(db).get_settings()
    if not current:
        return {"configured": False}
    out = services.row_to_dict(current, exclude=("client_secret", "refresh_token"))
    out.update({"configured": True, "has_client_secret": bool(current.client_secret), "has_refresh_token": bool(current.refresh_token)})
    return out


@app.put("/drive/settings")
def save_drive_settings(payload: DriveSettingsIn, db: Session = Depends(get_session), user=Depends(require_permission("drive.configurar"))):
    saved = services.DriveService(db).save_settings(payload.model_dump())
    return {"status": "ok", "id": saved.id}


# --- public storage ---


@app.get("/storage/v1/object/public/{bucket}/{path:path}")
def public_object(bucket: str, path: str):
    """Serve a stored object by its public URL."""
    storage = get_storage()
    if bucket != storage.bucket:
        raise HTTPException(status_code=404, detail="bucket not found")
    try:
        target = storage.local_path(path)
    except StorageError:
        raise HTTPException(status_code=400, detail="invalid object path")
    if not target.is_file():
        raise HTTPException(status_code=404, detail="object not found")
    return FileResponse(target)
