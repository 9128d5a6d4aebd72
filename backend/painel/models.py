"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Identifiers are uuid4 hex strings so that records keep the same
string-keyed shape the frontend already uses. List-valued columns
(client photos, generated images) are stored as JSON.
"""

import uuid
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


CONVERSATION_STATUSES = (
    "novo",
    "em_atendimento",
    "aguardando_cliente",
    "aguardando_interno",
    "resolvido",
    "pos_venda",
    "finalizado",
)

STATUS_LABELS = {
    "novo": "Novo",
    "em_atendimento": "Em atendimento",
    "aguardando_cliente": "Aguardando cliente",
    "aguardando_interno": "Aguardando interno",
    "resolvido": "Resolvido",
    "pos_venda": "Pós venda",
    "finalizado": "Finalizado",
}

MOCKUP_TIPOS = ("aprovacao", "molde")


# --- access control ---


class Profile(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique login
    - `password_hash`: hashed password string (never store plaintext)
    - `is_active`: inactive users cannot sign in
    """
    __tablename__ = "profiles"

    id: str = Field(default_factory=_new_id, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    full_name: str
    whatsapp: Optional[str] = None
    is_active: bool = True
    password_hash: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class AccessProfile(SQLModel, table=True):
    """A named role (perfil de acesso) grouping permissions."""
    __tablename__ = "access_profiles"

    id: str = Field(default_factory=_new_id, primary_key=True)
    code: str = Field(index=True, unique=True)
    name: str
    description: Optional[str] = None
    is_system: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class Permission(SQLModel, table=True):
    __tablename__ = "permissions"

    id: str = Field(default_factory=_new_id, primary_key=True)
    code: str = Field(index=True, unique=True)
    name: str
    category: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class ProfilePermission(SQLModel, table=True):
    __tablename__ = "profile_permissions"

    id: str = Field(default_factory=_new_id, primary_key=True)
    access_profile_id: str = Field(foreign_key="access_profiles.id", index=True)
    permission_id: str = Field(foreign_key="permissions.id")


class UserRole(SQLModel, table=True):
    """Link between a user and one of their access profiles."""
    __tablename__ = "user_roles"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="profiles.id", index=True)
    access_profile_id: str = Field(foreign_key="access_profiles.id")
    created_at: datetime = Field(default_factory=_now)


# --- pedidos and mockups ---


class Pedido(SQLModel, table=True):
    """A customer order.

    `fotos_cliente` holds the customer's uploaded photos, `foto_aprovacao`
    the generated approval images and `molde_producao` the production
    moulds. All three are lists of public storage URLs.
    """
    __tablename__ = "pedidos"

    id: str = Field(default_factory=_new_id, primary_key=True)
    numero_pedido: str = Field(index=True)
    nome_cliente: str
    codigo_produto: str = Field(index=True)
    telefone: Optional[str] = Field(default=None, index=True)
    data_pedido: date = Field(default_factory=date.today)
    data_impressao: Optional[date] = None
    observacao: Optional[str] = None
    layout_aprovado: Optional[str] = "pendente"
    mensagem_enviada: Optional[str] = "pendente"
    arquivado: bool = False
    fotos_cliente: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    foto_aprovacao: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    molde_producao: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    drive_folder_id: Optional[str] = None
    drive_folder_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class Mockup(SQLModel, table=True):
    """A mockup definition for one product code.

    `tipo` is `aprovacao` or `molde`; a mould mockup may point at the
    approval mockup generated alongside it.
    """
    __tablename__ = "mockups"

    id: str = Field(default_factory=_new_id, primary_key=True)
    codigo_mockup: str = Field(index=True)
    tipo: str
    imagem_base: str = ""
    mockup_aprovacao_vinculado_id: Optional[str] = Field(default=None, foreign_key="mockups.id")
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class MockupCanvas(SQLModel, table=True):
    __tablename__ = "mockup_canvases"

    id: str = Field(default_factory=_new_id, primary_key=True)
    mockup_id: str = Field(foreign_key="mockups.id", index=True)
    nome: str
    imagem_base: str
    ordem: int = 0
    largura_original: Optional[int] = None
    altura_original: Optional[int] = None
    escala_calculada: Optional[float] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class MockupArea(SQLModel, table=True):
    """A placement area on a canvas: a client photo slot or a text field."""
    __tablename__ = "mockup_areas"

    id: str = Field(default_factory=_new_id, primary_key=True)
    mockup_id: str = Field(foreign_key="mockups.id", index=True)
    canvas_id: Optional[str] = Field(default=None, foreign_key="mockup_canvases.id", index=True)
    kind: str = "image"
    field_key: str
    x: float
    y: float
    width: float
    height: float
    rotation: Optional[float] = 0
    z_index: Optional[int] = 0
    color: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[int] = None
    font_weight: Optional[str] = None
    text_align: Optional[str] = None
    letter_spacing: Optional[float] = None
    line_height: Optional[float] = None
    created_at: datetime = Field(default_factory=_now)


class AreaTemplate(SQLModel, table=True):
    __tablename__ = "area_templates"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = Field(index=True)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class AreaTemplateItem(SQLModel, table=True):
    __tablename__ = "area_template_items"

    id: str = Field(default_factory=_new_id, primary_key=True)
    template_id: str = Field(foreign_key="area_templates.id", index=True)
    kind: str = "image"
    field_key: str
    x: float
    y: float
    width: float
    height: float
    rotation: Optional[float] = 0
    z_index: Optional[int] = 0
    color: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[int] = None
    font_weight: Optional[str] = None
    text_align: Optional[str] = None
    letter_spacing: Optional[float] = None
    line_height: Optional[float] = None
    created_at: datetime = Field(default_factory=_now)


# --- whatsapp ---


class WhatsappInstance(SQLModel, table=True):
    """A configured sending endpoint.

    `api_type` is `evolution` (credentials below) or `webhook`. Lower
    `ordem` means higher dispatch priority.
    """
    __tablename__ = "whatsapp_instances"

    id: str = Field(default_factory=_new_id, primary_key=True)
    nome: str
    api_type: str = "evolution"
    evolution_api_url: str = ""
    evolution_api_key: str = ""
    evolution_instance: str = Field(default="", index=True)
    webhook_url: Optional[str] = None
    webhook_headers: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    is_active: bool = True
    ordem: Optional[int] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class WhatsappContact(SQLModel, table=True):
    __tablename__ = "whatsapp_contacts"

    id: str = Field(default_factory=_new_id, primary_key=True)
    phone: str = Field(index=True, unique=True)
    name: Optional[str] = None
    is_lead: bool = True
    last_message_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class WhatsappConversation(SQLModel, table=True):
    __tablename__ = "whatsapp_conversations"

    id: str = Field(default_factory=_new_id, primary_key=True)
    contact_id: str = Field(foreign_key="whatsapp_contacts.id", index=True)
    instance_id: Optional[str] = Field(default=None, foreign_key="whatsapp_instances.id", index=True)
    status: str = "novo"
    assigned_to: Optional[str] = Field(default=None, foreign_key="profiles.id")
    assigned_at: Optional[datetime] = None
    unread_count: int = 0
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class WhatsappMessage(SQLModel, table=True):
    __tablename__ = "whatsapp_messages"

    id: str = Field(default_factory=_new_id, primary_key=True)
    conversation_id: str = Field(foreign_key="whatsapp_conversations.id", index=True)
    direction: str
    message_type: str = "text"
    content: Optional[str] = None
    media_url: Optional[str] = None
    media_mime_type: Optional[str] = None
    caption: Optional[str] = None
    sender_phone: Optional[str] = None
    sender_name: Optional[str] = None
    sent_by_user_id: Optional[str] = None
    external_id: Optional[str] = None
    status: str = "pending"
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class WhatsappQuickReply(SQLModel, table=True):
    __tablename__ = "whatsapp_quick_replies"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    content: str
    category: str = "geral"
    shortcut: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None


class WhatsappInternalNote(SQLModel, table=True):
    __tablename__ = "whatsapp_internal_notes"

    id: str = Field(default_factory=_new_id, primary_key=True)
    conversation_id: Optional[str] = Field(default=None, foreign_key="whatsapp_conversations.id")
    contact_id: Optional[str] = Field(default=None, foreign_key="whatsapp_contacts.id")
    pedido_id: Optional[str] = Field(default=None, foreign_key="pedidos.id")
    user_id: str = Field(foreign_key="profiles.id")
    content: str
    created_at: datetime = Field(default_factory=_now)


class WhatsappAuditLog(SQLModel, table=True):
    __tablename__ = "whatsapp_audit_log"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    details: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_now)


class GoogleDriveSettings(SQLModel, table=True):
    """OAuth2 credentials for the Drive integration (single row)."""
    __tablename__ = "google_drive_settings"

    id: str = Field(default_factory=_new_id, primary_key=True)
    client_id: str
    client_secret: str
    refresh_token: str
    root_folder_id: Optional[str] = None
    folder_structure: str = "pedido"
    integration_enabled: bool = False
    auto_upload_enabled: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: Optional[datetime] = None
