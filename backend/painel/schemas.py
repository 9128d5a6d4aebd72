"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and provide validation for the
controller handlers and tests. Responses are plain dicts built from the
SQLModel rows.
"""

from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ConversationStatus = Literal[
    "novo",
    "em_atendimento",
    "aguardando_cliente",
    "aguardando_interno",
    "resolvido",
    "pos_venda",
    "finalizado",
]
TipoGerar = Literal["all", "aprovacao", "molde"]


class LoginIn(BaseModel):
    """Payload for the sign-in endpoint."""
    email: str
    password: str


class InitializeAdminIn(BaseModel):
    email: str
    password: str = Field(min_length=6)
    full_name: str


class CreateUserIn(BaseModel):
    email: str
    password: str
    full_name: str
    whatsapp: Optional[str] = None
    access_profile_ids: List[str] = []


class UpdateUserIn(BaseModel):
    """`password` is only changed when provided; roles are always replaced."""
    user_id: str
    email: str
    password: Optional[str] = None
    full_name: str
    whatsapp: Optional[str] = None
    is_active: bool = True
    access_profile_ids: List[str] = []


class AccessProfileIn(BaseModel):
    code: Optional[str] = None
    name: str
    description: Optional[str] = None
    permission_ids: List[str] = []


class PedidoIn(BaseModel):
    numero_pedido: str
    nome_cliente: str
    codigo_produto: str
    telefone: Optional[str] = None
    data_pedido: Optional[date] = None
    data_impressao: Optional[date] = None
    observacao: Optional[str] = None


class PedidoUpdate(BaseModel):
    numero_pedido: Optional[str] = None
    nome_cliente: Optional[str] = None
    codigo_produto: Optional[str] = None
    telefone: Optional[str] = None
    data_pedido: Optional[date] = None
    data_impressao: Optional[date] = None
    observacao: Optional[str] = None
    layout_aprovado: Optional[str] = None
    mensagem_enviada: Optional[str] = None
    arquivado: Optional[bool] = None
    fotos_cliente: Optional[List[str]] = None
    foto_aprovacao: Optional[List[str]] = None
    molde_producao: Optional[List[str]] = None


class PedidoBatchUpdate(BaseModel):
    """Fields applied to every pedido in `ids`; unset fields are left alone."""
    ids: List[str]
    layout_aprovado: Optional[str] = None
    mensagem_enviada: Optional[str] = None
    arquivado: Optional[bool] = None
    data_impressao: Optional[date] = None


class PedidoApprovalIn(BaseModel):
    aprovado: bool


class MockupIn(BaseModel):
    codigo_mockup: str
    tipo: Literal["aprovacao", "molde"]
    imagem_base: str = ""
    mockup_aprovacao_vinculado_id: Optional[str] = None


class CanvasIn(BaseModel):
    nome: str
    imagem_base: str
    ordem: int = 0
    largura_original: Optional[int] = None
    altura_original: Optional[int] = None
    escala_calculada: Optional[float] = None


class AreaIn(BaseModel):
    kind: Literal["image", "text"] = "image"
    field_key: str
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    rotation: Optional[float] = 0
    z_index: Optional[int] = 0
    color: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[int] = None
    font_weight: Optional[str] = None
    text_align: Optional[str] = None
    letter_spacing: Optional[float] = None
    line_height: Optional[float] = None


class AreasIn(BaseModel):
    areas: List[AreaIn]


class TemplateIn(BaseModel):
    name: str
    description: Optional[str] = None
    items: List[AreaIn] = []


class SaveCanvasAsTemplateIn(BaseModel):
    name: str
    description: Optional[str] = None


class ApplyTemplateIn(BaseModel):
    template_id: str
    replace: bool = True


class InstanceIn(BaseModel):
    nome: str
    api_type: Literal["evolution", "webhook"] = "evolution"
    evolution_api_url: str = ""
    evolution_api_key: str = ""
    evolution_instance: str = ""
    webhook_url: Optional[str] = None
    webhook_headers: Optional[Dict[str, str]] = None
    is_active: bool = True
    ordem: Optional[int] = None


class QuickReplyIn(BaseModel):
    name: str
    content: str
    category: str = "geral"
    shortcut: Optional[str] = None
    is_active: bool = True


class NoteIn(BaseModel):
    content: str
    conversation_id: Optional[str] = None
    contact_id: Optional[str] = None
    pedido_id: Optional[str] = None


class NewConversationIn(BaseModel):
    phone: str
    name: Optional[str] = None
    instance_id: Optional[str] = None


class ConversationStatusIn(BaseModel):
    status: ConversationStatus


class SendWhatsappIn(BaseModel):
    """Fields are optional here; missing phone/message is answered with 400 JSON."""
    phone: Optional[str] = None
    message: Optional[str] = None
    instance_id: Optional[str] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    caption: Optional[str] = None


class ChatMessageIn(BaseModel):
    conversation_id: str
    content: Optional[str] = None
    message_type: str = "text"
    media_url: Optional[str] = None
    caption: Optional[str] = None


class QueueAddIn(BaseModel):
    pedido_ids: List[str]
    tipo_gerar: TipoGerar = "all"


class CleanupIn(BaseModel):
    action: Literal["count", "delete"] = "count"


class DriveSettingsIn(BaseModel):
    client_id: str
    client_secret: str
    refresh_token: str
    root_folder_id: Optional[str] = None
    folder_structure: str = "pedido"
    integration_enabled: bool = False
    auto_upload_enabled: bool = False
