"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories,
storage and the rendering helpers. Services perform validation, execute
domain logic and persist aggregates via repositories. They raise
`ValueError` for invalid input and `PermissionError` for authorization
failures; lookups that find nothing return `None`.
"""

import io
import logging
import re
import time
import unicodedata
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import httpx
import jwt
from passlib.context import CryptContext
from PIL import Image
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import ADMIN_PROFILE_CODE
from .utils import mockup_render
from .utils.drive import refresh_access_token
from .utils.evolution import http_client
from .utils.orphans import delete_in_batches, find_orphans
from .utils.parsers import is_complete, parse_file_to_rows, today_brasilia
from .utils.phones import search_variants
from .utils.storage import LocalObjectStorage, get_storage, pedido_storage_paths

logger = logging.getLogger("painel.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
MIN_PASSWORD_LENGTH = 6
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AlreadyInitialized(ValueError):
    """Raised by `initialize_admin` once an administrator exists."""


def row_to_dict(obj, exclude: Iterable[str] = ()) -> dict:
    return obj.model_dump(exclude=set(exclude))


def user_to_dict(user: models.Profile, access_profile_ids: Optional[List[str]] = None) -> dict:
    out = row_to_dict(user, exclude=("password_hash",))
    if access_profile_ids is not None:
        out["access_profile_ids"] = access_profile_ids
    return out


def _validate_credentials(email: str, password: Optional[str]) -> None:
    if not email or not _EMAIL_RE.match(email.strip()):
        raise ValueError("Invalid email address")
    if password is not None and len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters")


class AuthService:
    """Authentication related operations (password hashing + tokens)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def create_account(self, email: str, password: str, full_name: str, whatsapp: Optional[str] = None) -> models.Profile:
        """Create a new user with a hashed password.

        Raises ValueError when the email is invalid or already registered.
        """
        _validate_credentials(email, password)
        if self.user_repo.get_by_email(email):
            raise ValueError("A user with this email address has already been registered")
        user = models.Profile(
            email=email.strip().lower(),
            full_name=full_name.strip(),
            whatsapp=whatsapp or None,
            password_hash=PWD_CTX.hash(password),
        )
        return self.user_repo.add(user)

    def issue_token(self, user: models.Profile) -> str:
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "email": user.email, "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    def authenticate(self, email: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails or the user is inactive.
        """
        user = self.user_repo.get_by_email(email or "")
        if not user or not user.is_active:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return self.issue_token(user)


class PermissionService:
    """Role checks: admins implicitly hold every permission."""
    def __init__(self, session: Session):
        self.user_repo = repositories.UserRepository(session)

    def is_admin(self, user: models.Profile) -> bool:
        return self.user_repo.has_profile_code(user.id, ADMIN_PROFILE_CODE)

    def effective_permissions(self, user: models.Profile) -> List[str]:
        return self.user_repo.permission_codes(user.id)

    def has_permission(self, user: models.Profile, code: str) -> bool:
        if self.is_admin(user):
            return True
        return code in self.effective_permissions(user)

    def session_payload(self, user: models.Profile) -> dict:
        return {
            "user": user_to_dict(user, self.user_repo.role_profile_ids(user.id)),
            "is_admin": self.is_admin(user),
            "permissions": self.effective_permissions(user),
        }


class UserAdminService:
    """User management backing the `initialize-admin`, `create-user` and `update-user` functions."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.profile_repo = repositories.AccessProfileRepository(session)
        self.auth = AuthService(session)

    def _check_profiles(self, ids: List[str]) -> List[str]:
        ids = list(dict.fromkeys(ids or []))
        found = set(self.profile_repo.existing_ids(ids))
        missing = [i for i in ids if i not in found]
        if missing:
            raise ValueError(f"Unknown access profile: {missing[0]}")
        return ids

    def initialize_admin(self, email: str, password: str, full_name: str) -> models.Profile:
        """Create the first administrator.

        Refused with `AlreadyInitialized` once any admin exists.
        """
        if self.user_repo.any_with_profile_code(ADMIN_PROFILE_CODE):
            raise AlreadyInitialized("Administrator already initialized")
        admin_profile = self.profile_repo.get_by_code(ADMIN_PROFILE_CODE)
        if not admin_profile:
            raise ValueError("Admin profile not found")
        user = self.auth.create_account(email, password, full_name)
        self.user_repo.add_roles(user.id, [admin_profile.id])
        logger.info("admin_initialized user=%s", user.id)
        return user

    def create_user(self, email: str, password: str, full_name: str, whatsapp: Optional[str], access_profile_ids: List[str]) -> models.Profile:
        ids = self._check_profiles(access_profile_ids)
        user = self.auth.create_account(email, password, full_name, whatsapp)
        if ids:
            self.user_repo.add_roles(user.id, ids)
        logger.info("user_created user=%s roles=%s", user.id, len(ids))
        return user

    def update_user(
        self,
        user_id: str,
        email: str,
        password: Optional[str],
        full_name: str,
        whatsapp: Optional[str],
        is_active: bool,
        access_profile_ids: List[str],
    ) -> models.Profile:
        """Update account data; the password changes only when given and roles are replaced."""
        user = self.user_repo.get(user_id)
        if not user:
            raise ValueError("User not found")
        _validate_credentials(email, password or None)
        other = self.user_repo.get_by_email(email)
        if other and other.id != user.id:
            raise ValueError("A user with this email address has already been registered")
        ids = self._check_profiles(access_profile_ids)
        user.email = email.strip().lower()
        user.full_name = full_name.strip()
        user.whatsapp = whatsapp or None
        user.is_active = is_active
        if password:
            user.password_hash = PWD_CTX.hash(password)
        self.user_repo.save(user)
        self.user_repo.replace_roles(user.id, ids)
        return user

    def list_users(self) -> List[dict]:
        return [user_to_dict(u, self.user_repo.role_profile_ids(u.id)) for u in self.user_repo.list_all()]


class AccessProfileService:
    def __init__(self, session: Session):
        self.repo = repositories.AccessProfileRepository(session)
        self.permission_repo = repositories.PermissionRepository(session)

    def to_dict(self, profile: models.AccessProfile) -> dict:
        out = row_to_dict(profile)
        out["permission_ids"] = self.repo.permission_ids(profile.id)
        return out

    def list(self) -> List[dict]:
        return [self.to_dict(p) for p in self.repo.list_all()]

    def permissions_by_category(self) -> dict:
        grouped: dict = {}
        for perm in self.permission_repo.list_all():
            grouped.setdefault(perm.category, []).append(row_to_dict(perm))
        return grouped

    def _check_permissions(self, ids: List[str]) -> List[str]:
        ids = list(dict.fromkeys(ids or []))
        found = set(self.permission_repo.existing_ids(ids))
        missing = [i for i in ids if i not in found]
        if missing:
            raise ValueError(f"Unknown permission: {missing[0]}")
        return ids

    def _slug(self, name: str) -> str:
        ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
        return re.sub(r"[^a-z0-9]+", "_", ascii_name.strip().lower()).strip("_")

    def create(self, name: str, description: Optional[str], permission_ids: List[str], code: Optional[str] = None) -> models.AccessProfile:
        if not name or not name.strip():
            raise ValueError("name is required")
        code = code or self._slug(name)
        if self.repo.get_by_code(code):
            raise ValueError(f"Access profile code already exists: {code}")
        ids = self._check_permissions(permission_ids)
        profile = self.repo.add(models.AccessProfile(code=code, name=name.strip(), description=description))
        self.repo.replace_permissions(profile.id, ids)
        return profile

    def update(self, profile_id: str, name: str, description: Optional[str], permission_ids: List[str]) -> Optional[models.AccessProfile]:
        profile = self.repo.get(profile_id)
        if not profile:
            return None
        ids = self._check_permissions(permission_ids)
        self.repo.update_fields(profile, {"name": name.strip(), "description": description})
        self.repo.replace_permissions(profile.id, ids)
        return profile

    def delete(self, profile_id: str) -> bool:
        profile = self.repo.get(profile_id)
        if not profile:
            return False
        if profile.is_system:
            raise ValueError("System access profiles cannot be deleted")
        self.repo.delete_with_links(profile)
        return True


def validate_image_bytes(payload: bytes) -> str:
    """Return the lower-case image format or raise ValueError."""
    try:
        with Image.open(io.BytesIO(payload)) as img:
            fmt = (img.format or "").lower()
            img.verify()
    except Exception as exc:
        raise ValueError("unsupported file content; expected an image") from exc
    return "jpg" if fmt == "jpeg" else fmt or "png"


class PedidoService:
    """Pedido CRUD, spreadsheet import, photos and customer lookups."""
    UPDATABLE = (
        "numero_pedido", "nome_cliente", "codigo_produto", "telefone", "data_pedido",
        "data_impressao", "observacao", "layout_aprovado", "mensagem_enviada", "arquivado",
        "fotos_cliente", "foto_aprovacao", "molde_producao",
    )
    BATCH_FIELDS = ("layout_aprovado", "mensagem_enviada", "arquivado", "data_impressao")

    def __init__(self, session: Session, storage: Optional[LocalObjectStorage] = None):
        self.session = session
        self.repo = repositories.PedidoRepository(session)
        self.audit_repo = repositories.AuditLogRepository(session)
        self.storage = storage or get_storage()

    def create(self, data: dict) -> models.Pedido:
        for key in ("numero_pedido", "nome_cliente", "codigo_produto"):
            if not str(data.get(key) or "").strip():
                raise ValueError(f"{key} is required")
        pedido = models.Pedido(
            numero_pedido=data["numero_pedido"].strip(),
            nome_cliente=data["nome_cliente"].strip(),
            codigo_produto=data["codigo_produto"].strip(),
            telefone=data.get("telefone") or None,
            data_pedido=data.get("data_pedido") or today_brasilia(),
            data_impressao=data.get("data_impressao"),
            observacao=data.get("observacao") or None,
        )
        return self.repo.add(pedido)

    def update(self, pedido_id: str, fields: dict) -> Optional[models.Pedido]:
        pedido = self.repo.get(pedido_id)
        if not pedido:
            return None
        changes = {k: v for k, v in fields.items() if k in self.UPDATABLE}
        return self.repo.update_fields(pedido, changes)

    def batch_update(self, ids: List[str], fields: dict) -> int:
        """Apply the batch fields to every pedido in `ids`; returns the count updated."""
        changes = {k: v for k, v in fields.items() if k in self.BATCH_FIELDS and v is not None}
        if not ids:
            raise ValueError("ids is required")
        if not changes:
            raise ValueError("no fields to update")
        pedidos = self.repo.list_by_ids(ids)
        for pedido in pedidos:
            for key, value in changes.items():
                setattr(pedido, key, value)
            pedido.updated_at = datetime.now(timezone.utc)
            self.session.add(pedido)
        self.session.commit()
        return len(pedidos)

    def delete(self, pedido_id: str) -> bool:
        """Delete a pedido together with its stored files."""
        pedido = self.repo.get(pedido_id)
        if not pedido:
            return False
        paths = pedido_storage_paths(pedido, self.storage)
        if paths:
            logger.info("pedido_files_removed pedido=%s count=%s", pedido.numero_pedido, len(paths))
            self.storage.remove(paths)
        self.repo.delete_with_links(pedido)
        return True

    def import_file(self, file_bytes: bytes, filename: str, dry_run: bool = False) -> dict:
        """Parse a spreadsheet and create one pedido per complete row.

        Rows missing numero, cliente or produto are reported as skipped.
        With `dry_run` nothing is written and the parsed rows are returned.
        """
        rows = parse_file_to_rows(file_bytes, filename)
        valid = []
        skipped = []
        for idx, row in enumerate(rows):
            if not is_complete(row):
                skipped.append({"index": idx, "row": row})
                continue
            valid.append(row)
        if dry_run:
            return {"created": 0, "skipped": len(skipped), "preview": valid, "errors": skipped}
        today = today_brasilia()
        pedidos = [
            models.Pedido(
                numero_pedido=row["numero_pedido"],
                nome_cliente=row["nome_cliente"],
                codigo_produto=row["codigo_produto"],
                telefone=row["telefone"],
                data_pedido=row["data_pedido"] or today,
                observacao=row["observacao"],
                layout_aprovado="pendente",
                mensagem_enviada="pendente",
            )
            for row in valid
        ]
        created = self.repo.create_many(pedidos)
        return {"created": len(created), "skipped": len(skipped), "ids": [p.id for p in created], "errors": skipped}

    def add_client_photo(self, pedido_id: str, payload: bytes) -> Optional[models.Pedido]:
        pedido = self.repo.get(pedido_id)
        if not pedido:
            return None
        ext = validate_image_bytes(payload)
        path = f"clientes/{pedido.id}-cliente-{int(time.time() * 1000)}.{ext}"
        self.storage.upload(path, payload)
        fotos = list(pedido.fotos_cliente or []) + [self.storage.public_url(path)]
        return self.repo.update_fields(pedido, {"fotos_cliente": fotos})

    def remove_client_photo(self, pedido_id: str, url: str) -> Optional[models.Pedido]:
        pedido = self.repo.get(pedido_id)
        if not pedido:
            return None
        fotos = [f for f in pedido.fotos_cliente or [] if f != url]
        if len(fotos) == len(pedido.fotos_cliente or []):
            raise ValueError("photo not found on pedido")
        name = self.storage.extract_path(url)
        if name:
            self.storage.remove([name if name.startswith("clientes/") else f"clientes/{name.split('/')[-1]}"])
        return self.repo.update_fields(pedido, {"fotos_cliente": fotos})

    def find_by_customer_phone(self, phone: str) -> List[models.Pedido]:
        return self.repo.find_by_phone_fragments(search_variants(phone))

    def set_approval(self, pedido_id: str, aprovado: bool, user: Optional[models.Profile]) -> Optional[models.Pedido]:
        """Set `layout_aprovado` and record who approved or rejected it."""
        pedido = self.repo.get(pedido_id)
        if not pedido:
            return None
        value = "aprovado" if aprovado else "reprovado"
        self.repo.update_fields(pedido, {"layout_aprovado": value})
        self.audit_repo.record(
            user,
            "aprovou_pedido" if aprovado else "reprovou_pedido",
            "pedido",
            pedido.id,
            {"field": "layout_aprovado", "value": value},
        )
        return pedido


class MockupService:
    """Mockups, canvases and their areas."""
    def __init__(self, session: Session, storage: Optional[LocalObjectStorage] = None):
        self.repo = repositories.MockupRepository(session)
        self.storage = storage or get_storage()

    def to_dict(self, mockup: models.Mockup, with_canvases: bool = True) -> dict:
        out = row_to_dict(mockup)
        if with_canvases:
            out["canvases"] = []
            for canvas in self.repo.list_canvases(mockup.id):
                c = row_to_dict(canvas)
                c["areas"] = [row_to_dict(a) for a in self.repo.list_areas(canvas.id)]
                out["canvases"].append(c)
        return out

    def _check_link(self, linked_id: Optional[str], own_id: Optional[str] = None) -> None:
        if not linked_id:
            return
        linked = self.repo.get(linked_id)
        if not linked or linked.id == own_id:
            raise ValueError("linked approval mockup not found")
        if linked.tipo != "aprovacao":
            raise ValueError("linked mockup must be of tipo aprovacao")

    def create(self, data: dict) -> models.Mockup:
        self._check_link(data.get("mockup_aprovacao_vinculado_id"))
        return self.repo.add(models.Mockup(**data))

    def update(self, mockup_id: str, data: dict) -> Optional[models.Mockup]:
        mockup = self.repo.get(mockup_id)
        if not mockup:
            return None
        self._check_link(data.get("mockup_aprovacao_vinculado_id"), mockup.id)
        return self.repo.update_fields(mockup, data)

    def delete(self, mockup_id: str) -> bool:
        """Delete a mockup, its canvases, areas and canvas images."""
        mockup = self.repo.get(mockup_id)
        if not mockup:
            return False
        paths = [self.storage.extract_path(c.imagem_base) for c in self.repo.list_canvases(mockup.id)]
        paths = [p for p in paths if p]
        if paths:
            self.storage.remove(paths)
        self.repo.delete_cascade(mockup)
        return True

    def upload_image(self, payload: bytes) -> dict:
        ext = validate_image_bytes(payload)
        path = f"mockups/{int(time.time() * 1000)}-{models._new_id()[:8]}.{ext}"
        self.storage.upload(path, payload)
        return {"path": path, "url": self.storage.public_url(path)}

    def add_canvas(self, mockup_id: str, data: dict) -> Optional[models.MockupCanvas]:
        if not self.repo.get(mockup_id):
            return None
        return self.repo.add(models.MockupCanvas(mockup_id=mockup_id, **data))

    def update_canvas(self, canvas_id: str, data: dict) -> Optional[models.MockupCanvas]:
        canvas = self.repo.get_canvas(canvas_id)
        if not canvas:
            return None
        return self.repo.update_fields(canvas, data)

    def delete_canvas(self, canvas_id: str) -> bool:
        canvas = self.repo.get_canvas(canvas_id)
        if not canvas:
            return False
        path = self.storage.extract_path(canvas.imagem_base)
        if path:
            self.storage.remove([path])
        self.repo.delete_canvas(canvas)
        return True

    def save_areas(self, canvas_id: str, areas: List[dict]) -> Optional[List[models.MockupArea]]:
        """Replace every area of a canvas with `areas`."""
        canvas = self.repo.get_canvas(canvas_id)
        if not canvas:
            return None
        rows = [models.MockupArea(mockup_id=canvas.mockup_id, canvas_id=canvas.id, **a) for a in areas]
        return self.repo.replace_areas(canvas, rows)


AREA_FIELDS = (
    "kind", "field_key", "x", "y", "width", "height", "rotation", "z_index", "color",
    "font_family", "font_size", "font_weight", "text_align", "letter_spacing", "line_height",
)


class TemplateService:
    """Reusable area layouts that can be saved from and applied to canvases."""
    def __init__(self, session: Session):
        self.repo = repositories.TemplateRepository(session)
        self.mockup_repo = repositories.MockupRepository(session)

    def to_dict(self, template: models.AreaTemplate) -> dict:
        out = row_to_dict(template)
        out["items"] = [row_to_dict(i) for i in self.repo.list_items(template.id)]
        return out

    def create(self, name: str, description: Optional[str], items: List[dict]) -> models.AreaTemplate:
        if not name or not name.strip():
            raise ValueError("name is required")
        template = self.repo.add(models.AreaTemplate(name=name.strip(), description=description))
        self.repo.replace_items(template.id, [models.AreaTemplateItem(template_id=template.id, **i) for i in items])
        return template

    def update(self, template_id: str, name: str, description: Optional[str], items: List[dict]) -> Optional[models.AreaTemplate]:
        template = self.repo.get(template_id)
        if not template:
            return None
        self.repo.update_fields(template, {"name": name.strip(), "description": description})
        self.repo.replace_items(template.id, [models.AreaTemplateItem(template_id=template.id, **i) for i in items])
        return template

    def delete(self, template_id: str) -> bool:
        template = self.repo.get(template_id)
        if not template:
            return False
        self.repo.delete_cascade(template)
        return True

    def save_canvas_as_template(self, canvas_id: str, name: str, description: Optional[str]) -> Optional[models.AreaTemplate]:
        if not self.mockup_repo.get_canvas(canvas_id):
            return None
        areas = self.mockup_repo.list_areas(canvas_id)
        items = [{f: getattr(a, f) for f in AREA_FIELDS} for a in areas]
        return self.create(name, description, items)

    def apply_to_canvas(self, template_id: str, canvas_id: str, replace: bool = True) -> Optional[List[models.MockupArea]]:
        """Copy template items onto a canvas; keeps existing areas unless `replace`."""
        template = self.repo.get(template_id)
        canvas = self.mockup_repo.get_canvas(canvas_id)
        if not template or not canvas:
            return None
        rows = []
        if not replace:
            rows = [
                models.MockupArea(**{f: getattr(a, f) for f in AREA_FIELDS})
                for a in self.mockup_repo.list_areas(canvas.id)
            ]
        rows += [
            models.MockupArea(mockup_id=canvas.mockup_id, **{f: getattr(i, f) for f in AREA_FIELDS})
            for i in self.repo.list_items(template.id)
        ]
        for row in rows:
            row.mockup_id = canvas.mockup_id
        return self.mockup_repo.replace_areas(canvas, rows)


class MockupGenerationService:
    """Render a pedido's approval images and production moulds."""
    def __init__(self, session: Session, storage: Optional[LocalObjectStorage] = None, http: Optional[httpx.Client] = None):
        self.session = session
        self.mockup_repo = repositories.MockupRepository(session)
        self.pedido_repo = repositories.PedidoRepository(session)
        self.storage = storage or get_storage()
        self.http = http

    def load_bytes(self, url: str) -> bytes:
        """Read an image from the local bucket when the URL points there, else over HTTP."""
        path = self.storage.extract_path(url)
        if path and f"/{self.storage.bucket}/" in url and self.storage.exists(path):
            return self.storage.download(path)
        with http_client(self.http) as http:
            resp = http.get(url)
            resp.raise_for_status()
            return resp.content

    def _mockups_for(self, pedido: models.Pedido, tipo_gerar: str) -> List[models.Mockup]:
        mockups = list(self.mockup_repo.list_by_codigo(pedido.codigo_produto))
        if mockups and mockups[0].mockup_aprovacao_vinculado_id:
            linked = self.mockup_repo.get(mockups[0].mockup_aprovacao_vinculado_id)
            if linked and linked.id not in {m.id for m in mockups}:
                mockups = [linked] + mockups
        if tipo_gerar in ("aprovacao", "molde"):
            mockups = [m for m in mockups if m.tipo == tipo_gerar]
        return mockups

    def generate(self, pedido: models.Pedido, tipo_gerar: str = "all") -> dict:
        """Generate images for `pedido` and store their URLs on it.

        Without a configured mockup the first client photo becomes the
        approval image (for `all` and `aprovacao`).
        """
        mockups = self._mockups_for(pedido, tipo_gerar)
        if not mockups:
            fotos = pedido.fotos_cliente or []
            if tipo_gerar in ("all", "aprovacao") and fotos:
                self.pedido_repo.update_fields(pedido, {"foto_aprovacao": [fotos[0]], "layout_aprovado": "pendente"})
                return {"aprovacao": [fotos[0]]}
            return {}

        aprovacao: List[str] = []
        molde: List[str] = []
        for mockup in mockups:
            canvases = self.mockup_repo.list_canvases(mockup.id)
            if not canvases:
                logger.warning("mockup_without_canvases mockup=%s", mockup.id)
                continue
            for canvas in canvases:
                areas = self.mockup_repo.list_areas(canvas.id)
                png = mockup_render.render_canvas(self.load_bytes(canvas.imagem_base), areas, pedido, self.load_bytes)
                nome = canvas.nome.replace("/", "-")
                path = mockup_render.output_filename(pedido.numero_pedido, mockup.tipo, nome, int(time.time() * 1000))
                self.storage.upload(path, png)
                url = self.storage.public_url(path)
                (aprovacao if mockup.tipo == "aprovacao" else molde).append(url)

        results = {}
        changes = {}
        if aprovacao:
            results["aprovacao"] = aprovacao
            changes.update({"foto_aprovacao": aprovacao, "layout_aprovado": "pendente"})
        if molde:
            results["molde"] = molde
            changes["molde_producao"] = molde
        if changes:
            self.pedido_repo.update_fields(pedido, changes)
        logger.info("mockups_generated pedido=%s aprovacao=%s molde=%s", pedido.numero_pedido, len(aprovacao), len(molde))
        return results


class StorageMaintenanceService:
    """Detect and remove stored files that nothing references."""
    def __init__(self, session: Session, storage: Optional[LocalObjectStorage] = None):
        self.pedido_repo = repositories.PedidoRepository(session)
        self.mockup_repo = repositories.MockupRepository(session)
        self.storage = storage or get_storage()

    def run(self, action: str = "count") -> dict:
        report = find_orphans(
            self.storage,
            self.pedido_repo.list_all(),
            self.mockup_repo.all_canvas_images(),
            self.mockup_repo.all_mockup_images(),
            self.mockup_repo.count_images_containing,
        )
        summary = report.summary()
        if action == "delete" and report.orphans:
            deleted = delete_in_batches(self.storage, report.orphans, settings.CLEANUP_BATCH_SIZE)
            logger.info("cleanup_deleted count=%s", deleted)
            return {
                "success": True,
                "message": f"{deleted} arquivos órfãos foram deletados",
                "deleted": deleted,
                "protectedCount": summary["protectedCount"],
                "orphanFiles": summary["orphanFiles"],
            }
        return summary


class DriveService:
    def __init__(self, session: Session, http: Optional[httpx.Client] = None):
        self.repo = repositories.DriveSettingsRepository(session)
        self.http = http

    def get_settings(self) -> Optional[models.GoogleDriveSettings]:
        return self.repo.first()

    def save_settings(self, data: dict) -> models.GoogleDriveSettings:
        current = self.repo.first()
        if current:
            return self.repo.update_fields(current, data)
        return self.repo.add(models.GoogleDriveSettings(**data))

    def access_token(self) -> Optional[dict]:
        """Refresh the Drive access token; `None` when no settings exist.

        Raises `DriveAuthError` when Google rejects the refresh.
        """
        current = self.repo.first()
        if not current:
            return None
        with http_client(self.http) as http:
            return refresh_access_token(current.client_id, current.client_secret, current.refresh_token, http)

