"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
access profiles, pedidos, mockups, whatsapp records). Repositories return
SQLModel objects and perform commits/refreshes where appropriate.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func, or_
from sqlmodel import Session, delete, select

from . import models


def _touch(obj) -> None:
    if hasattr(obj, "updated_at"):
        obj.updated_at = datetime.now(timezone.utc)


class _BaseRepository:
    model = None

    def __init__(self, session: Session):
        self.session = session

    def get(self, obj_id: str):
        """Fetch a row by primary key or `None`."""
        return self.session.get(self.model, obj_id)

    def add(self, obj):
        """Persist a new row and return the managed instance."""
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def save(self, obj):
        """Commit changes made to an already managed row."""
        _touch(obj)
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def update_fields(self, obj, fields: dict):
        for key, value in fields.items():
            setattr(obj, key, value)
        return self.save(obj)

    def delete(self, obj) -> None:
        self.session.delete(obj)
        self.session.commit()


class UserRepository(_BaseRepository):
    """CRUD operations for `Profile` (user) objects and their roles."""
    model = models.Profile

    def get_by_email(self, email: str) -> Optional[models.Profile]:
        """Return a user by email (case-insensitive) or `None`."""
        stmt = select(models.Profile).where(func.lower(models.Profile.email) == email.strip().lower())
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.Profile]:
        stmt = select(models.Profile).order_by(models.Profile.full_name)
        return self.session.exec(stmt).all()

    def role_profile_ids(self, user_id: str) -> List[str]:
        """Return the access profile ids assigned to `user_id`."""
        stmt = select(models.UserRole.access_profile_id).where(models.UserRole.user_id == user_id)
        return list(self.session.exec(stmt).all())

    def replace_roles(self, user_id: str, access_profile_ids: Iterable[str]) -> None:
        """Delete the user's roles then insert one row per access profile."""
        self.session.exec(delete(models.UserRole).where(models.UserRole.user_id == user_id))
        for profile_id in dict.fromkeys(access_profile_ids):
            self.session.add(models.UserRole(user_id=user_id, access_profile_id=profile_id))
        self.session.commit()

    def add_roles(self, user_id: str, access_profile_ids: Iterable[str]) -> None:
        for profile_id in dict.fromkeys(access_profile_ids):
            self.session.add(models.UserRole(user_id=user_id, access_profile_id=profile_id))
        self.session.commit()

    def has_profile_code(self, user_id: str, code: str) -> bool:
        """Return True if the user holds an access profile with `code`."""
        stmt = (
            select(models.UserRole.id)
            .join(models.AccessProfile, models.AccessProfile.id == models.UserRole.access_profile_id)
            .where(models.UserRole.user_id == user_id, models.AccessProfile.code == code)
        )
        return self.session.exec(stmt).first() is not None

    def any_with_profile_code(self, code: str) -> bool:
        stmt = (
            select(models.UserRole.id)
            .join(models.AccessProfile, models.AccessProfile.id == models.UserRole.access_profile_id)
            .where(models.AccessProfile.code == code)
        )
        return self.session.exec(stmt).first() is not None

    def permission_codes(self, user_id: str) -> List[str]:
        """Return the distinct permission codes granted through the user's roles."""
        stmt = (
            select(models.Permission.code)
            .join(models.ProfilePermission, models.ProfilePermission.permission_id == models.Permission.id)
            .join(models.UserRole, models.UserRole.access_profile_id == models.ProfilePermission.access_profile_id)
            .where(models.UserRole.user_id == user_id)
            .distinct()
        )
        return sorted(self.session.exec(stmt).all())


class AccessProfileRepository(_BaseRepository):
    """Access profiles (roles) and their permission links."""
    model = models.AccessProfile

    def get_by_code(self, code: str) -> Optional[models.AccessProfile]:
        stmt = select(models.AccessProfile).where(models.AccessProfile.code == code)
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.AccessProfile]:
        stmt = select(models.AccessProfile).order_by(models.AccessProfile.name)
        return self.session.exec(stmt).all()

    def existing_ids(self, ids: Iterable[str]) -> List[str]:
        ids = list(ids)
        if not ids:
            return []
        stmt = select(models.AccessProfile.id).where(models.AccessProfile.id.in_(ids))
        return list(self.session.exec(stmt).all())

    def permission_ids(self, profile_id: str) -> List[str]:
        stmt = select(models.ProfilePermission.permission_id).where(
            models.ProfilePermission.access_profile_id == profile_id
        )
        return list(self.session.exec(stmt).all())

    def replace_permissions(self, profile_id: str, permission_ids: Iterable[str]) -> None:
        """Delete the profile's permission links then insert the new set."""
        self.session.exec(
            delete(models.ProfilePermission).where(models.ProfilePermission.access_profile_id == profile_id)
        )
        for permission_id in dict.fromkeys(permission_ids):
            self.session.add(models.ProfilePermission(access_profile_id=profile_id, permission_id=permission_id))
        self.session.commit()

    def delete_with_links(self, profile: models.AccessProfile) -> None:
        self.session.exec(
            delete(models.ProfilePermission).where(models.ProfilePermission.access_profile_id == profile.id)
        )
        self.session.exec(delete(models.UserRole).where(models.UserRole.access_profile_id == profile.id))
        self.session.delete(profile)
        self.session.commit()


class PermissionRepository(_BaseRepository):
    model = models.Permission

    def list_all(self) -> List[models.Permission]:
        """Return every permission ordered by category then name."""
        stmt = select(models.Permission).order_by(models.Permission.category, models.Permission.name)
        return self.session.exec(stmt).all()

    def existing_ids(self, ids: Iterable[str]) -> List[str]:
        ids = list(ids)
        if not ids:
            return []
        stmt = select(models.Permission.id).where(models.Permission.id.in_(ids))
        return list(self.session.exec(stmt).all())


class PedidoRepository(_BaseRepository):
    """Queries over customer orders."""
    model = models.Pedido

    def list(self, arquivado: Optional[bool] = None, search: Optional[str] = None) -> List[models.Pedido]:
        """List pedidos newest first, optionally filtered by archive flag and text."""
        stmt = select(models.Pedido)
        if arquivado is not None:
            stmt = stmt.where(models.Pedido.arquivado == arquivado)
        if search:
            like = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(
                    models.Pedido.numero_pedido.ilike(like),
                    models.Pedido.nome_cliente.ilike(like),
                    models.Pedido.telefone.ilike(like),
                )
            )
        stmt = stmt.order_by(models.Pedido.data_pedido.desc(), models.Pedido.created_at.desc())
        return self.session.exec(stmt).all()

    def list_by_ids(self, ids: Iterable[str]) -> List[models.Pedido]:
        ids = list(ids)
        if not ids:
            return []
        stmt = select(models.Pedido).where(models.Pedido.id.in_(ids))
        return self.session.exec(stmt).all()

    def list_all(self) -> List[models.Pedido]:
        return self.session.exec(select(models.Pedido)).all()

    def find_by_phone_fragments(self, fragments: Iterable[str], limit: Optional[int] = None) -> List[models.Pedido]:
        """Return pedidos whose `telefone` contains any of `fragments`."""
        clauses = [models.Pedido.telefone.ilike(f"%{frag}%") for frag in fragments if frag]
        if not clauses:
            return []
        stmt = select(models.Pedido).where(or_(*clauses)).order_by(models.Pedido.data_pedido.desc())
        if limit:
            stmt = stmt.limit(limit)
        return self.session.exec(stmt).all()

    def delete_with_links(self, pedido: models.Pedido) -> None:
        """Delete a pedido, detaching the internal notes that mention it."""
        notes = self.session.exec(
            select(models.WhatsappInternalNote).where(models.WhatsappInternalNote.pedido_id == pedido.id)
        ).all()
        for note in notes:
            note.pedido_id = None
            self.session.add(note)
        self.session.delete(pedido)
        self.session.commit()

    def create_many(self, pedidos: List[models.Pedido]) -> List[models.Pedido]:
        for p in pedidos:
            self.session.add(p)
        self.session.commit()
        for p in pedidos:
            self.session.refresh(p)
        return pedidos


class MockupRepository(_BaseRepository):
    """Mockups, their canvases and areas."""
    model = models.Mockup

    def list(self, codigo: Optional[str] = None) -> List[models.Mockup]:
        stmt = select(models.Mockup)
        if codigo:
            stmt = stmt.where(models.Mockup.codigo_mockup == codigo)
        stmt = stmt.order_by(models.Mockup.codigo_mockup, models.Mockup.tipo)
        return self.session.exec(stmt).all()

    def list_by_codigo(self, codigo: str) -> List[models.Mockup]:
        """Return mockups for a product code ordered by `tipo`."""
        stmt = select(models.Mockup).where(models.Mockup.codigo_mockup == codigo).order_by(models.Mockup.tipo)
        return self.session.exec(stmt).all()

    def list_canvases(self, mockup_id: str) -> List[models.MockupCanvas]:
        stmt = (
            select(models.MockupCanvas)
            .where(models.MockupCanvas.mockup_id == mockup_id)
            .order_by(models.MockupCanvas.ordem)
        )
        return self.session.exec(stmt).all()

    def get_canvas(self, canvas_id: str) -> Optional[models.MockupCanvas]:
        return self.session.get(models.MockupCanvas, canvas_id)

    def list_areas(self, canvas_id: str) -> List[models.MockupArea]:
        """Return a canvas' areas in drawing order (`z_index`)."""
        stmt = (
            select(models.MockupArea)
            .where(models.MockupArea.canvas_id == canvas_id)
            .order_by(models.MockupArea.z_index)
        )
        return self.session.exec(stmt).all()

    def replace_areas(self, canvas: models.MockupCanvas, areas: List[models.MockupArea]) -> List[models.MockupArea]:
        self.session.exec(delete(models.MockupArea).where(models.MockupArea.canvas_id == canvas.id))
        for area in areas:
            area.canvas_id = canvas.id
            area.mockup_id = canvas.mockup_id
            self.session.add(area)
        self.session.commit()
        return self.list_areas(canvas.id)

    def delete_canvas(self, canvas: models.MockupCanvas) -> None:
        self.session.exec(delete(models.MockupArea).where(models.MockupArea.canvas_id == canvas.id))
        self.session.delete(canvas)
        self.session.commit()

    def delete_cascade(self, mockup: models.Mockup) -> None:
        """Delete a mockup with its areas and canvases."""
        self.session.exec(delete(models.MockupArea).where(models.MockupArea.mockup_id == mockup.id))
        self.session.exec(delete(models.MockupCanvas).where(models.MockupCanvas.mockup_id == mockup.id))
        for linked in self.session.exec(
            select(models.Mockup).where(models.Mockup.mockup_aprovacao_vinculado_id == mockup.id)
        ).all():
            linked.mockup_aprovacao_vinculado_id = None
            self.session.add(linked)
        self.session.delete(mockup)
        self.session.commit()

    def all_canvas_images(self) -> List[str]:
        return [u for u in self.session.exec(select(models.MockupCanvas.imagem_base)).all() if u]

    def all_mockup_images(self) -> List[str]:
        return [u for u in self.session.exec(select(models.Mockup.imagem_base)).all() if u]

    def count_images_containing(self, fragment: str) -> int:
        """Count canvases plus mockups whose `imagem_base` contains `fragment` (case-insensitive)."""
        like = f"%{fragment}%"
        canvases = self.session.exec(
            select(func.count(models.MockupCanvas.id)).where(models.MockupCanvas.imagem_base.ilike(like))
        ).one()
        mockups = self.session.exec(
            select(func.count(models.Mockup.id)).where(models.Mockup.imagem_base.ilike(like))
        ).one()
        return int(canvases or 0) + int(mockups or 0)


class TemplateRepository(_BaseRepository):
    """Reusable area templates."""
    model = models.AreaTemplate

    def list_all(self) -> List[models.AreaTemplate]:
        stmt = select(models.AreaTemplate).order_by(models.AreaTemplate.name)
        return self.session.exec(stmt).all()

    def list_items(self, template_id: str) -> List[models.AreaTemplateItem]:
        stmt = (
            select(models.AreaTemplateItem)
            .where(models.AreaTemplateItem.template_id == template_id)
            .order_by(models.AreaTemplateItem.z_index)
        )
        return self.session.exec(stmt).all()

    def replace_items(self, template_id: str, items: List[models.AreaTemplateItem]) -> List[models.AreaTemplateItem]:
        self.session.exec(delete(models.AreaTemplateItem).where(models.AreaTemplateItem.template_id == template_id))
        for item in items:
            item.template_id = template_id
            self.session.add(item)
        self.session.commit()
        return self.list_items(template_id)

    def delete_cascade(self, template: models.AreaTemplate) -> None:
        self.session.exec(delete(models.AreaTemplateItem).where(models.AreaTemplateItem.template_id == template.id))
        self.session.delete(template)
        self.session.commit()


class InstanceRepository(_BaseRepository):
    """WhatsApp sending instances."""
    model = models.WhatsappInstance

    def list_ordered(self, active_only: bool = False) -> List[models.WhatsappInstance]:
        """Return instances by ascending `ordem`; unordered ones go last."""
        stmt = select(models.WhatsappInstance)
        if active_only:
            stmt = stmt.where(models.WhatsappInstance.is_active == True)  # noqa: E712
        stmt = stmt.order_by(models.WhatsappInstance.ordem.is_(None), models.WhatsappInstance.ordem, models.WhatsappInstance.nome)
        return self.session.exec(stmt).all()

    def get_by_evolution_name(self, name: str) -> Optional[models.WhatsappInstance]:
        stmt = select(models.WhatsappInstance).where(models.WhatsappInstance.evolution_instance == name)
        return self.session.exec(stmt).first()


class ContactRepository(_BaseRepository):
    model = models.WhatsappContact

    def get_by_phone(self, phone: str) -> Optional[models.WhatsappContact]:
        stmt = select(models.WhatsappContact).where(models.WhatsappContact.phone == phone)
        return self.session.exec(stmt).first()

    def get_many(self, ids: Iterable[str]) -> dict:
        ids = list(set(ids))
        if not ids:
            return {}
        stmt = select(models.WhatsappContact).where(models.WhatsappContact.id.in_(ids))
        return {c.id: c for c in self.session.exec(stmt).all()}


class ConversationRepository(_BaseRepository):
    model = models.WhatsappConversation

    def list(
        self,
        instance_id: Optional[str] = None,
        status: Optional[str] = None,
        assigned_to: Optional[str] = None,
    ) -> List[models.WhatsappConversation]:
        """List conversations by most recent message first (no-message ones last)."""
        stmt = select(models.WhatsappConversation)
        if instance_id:
            stmt = stmt.where(models.WhatsappConversation.instance_id == instance_id)
        if status:
            stmt = stmt.where(models.WhatsappConversation.status == status)
        if assigned_to:
            stmt = stmt.where(models.WhatsappConversation.assigned_to == assigned_to)
        stmt = stmt.order_by(
            models.WhatsappConversation.last_message_at.is_(None),
            models.WhatsappConversation.last_message_at.desc(),
        )
        return self.session.exec(stmt).all()

    def find_for_contact(self, contact_id: str, instance_id: Optional[str]) -> Optional[models.WhatsappConversation]:
        """Return the conversation for a contact on an instance (`None` matches null instance)."""
        stmt = select(models.WhatsappConversation).where(models.WhatsappConversation.contact_id == contact_id)
        if instance_id:
            stmt = stmt.where(models.WhatsappConversation.instance_id == instance_id)
        else:
            stmt = stmt.where(models.WhatsappConversation.instance_id.is_(None))
        return self.session.exec(stmt).first()


class MessageRepository(_BaseRepository):
    model = models.WhatsappMessage

    def list_for_conversation(self, conversation_id: str) -> List[models.WhatsappMessage]:
        stmt = (
            select(models.WhatsappMessage)
            .where(models.WhatsappMessage.conversation_id == conversation_id)
            .order_by(models.WhatsappMessage.created_at)
        )
        return self.session.exec(stmt).all()


class QuickReplyRepository(_BaseRepository):
    model = models.WhatsappQuickReply

    def list(self, active_only: bool = False) -> List[models.WhatsappQuickReply]:
        stmt = select(models.WhatsappQuickReply)
        if active_only:
            stmt = stmt.where(models.WhatsappQuickReply.is_active == True)  # noqa: E712
        stmt = stmt.order_by(models.WhatsappQuickReply.category, models.WhatsappQuickReply.name)
        return self.session.exec(stmt).all()


class NoteRepository(_BaseRepository):
    model = models.WhatsappInternalNote

    def list(self, conversation_id: Optional[str] = None, contact_id: Optional[str] = None) -> List[models.WhatsappInternalNote]:
        stmt = select(models.WhatsappInternalNote)
        if conversation_id:
            stmt = stmt.where(models.WhatsappInternalNote.conversation_id == conversation_id)
        if contact_id:
            stmt = stmt.where(models.WhatsappInternalNote.contact_id == contact_id)
        stmt = stmt.order_by(models.WhatsappInternalNote.created_at.desc())
        return self.session.exec(stmt).all()


class AuditLogRepository(_BaseRepository):
    model = models.WhatsappAuditLog

    def record(self, user: Optional[models.Profile], action: str, entity_type: str, entity_id: Optional[str], details: dict) -> models.WhatsappAuditLog:
        """Append an audit entry attributed to `user` (may be `None`)."""
        entry = models.WhatsappAuditLog(
            user_id=user.id if user else None,
            user_name=(user.full_name or user.email) if user else None,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )
        return self.add(entry)

    def list_for_entity(self, entity_type: str, entity_id: str) -> List[models.WhatsappAuditLog]:
        stmt = (
            select(models.WhatsappAuditLog)
            .where(models.WhatsappAuditLog.entity_type == entity_type, models.WhatsappAuditLog.entity_id == entity_id)
            .order_by(models.WhatsappAuditLog.created_at)
        )
        return self.session.exec(stmt).all()


class DriveSettingsRepository(_BaseRepository):
    model = models.GoogleDriveSettings

    def first(self) -> Optional[models.GoogleDriveSettings]:
        """Return the first settings row; the integration uses only one."""
        stmt = select(models.GoogleDriveSettings).order_by(models.GoogleDriveSettings.created_at).limit(1)
        return self.session.exec(stmt).first()
