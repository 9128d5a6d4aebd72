"""WhatsApp services: instances, dispatch and the atendimento inbox.

Outbound HTTP is done with an `httpx.Client` passed in by the caller (or
opened with `http_client`) so handlers and tests control the
transport.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import httpx
from sqlmodel import Session

from . import models, repositories
from .services import row_to_dict
from .utils.evolution import (
    EvolutionClient,
    EvolutionEndpoint,
    EvolutionError,
    check_instance_status,
    dispatch_with_failover,
    failover_candidates,
    http_client,
    send_webhook,
)
from .utils.phones import normalize_phone, phone_from_jid, search_variants

logger = logging.getLogger("painel.messaging")

INBOUND_EVENTS = ("messages.upsert", "message", "messages")
PREVIEW_LENGTH = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _sort_key(value: Optional[datetime]) -> float:
    if value is None:
        return 0.0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


class InstanceService:
    def __init__(self, session: Session, http: Optional[httpx.Client] = None):
        self.repo = repositories.InstanceRepository(session)
        self.http = http

    def to_dict(self, instance: models.WhatsappInstance) -> dict:
        return row_to_dict(instance)

    def list(self) -> List[models.WhatsappInstance]:
        return self.repo.list_ordered()

    def create(self, data: dict) -> models.WhatsappInstance:
        self._validate(data)
        return self.repo.add(models.WhatsappInstance(**data))

    def update(self, instance_id: str, data: dict) -> Optional[models.WhatsappInstance]:
        instance = self.repo.get(instance_id)
        if not instance:
            return None
        self._validate({**row_to_dict(instance), **data})
        return self.repo.update_fields(instance, data)

    def delete(self, instance_id: str) -> bool:
        instance = self.repo.get(instance_id)
        if not instance:
            return False
        self.repo.delete(instance)
        return True

    def _validate(self, data: dict) -> None:
        if not (data.get("nome") or "").strip():
            raise ValueError("nome is required")
        if data.get("api_type") == "webhook" and not data.get("webhook_url"):
            raise ValueError("webhook_url is required for webhook instances")

    def check_statuses(self) -> List[dict]:
        """Probe every instance (active or not) in `ordem` order."""
        with http_client(self.http) as http:
            return [check_instance_status(i, http) for i in self.repo.list_ordered()]


class DispatchService:
    """Send one message, trying each configured instance until one accepts it."""
    def __init__(self, session: Session, http: Optional[httpx.Client] = None):
        self.instance_repo = repositories.InstanceRepository(session)
        self.http = http

    def candidates(self, preferred_id: Optional[str] = None) -> List[EvolutionEndpoint]:
        return failover_candidates(self.instance_repo.list_ordered(active_only=True), preferred_id)

    def send(self, phone: str, message: str, instance_id: Optional[str] = None, media_url=None, media_type=None, caption=None) -> dict:
        """Returns the success payload; raises `EvolutionError` when every endpoint failed."""
        number = normalize_phone(phone)
        with http_client(self.http) as http:
            result = dispatch_with_failover(
                self.candidates(instance_id), number, message, http,
                media_url=media_url, media_type=media_type, caption=caption,
            )
        endpoint = result["endpoint"]
        return {
            "success": True,
            "data": result["data"],
            "instance_id": endpoint.instance_id,
            "instance_name": endpoint.name,
            "attempts": result["attempts"],
        }


class AtendimentoService:
    """Conversations, messages and the inbound webhook of the WhatsApp inbox."""
    def __init__(self, session: Session, http: Optional[httpx.Client] = None):
        self.session = session
        self.http = http
        self.contacts = repositories.ContactRepository(session)
        self.conversations = repositories.ConversationRepository(session)
        self.messages = repositories.MessageRepository(session)
        self.instances = repositories.InstanceRepository(session)
        self.pedidos = repositories.PedidoRepository(session)
        self.audit = repositories.AuditLogRepository(session)

    def conversation_to_dict(self, conv: models.WhatsappConversation, contact: Optional[models.WhatsappContact] = None) -> dict:
        out = row_to_dict(conv)
        contact = contact or self.contacts.get(conv.contact_id)
        out["contact"] = row_to_dict(contact) if contact else None
        return out

    def list_conversations(
        self,
        instance_id: Optional[str] = None,
        status: Optional[str] = None,
        assigned_to: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[dict]:
        convs = self.conversations.list(instance_id, status, assigned_to)
        contacts = self.contacts.get_many(c.contact_id for c in convs)
        out = [self.conversation_to_dict(c, contacts.get(c.contact_id)) for c in convs]
        if search:
            needle = search.lower()
            out = [
                c for c in out
                if (c["contact"] and needle in (c["contact"].get("name") or "").lower())
                or (c["contact"] and search in (c["contact"].get("phone") or ""))
                or needle in (c.get("last_message_preview") or "").lower()
            ]
        return out

    def group_by_contact(self, conversations: List[dict]) -> List[dict]:
        """Merge conversations of the same phone (one per instance) into one entry.

        The primary status is the status of the most recent conversation.
        """
        groups: dict = {}
        for conv in conversations:
            phone = (conv.get("contact") or {}).get("phone") or conv["contact_id"]
            groups.setdefault(phone, []).append(conv)
        out = []
        for phone, convs in groups.items():
            convs.sort(key=lambda c: _sort_key(c.get("last_message_at")), reverse=True)
            latest = convs[0]
            out.append({
                "contactPhone": phone,
                "contact": latest.get("contact"),
                "conversations": convs,
                "totalUnreadCount": sum(c.get("unread_count") or 0 for c in convs),
                "lastMessageAt": latest.get("last_message_at"),
                "lastMessagePreview": latest.get("last_message_preview"),
                "primaryStatus": latest.get("status"),
            })
        out.sort(key=lambda g: _sort_key(g["lastMessageAt"]), reverse=True)
        return out

    def messages_for(self, conversation_id: str, mark_read: bool = True) -> Optional[List[models.WhatsappMessage]]:
        conv = self.conversations.get(conversation_id)
        if not conv:
            return None
        if mark_read and conv.unread_count:
            self.conversations.update_fields(conv, {"unread_count": 0})
        return self.messages.list_for_conversation(conversation_id)

    def start_conversation(self, phone: str, name: Optional[str], instance_id: Optional[str]) -> models.WhatsappConversation:
        """Find or create the contact and its conversation on `instance_id`."""
        normalized = normalize_phone(phone)
        if len(normalized) < 12:
            raise ValueError("invalid phone number")
        if instance_id and not self.instances.get(instance_id):
            raise ValueError("instance not found")
        contact = self.contacts.get_by_phone(normalized)
        if not contact:
            contact = self.contacts.add(models.WhatsappContact(phone=normalized, name=name or None, is_lead=True))
        conv = self.conversations.find_for_contact(contact.id, instance_id)
        if conv:
            return conv
        return self.conversations.add(
            models.WhatsappConversation(contact_id=contact.id, instance_id=instance_id, status="novo")
        )

    def update_status(self, conversation_id: str, status: str, user: models.Profile) -> Optional[models.WhatsappConversation]:
        if status not in models.CONVERSATION_STATUSES:
            raise ValueError(f"invalid status: {status}")
        conv = self.conversations.get(conversation_id)
        if not conv:
            return None
        previous = conv.status
        self.conversations.update_fields(conv, {"status": status})
        self.audit.record(user, "alterou_status", "conversation", conv.id, {"from": previous, "to": status})
        return conv

    def send_reply(self, user: models.Profile, conversation_id: str, content: Optional[str], message_type: str = "text", media_url: Optional[str] = None, caption: Optional[str] = None) -> dict:
        """Store an outbound message and deliver it through the conversation's instance.

        The message is always stored; delivery failure marks it `failed`.
        """
        if not content and not media_url:
            raise ValueError("conversation_id and content or media_url are required")
        conv = self.conversations.get(conversation_id)
        if not conv:
            raise LookupError("Conversation not found")
        contact = self.contacts.get(conv.contact_id)
        phone = normalize_phone(contact.phone)
        instance = self.instances.get(conv.instance_id) if conv.instance_id else None
        sender = user.full_name or user.email

        message = self.messages.add(models.WhatsappMessage(
            conversation_id=conv.id,
            direction="outbound",
            message_type=message_type,
            content=content or caption or "",
            media_url=media_url,
            caption=caption,
            sender_name=sender,
            sent_by_user_id=user.id,
            status="pending",
        ))
        now = _now()
        self.conversations.update_fields(conv, {
            "status": "em_atendimento",
            "assigned_to": user.id,
            "assigned_at": now,
            "last_message_at": now,
            "last_message_preview": (content or caption or "")[:PREVIEW_LENGTH],
            "unread_count": 0,
        })

        error = self._deliver(instance, phone, content, message_type, media_url, caption)
        self.messages.update_fields(message, {"status": "failed" if error else "sent", "error_message": error})
        self.audit.record(user, "respondeu", "conversation", conv.id, {
            "message_id": message.id,
            "content_preview": (content or "")[:50],
            "success": error is None,
        })
        return {"success": error is None, "message_id": message.id, "error": error}

    def _deliver(self, instance, phone, content, message_type, media_url, caption) -> Optional[str]:
        if not instance or not instance.is_active:
            return "No active instance found"
        endpoint = EvolutionEndpoint.from_instance(instance)
        is_webhook = instance.api_type == "webhook" and instance.webhook_url
        if not is_webhook and not endpoint.is_complete():
            return "Evolution API credentials incomplete"
        try:
            with http_client(self.http) as http:
                if is_webhook:
                    send_webhook(instance, http, phone, content, media_url, message_type, caption)
                    return None
                client = EvolutionClient(endpoint, http)
                if message_type == "text" or not media_url:
                    client.send_text(phone, content or "")
                else:
                    client.send_media(phone, media_url, message_type, caption or content)
        except EvolutionError as exc:
            logger.warning("reply_delivery_failed instance=%s error=%s", instance.nome, exc)
            return str(exc)
        return None

    def receive_webhook(self, payload: dict) -> dict:
        """Store an inbound Evolution message, creating contact and conversation as needed."""
        event = payload.get("event") or payload.get("type")
        if event not in INBOUND_EVENTS:
            return {"success": True, "ignored": True}
        instance_name = payload.get("instance") or payload.get("instanceName")
        data = next((v for v in (payload.get("data"), payload.get("message")) if _present(v)), payload)
        if isinstance(data, list):
            message = data[0] if data else None
        else:
            message = data
        if not _present(message) or not isinstance(message, dict):
            return {"success": True, "empty": True}

        key = message.get("key") or {}
        jid = key.get("remoteJid") or message.get("from") or ""
        if key.get("fromMe"):
            return {"success": True, "fromMe": True}
        if "@g.us" in jid:
            return {"success": True, "group": True}
        phone = phone_from_jid(jid)
        if len(phone) < 10:
            return {"success": False, "error": "Invalid phone"}

        push_name = message.get("pushName") or message.get("name") or ""
        extracted = extract_message_content(message.get("message") or message)
        now = _now()

        contact = self.contacts.get_by_phone(phone)
        if not contact:
            is_lead = not self.pedidos.find_by_phone_fragments(search_variants(phone), limit=1)
            contact = self.contacts.add(models.WhatsappContact(
                phone=phone, name=push_name or None, is_lead=is_lead, last_message_at=now,
            ))
        else:
            self.contacts.update_fields(contact, {"name": push_name or contact.name, "last_message_at": now})

        instance = self.instances.get_by_evolution_name(instance_name) if instance_name else None
        instance_id = instance.id if instance else None
        preview = extracted["content"][:PREVIEW_LENGTH]
        conv = self.conversations.find_for_contact(contact.id, instance_id)
        if not conv:
            conv = self.conversations.add(models.WhatsappConversation(
                contact_id=contact.id, instance_id=instance_id, status="novo",
                unread_count=1, last_message_at=now, last_message_preview=preview,
            ))
        else:
            changes = {
                "unread_count": (conv.unread_count or 0) + 1,
                "last_message_at": now,
                "last_message_preview": preview,
            }
            if conv.status == "finalizado":
                changes.update({"status": "novo", "assigned_to": None, "assigned_at": None})
                logger.info("conversation_reopened id=%s", conv.id)
            self.conversations.update_fields(conv, changes)

        saved = self.messages.add(models.WhatsappMessage(
            conversation_id=conv.id,
            direction="inbound",
            message_type=extracted["type"],
            content=extracted["content"],
            caption=extracted.get("caption"),
            media_mime_type=extracted.get("mime_type"),
            sender_phone=phone,
            sender_name=push_name or None,
            external_id=key.get("id") or message.get("id"),
            status="delivered",
        ))
        return {"success": True, "contact_id": contact.id, "conversation_id": conv.id, "message_id": saved.id}


def _present(value) -> bool:
    """Empty dicts and lists count as present; Evolution sends `{}` for bodies without fields."""
    return isinstance(value, (dict, list)) or bool(value)


def extract_message_content(message: dict) -> dict:
    """Map an Evolution message body to `{content, type, caption?, mime_type?}`."""
    if message.get("conversation"):
        return {"content": message["conversation"], "type": "text"}
    extended = message.get("extendedTextMessage") or {}
    if extended.get("text"):
        return {"content": extended["text"], "type": "text"}
    media_kinds = (
        ("imageMessage", "image", "[Imagem]"),
        ("documentMessage", "document", "[Documento]"),
        ("audioMessage", "audio", "[Áudio]"),
        ("videoMessage", "video", "[Vídeo]"),
    )
    for field, kind, placeholder in media_kinds:
        if not _present(message.get(field)):
            continue
        body = message[field] if isinstance(message[field], dict) else {}
        if kind == "audio":
            content = placeholder
        elif kind == "document":
            content = body.get("fileName") or placeholder
        else:
            content = body.get("caption") or placeholder
        return {"content": content, "type": kind, "caption": body.get("caption"), "mime_type": body.get("mimetype")}
    if _present(message.get("stickerMessage")):
        return {"content": "[Sticker]", "type": "sticker"}
    return {"content": "[Mensagem não suportada]", "type": "text"}


class QuickReplyService:
    def __init__(self, session: Session):
        self.repo = repositories.QuickReplyRepository(session)

    def list(self, active_only: bool = False) -> List[models.WhatsappQuickReply]:
        return self.repo.list(active_only)

    def create(self, data: dict) -> models.WhatsappQuickReply:
        if not data.get("name") or not data.get("content"):
            raise ValueError("name and content are required")
        return self.repo.add(models.WhatsappQuickReply(**data))

    def update(self, reply_id: str, data: dict) -> Optional[models.WhatsappQuickReply]:
        reply = self.repo.get(reply_id)
        if not reply:
            return None
        return self.repo.update_fields(reply, data)

    def delete(self, reply_id: str) -> bool:
        reply = self.repo.get(reply_id)
        if not reply:
            return False
        self.repo.delete(reply)
        return True


class NoteService:
    def __init__(self, session: Session):
        self.repo = repositories.NoteRepository(session)

    def list(self, conversation_id: Optional[str] = None, contact_id: Optional[str] = None) -> List[models.WhatsappInternalNote]:
        return self.repo.list(conversation_id, contact_id)

    def create(self, user: models.Profile, data: dict) -> models.WhatsappInternalNote:
        if not (data.get("content") or "").strip():
            raise ValueError("content is required")
        if not any(data.get(k) for k in ("conversation_id", "contact_id", "pedido_id")):
            raise ValueError("a note must reference a conversation, contact or pedido")
        return self.repo.add(models.WhatsappInternalNote(user_id=user.id, **data))

    def delete(self, note_id: str, user: models.Profile, is_admin: bool = False) -> bool:
        note = self.repo.get(note_id)
        if not note:
            return False
        if note.user_id != user.id and not is_admin:
            raise PermissionError("only the author can delete this note")
        self.repo.delete(note)
        return True
