"""Brazilian phone number helpers and message template substitution."""

import re
from datetime import date, datetime
from typing import List, Optional

_NON_DIGIT = re.compile(r"\D")
_PHONE_RE = re.compile(r"^(55)?\d{10,11}$")


def digits_only(value: Optional[str]) -> str:
    return _NON_DIGIT.sub("", value or "")


def validate_phone(phone: Optional[str]) -> bool:
    """Accept `DDD + number` with or without the `55` country code."""
    if not phone:
        return False
    return bool(_PHONE_RE.match(digits_only(phone)))


def normalize_phone(phone: Optional[str]) -> str:
    """Return the phone as digits with the `55` country code.

    Numbers longer than 13 digits are usually internal WhatsApp ids; we
    try to recover a real number from them before normalising.
    """
    if not phone:
        return ""
    clean = digits_only(phone)
    if len(clean) > 13:
        if clean.startswith("55"):
            clean = clean[:13]
        else:
            last13 = clean[-13:]
            clean = last13 if last13.startswith("55") else f"55{clean[-11:]}"
    if len(clean) in (10, 11):
        return f"55{clean}"
    return clean


def phone_from_jid(jid: Optional[str]) -> str:
    """Extract and normalise the phone part of a `5511...@s.whatsapp.net` JID."""
    if not jid:
        return ""
    return normalize_phone(jid.split("@", 1)[0].split(":", 1)[0])


def format_phone(phone: Optional[str]) -> str:
    """Format for display: `+55 (46) 99999-9999`."""
    if not phone:
        return ""
    n = normalize_phone(phone)
    if len(n) == 13:
        return f"+{n[:2]} ({n[2:4]}) {n[4:9]}-{n[9:]}"
    if len(n) == 12:
        return f"+{n[:2]} ({n[2:4]}) {n[4:8]}-{n[8:]}"
    if len(n) >= 8:
        last8 = n[-8:]
        return f"***-{last8[:4]}-{last8[4:]}"
    return phone


def search_variants(phone: Optional[str]) -> List[str]:
    """Digit strings used to look up pedidos by phone.

    Stored pedido phones may or may not carry the country code, so the
    number without a leading `55` is searched as well.
    """
    clean = digits_only(phone)
    if not clean:
        return []
    variants = [clean]
    if clean.startswith("55") and len(clean) > 11:
        variants.append(clean[2:])
    return variants


def format_date_br(value) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime("%d/%m/%Y")


def replace_variables(template: Optional[str], pedido) -> Optional[str]:
    """Fill `{numero_pedido}`-style placeholders from a pedido object."""
    if not template or pedido is None:
        return template
    fotos = getattr(pedido, "foto_aprovacao", None) or []
    values = {
        "{numero_pedido}": getattr(pedido, "numero_pedido", None) or "",
        "{nome_cliente}": getattr(pedido, "nome_cliente", None) or "",
        "{codigo_produto}": getattr(pedido, "codigo_produto", None) or "",
        "{data_pedido}": format_date_br(getattr(pedido, "data_pedido", None)),
        "{observacao}": getattr(pedido, "observacao", None) or "",
        "{foto_aprovacao}": fotos[0] if fotos else "[Sem foto]",
    }
    out = template
    for key, value in values.items():
        out = out.replace(key, value)
    return out
