"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file by default) and provides
small helpers used by the application and tests.
"""

from sqlmodel import SQLModel, Session, create_engine, select

from . import models
from .config import settings

ADMIN_PROFILE_CODE = "admin"

# (code, name, category)
PERMISSION_CATALOGUE = [
    ("pedidos.visualizar", "Visualizar pedidos", "Pedidos"),
    ("pedidos.criar", "Criar e importar pedidos", "Pedidos"),
    ("pedidos.editar", "Editar pedidos", "Pedidos"),
    ("pedidos.excluir", "Excluir pedidos", "Pedidos"),
    ("mockups.gerenciar", "Gerenciar mockups", "Mockups"),
    ("mockups.gerar", "Gerar mockups", "Mockups"),
    ("templates.gerenciar", "Gerenciar templates de áreas", "Mockups"),
    ("atendimento.acessar", "Acessar atendimento", "WhatsApp"),
    ("respostas_rapidas.gerenciar", "Gerenciar respostas rápidas", "WhatsApp"),
    ("whatsapp.configurar", "Configurar instâncias WhatsApp", "WhatsApp"),
    ("whatsapp.enviar", "Enviar mensagens WhatsApp", "WhatsApp"),
    ("usuarios.gerenciar", "Gerenciar usuários", "Administração"),
    ("perfis.gerenciar", "Gerenciar perfis de acesso", "Administração"),
    ("drive.configurar", "Configurar Google Drive", "Administração"),
    ("storage.limpar", "Limpar arquivos órfãos", "Administração"),
]


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args(settings.DATABASE_URL))


def create_db_and_tables():
    """Create database tables and seed the access-control catalogue.

    This function is intended for local development and lightweight
    deployments; the seeding is idempotent so it is safe to run on
    every start.
    """
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        seed_access_control(session)


def seed_access_control(session: Session) -> None:
    """Insert missing permissions and the system `admin` access profile."""
    existing = set(session.exec(select(models.Permission.code)).all())
    for code, name, category in PERMISSION_CATALOGUE:
        if code not in existing:
            session.add(models.Permission(code=code, name=name, category=category))
    admin = session.exec(
        select(models.AccessProfile).where(models.AccessProfile.code == ADMIN_PROFILE_CODE)
    ).first()
    if not admin:
        session.add(
            models.AccessProfile(
                code=ADMIN_PROFILE_CODE,
                name="Administrador",
                description="Acesso total ao sistema",
                is_system=True,
            )
        )
    session.commit()


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes. Objects stay loaded after commit so
    services can serialise them once their link rows are written.
    """
    with Session(engine, expire_on_commit=False) as session:
        yield session
