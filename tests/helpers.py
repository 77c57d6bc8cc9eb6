import os
import shutil
import tempfile
import unittest
import uuid

from app import create_app
from config import TestingConfig
from extensions import db
from models.user import User
from models.professional import Professional
from models.moderator import Moderator
from services.auth_service import user_token, moderator_token


class RecordingSender:
    """Remplace l'émission Socket.IO : garde chaque (handle, enveloppe) écrite."""

    def __init__(self):
        self.sent = []
        self.broken = set()

    def __call__(self, handle, envelope):
        if handle in self.broken:
            raise ConnectionError(f"connexion {handle} rompue")
        self.sent.append((handle, envelope))

    def received(self, handle, event_type=None):
        return [env for h, env in self.sent
                if h == handle and (event_type is None or env["type"] == event_type)]


class ChatTestCase(unittest.TestCase):
    # Base SQLite sur disque, partagée entre threads, au lieu de la base en mémoire
    file_database = False

    def setUp(self):
        self.archive_dir = tempfile.mkdtemp()
        overrides = {"ARCHIVE_DIR": self.archive_dir}
        if self.file_database:
            overrides["SQLALCHEMY_DATABASE_URI"] = "sqlite:///" + os.path.join(self.archive_dir, "chat.db")
            overrides["SQLALCHEMY_ENGINE_OPTIONS"] = {"connect_args": {"check_same_thread": False, "timeout": 15}}
        config = type("ArchiveTestingConfig", (TestingConfig,), overrides)
        self.app = create_app(config)
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.services = self.app.extensions["chat_services"]
        self.client = self.app.test_client()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
        self.ctx.pop()
        shutil.rmtree(self.archive_dir, ignore_errors=True)

    # -- fabriques ------------------------------------------------------

    def make_client(self, first_name="Awa", last_name="Diallo", is_admin=False, push_notifications=True):
        user = User(
            email=f"{uuid.uuid4().hex[:10]}@example.com",
            first_name=first_name,
            last_name=last_name,
            role="client",
            is_admin=is_admin,
            push_notifications=push_notifications,
        )
        user.set_password("secret123")
        db.session.add(user)
        db.session.commit()
        return user

    def make_admin(self):
        return self.make_client(first_name="Admin", last_name="Plateforme", is_admin=True)

    def make_professional(self, business_name="Plomberie Ndiaye"):
        user = User(
            email=f"{uuid.uuid4().hex[:10]}@example.com",
            first_name="Moussa",
            last_name="Ndiaye",
            role="professional",
        )
        user.set_password("secret123")
        db.session.add(user)
        db.session.flush()
        professional = Professional(user_id=user.id, business_name=business_name)
        db.session.add(professional)
        db.session.commit()
        return user, professional

    def make_moderator(self, handle=None, name="Modérateur", is_active=True):
        moderator = Moderator(
            moderator_id=handle or f"mod-{uuid.uuid4().hex[:6]}",
            name=name,
            is_active=is_active,
        )
        moderator.set_password("modpass123")
        db.session.add(moderator)
        db.session.commit()
        return moderator

    # -- jetons ---------------------------------------------------------

    def user_headers(self, user):
        return {"Authorization": f"Bearer {user_token(user)}"}

    def moderator_headers(self, moderator):
        return {"Authorization": f"Bearer {moderator_token(moderator)}"}
