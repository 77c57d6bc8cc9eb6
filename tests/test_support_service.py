import os
import threading
import unittest
from unittest import mock

from helpers import ChatTestCase
from errors import ValidationError, AuthorizationError, ConflictError
from extensions import db
from models.support_chat import SupportChat


class TestSupportService(ChatTestCase):
    def setUp(self):
        super().setUp()
        self.support = self.services.support
        self.requester = self.make_client()
        self.admin = self.make_admin()
        self.moderator = self.make_moderator(name="Fatou")
        self.other_moderator = self.make_moderator(name="Ibrahima")

    def _open(self, subject="Paiement bloqué"):
        chat, _ = self.support.open(self.requester.id, subject)
        return chat

    def test_open_posts_waiting_message(self):
        chat, created = self.support.open(self.requester.id, "Paiement bloqué", "high")

        self.assertTrue(created)
        self.assertEqual(chat.status, "open")
        self.assertEqual(chat.priority, "high")
        messages = self.support.list_messages(chat.id)
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].sender_type, "system")
        self.assertEqual(messages[0].message_type, "system_info")

    def test_open_returns_existing_active_chat(self):
        first, _ = self.support.open(self.requester.id, "Premier sujet")
        second, created = self.support.open(self.requester.id, "Autre sujet")

        self.assertFalse(created)
        self.assertEqual(first.id, second.id)
        self.assertEqual(SupportChat.query.filter_by(user_id=self.requester.id).count(), 1)

    def test_open_rejects_unknown_priority(self):
        with self.assertRaises(ValidationError):
            self.support.open(self.requester.id, "x", "urgent")

    def test_full_escalation_scenario(self):
        chat = self._open()

        chat, joined = self.support.assign(chat.id, self.moderator.id)
        self.assertEqual(chat.status, "assigned")
        self.assertEqual(chat.moderator_id, self.moderator.id)
        self.assertIn("Fatou", joined.content)

        self.support.send_message(chat.id, self.requester.id, "user", "Mon paiement est bloqué")
        self.support.send_message(chat.id, self.moderator.id, "moderator", "Je regarde")

        chat, warning = self.support.escalate(chat.id, self.moderator.id, "Remboursement nécessaire")
        self.assertEqual(chat.status, "escalated")
        self.assertTrue(chat.admin_intervened)
        self.assertTrue(chat.is_admin_visible)
        self.assertEqual(chat.escalation_reason, "Remboursement nécessaire")
        self.assertEqual(warning.message_type, "system_warning")

        chat, _ = self.support.intervene(chat.id, self.admin.id)
        self.assertEqual(chat.admin_intervention_id, self.admin.id)
        self.support.send_message(chat.id, self.admin.id, "admin", "Remboursement effectué")

        chat, closing = self.support.close(chat.id, self.admin.id, "admin")
        self.assertEqual(chat.status, "closed")
        self.assertIsNotNone(chat.closed_at)
        self.assertIn("administrateur", closing.content)

        senders = [m.sender_type for m in self.support.list_messages(chat.id)]
        self.assertEqual(senders, ["system", "system", "user", "moderator", "system",
                                   "system", "admin", "system"])

    def test_sequential_assign_conflicts(self):
        chat = self._open()
        self.support.assign(chat.id, self.moderator.id)

        with self.assertRaises(ConflictError):
            self.support.assign(chat.id, self.other_moderator.id)
        self.assertEqual(self.support.get_chat(chat.id).moderator_id, self.moderator.id)

    def test_racing_open_keeps_one_active_chat(self):
        first = self._open()

        # Le second appel n'a pas vu le premier chat avant d'insérer le sien
        with mock.patch.object(self.support, "active_chat_for_user", side_effect=[None, first]):
            chat, created = self.support.open(self.requester.id, "Double clic")

        self.assertFalse(created)
        self.assertEqual(chat.id, first.id)
        active = SupportChat.query.filter(SupportChat.user_id == self.requester.id,
                                          SupportChat.status != "closed").count()
        self.assertEqual(active, 1)
        self.assertEqual(len(self.support.list_messages(first.id)), 1)

    def test_inactive_moderator_cannot_assign(self):
        chat = self._open()
        sleeper = self.make_moderator(is_active=False)

        with self.assertRaises(AuthorizationError):
            self.support.assign(chat.id, sleeper.id)

    def test_only_assigned_moderator_escalates(self):
        chat = self._open()
        with self.assertRaises(ConflictError):
            self.support.escalate(chat.id, self.moderator.id)

        self.support.assign(chat.id, self.moderator.id)
        with self.assertRaises(AuthorizationError):
            self.support.escalate(chat.id, self.other_moderator.id)

        chat, _ = self.support.escalate(chat.id, self.moderator.id)
        self.assertEqual(chat.escalation_reason, "Escaladé par le modérateur")

    def test_no_backward_transitions(self):
        chat = self._open()
        self.support.assign(chat.id, self.moderator.id)
        self.support.escalate(chat.id, self.moderator.id)

        with self.assertRaises(ConflictError):
            self.support.assign(chat.id, self.other_moderator.id)

        self.support.close(chat.id, self.admin.id, "admin")
        with self.assertRaises(ConflictError):
            self.support.escalate(chat.id, self.moderator.id)
        with self.assertRaises(ConflictError):
            self.support.close(chat.id, self.admin.id, "admin")
        with self.assertRaises(ConflictError):
            self.support.intervene(chat.id, self.admin.id)

    def test_moderator_cannot_close_escalated_chat(self):
        chat = self._open()
        self.support.assign(chat.id, self.moderator.id)
        self.support.escalate(chat.id, self.moderator.id)

        with self.assertRaises(AuthorizationError):
            self.support.close(chat.id, self.moderator.id, "moderator")

    def test_only_requester_closes_as_user(self):
        chat = self._open()
        stranger = self.make_client()

        with self.assertRaises(AuthorizationError):
            self.support.close(chat.id, stranger.id, "user")
        chat, _ = self.support.close(chat.id, self.requester.id, "user")
        self.assertEqual(chat.status, "closed")

    def test_closed_chat_rejects_messages_and_allows_new_open(self):
        chat = self._open()
        self.support.close(chat.id, self.requester.id, "user")

        with self.assertRaises(ConflictError):
            self.support.send_message(chat.id, self.requester.id, "user", "encore là ?")

        fresh, created = self.support.open(self.requester.id, "Nouveau problème")
        self.assertTrue(created)
        self.assertNotEqual(fresh.id, chat.id)

    def test_admin_must_intervene_before_writing(self):
        chat = self._open()

        with self.assertRaises(AuthorizationError):
            self.support.send_message(chat.id, self.admin.id, "admin", "Bonjour")

        self.support.intervene(chat.id, self.admin.id)
        message = self.support.send_message(chat.id, self.admin.id, "admin", "Bonjour")
        self.assertEqual(message.sender_type, "admin")

    def test_unassigned_moderator_cannot_write(self):
        chat = self._open()
        self.support.assign(chat.id, self.moderator.id)

        with self.assertRaises(AuthorizationError):
            self.support.send_message(chat.id, self.other_moderator.id, "moderator", "Je prends la main")

    def test_archive_writes_log_and_closes(self):
        chat = self._open()
        self.support.assign(chat.id, self.moderator.id)
        self.support.send_message(chat.id, self.requester.id, "user", "Merci")

        chat, closing = self.support.archive_and_close(chat.id, self.moderator.id, "moderator")

        self.assertEqual(chat.status, "closed")
        self.assertTrue(chat.is_archived)
        self.assertIsNotNone(closing)
        self.assertTrue(os.path.exists(chat.archive_path))
        self.assertTrue(chat.archive_path.startswith(self.archive_dir))
        log = self.services.archive.read(chat.archive_path)
        self.assertEqual(log["chat_id"], chat.id)
        self.assertEqual(log["messages"][-1]["sender_type"], "system")
        self.assertIn("Merci", [m["content"] for m in log["messages"]])

        with self.assertRaises(ConflictError):
            self.support.archive_and_close(chat.id, self.moderator.id, "moderator")

    def test_archive_failure_leaves_chat_closed(self):
        chat = self._open()

        with mock.patch.object(self.services.archive, "write", side_effect=OSError("disque plein")):
            chat, _ = self.support.archive_and_close(chat.id, self.admin.id, "admin")

        self.assertEqual(chat.status, "closed")
        self.assertFalse(chat.is_archived)
        self.assertIsNone(chat.archive_path)

    def test_users_cannot_archive(self):
        chat = self._open()

        with self.assertRaises(AuthorizationError):
            self.support.archive_and_close(chat.id, self.requester.id, "user")

    def test_can_view(self):
        chat = self._open()
        stranger = self.make_client()

        self.assertTrue(self.support.can_view(chat, "user", self.requester.id))
        self.assertTrue(self.support.can_view(chat, "user", self.admin.id))
        self.assertTrue(self.support.can_view(chat, "moderator", self.moderator.id))
        self.assertFalse(self.support.can_view(chat, "user", stranger.id))


class TestConcurrentTransitions(ChatTestCase):
    file_database = True

    def test_concurrent_assign_has_one_winner(self):
        requester = self.make_client()
        moderator_ids = [self.make_moderator(name=name).id for name in ("Fatou", "Ibrahima")]
        chat, _ = self.services.support.open(requester.id, "Paiement bloqué")
        chat_id = chat.id
        db.session.close()

        barrier = threading.Barrier(len(moderator_ids))
        winners, conflicts = [], []

        def assign(moderator_id):
            with self.app.app_context():
                barrier.wait()
                try:
                    self.services.support.assign(chat_id, moderator_id)
                    winners.append(moderator_id)
                except ConflictError:
                    conflicts.append(moderator_id)

        threads = [threading.Thread(target=assign, args=(moderator_id,)) for moderator_id in moderator_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(len(winners), 1)
        self.assertEqual(len(conflicts), 1)
        stored = db.session.get(SupportChat, chat_id)
        self.assertEqual(stored.status, "assigned")
        self.assertEqual(stored.moderator_id, winners[0])
        joined = [m for m in self.services.support.list_messages(chat_id) if m.sender_type == "system"]
        self.assertEqual(len(joined), 2)


if __name__ == "__main__":
    unittest.main()
