import unittest

from helpers import RecordingSender
from services.connection_registry import ConnectionRegistry


class TestConnectionRegistry(unittest.TestCase):
    def setUp(self):
        self.sender = RecordingSender()
        self.registry = ConnectionRegistry(self.sender)

    def test_user_can_hold_several_connections(self):
        self.registry.register("u1", "tab-1")
        self.registry.register("u1", "tab-2")

        delivered = self.registry.send_to_user("u1", {"type": "new_message"})

        self.assertEqual(delivered, 2)
        self.assertEqual(self.registry.lookup("u1"), {"tab-1", "tab-2"})
        self.assertEqual(len(self.sender.received("tab-1", "new_message")), 1)
        self.assertEqual(len(self.sender.received("tab-2", "new_message")), 1)

    def test_offline_user_gets_nothing(self):
        self.assertEqual(self.registry.send_to_user("ghost", {"type": "new_message"}), 0)
        self.assertFalse(self.registry.is_online("ghost"))
        self.assertEqual(self.sender.sent, [])

    def test_unregister_removes_handle_from_every_channel(self):
        self.registry.register("u1", "h1")
        self.registry.register_moderator("m1", "h1")
        self.registry.register("u1", "h2")

        self.assertTrue(self.registry.unregister("h1"))

        self.assertEqual(self.registry.lookup("u1"), {"h2"})
        self.assertEqual(self.registry.lookup_moderator("m1"), set())
        self.assertEqual(self.registry.moderator_handles(), set())
        self.assertFalse(self.registry.unregister("h1"))

    def test_failed_write_unregisters_the_handle(self):
        self.registry.register("u1", "dead")
        self.registry.register("u1", "alive")
        self.sender.broken.add("dead")

        delivered = self.registry.send_to_user("u1", {"type": "new_message"})

        self.assertEqual(delivered, 1)
        self.assertEqual(self.registry.lookup("u1"), {"alive"})

    def test_broadcast_reaches_only_moderators(self):
        self.registry.register("u1", "user-handle")
        self.registry.register_moderator("m1", "mod-a")
        self.registry.register_moderator("m2", "mod-b")

        delivered = self.registry.broadcast_to_moderators({"type": "new_support_chat"})

        self.assertEqual(delivered, 2)
        self.assertEqual(self.sender.received("user-handle"), [])
        self.assertEqual(len(self.sender.received("mod-a", "new_support_chat")), 1)
        self.assertEqual(len(self.sender.received("mod-b", "new_support_chat")), 1)

    def test_moderator_identities_are_separate_from_users(self):
        self.registry.register_moderator("same-id", "mod-handle")

        self.assertFalse(self.registry.is_online("same-id"))
        self.assertEqual(self.registry.send_to_moderator("same-id", {"type": "x"}), 1)


if __name__ == "__main__":
    unittest.main()
