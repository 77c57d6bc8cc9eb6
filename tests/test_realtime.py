import unittest

from helpers import ChatTestCase
from extensions import socketio, CHAT_NAMESPACE
from services.auth_service import user_token, moderator_token


class TestRealtime(ChatTestCase):
    def setUp(self):
        super().setUp()
        self.buyer = self.make_client()
        self.pro_user, self.pro = self.make_professional()
        self.conversation, _ = self.services.conversations.get_or_create(self.buyer.id, self.pro.id)

    def _connect(self, token):
        return socketio.test_client(self.app, namespace=CHAT_NAMESPACE, auth={"token": token})

    def _send(self, client, envelope):
        return client.emit("message", envelope, namespace=CHAT_NAMESPACE, callback=True)

    def _events(self, client, name):
        return [event["args"][0] for event in client.get_received(CHAT_NAMESPACE) if event["name"] == name]

    def test_connect_with_token(self):
        client = self._connect(user_token(self.buyer))
        self.assertTrue(client.is_connected(CHAT_NAMESPACE))

        ack = self._send(client, {"type": "join", "userId": self.buyer.id})

        self.assertEqual(ack["type"], "ack")
        self.assertTrue(self.app.extensions["chat_registry"].is_online(self.buyer.id))

        client.disconnect(namespace=CHAT_NAMESPACE)
        self.assertFalse(self.app.extensions["chat_registry"].is_online(self.buyer.id))

    def test_messages_are_pushed_and_listed_in_order(self):
        buyer_client = self._connect(user_token(self.buyer))
        pro_client = self._connect(user_token(self.pro_user))
        self._send(buyer_client, {"type": "join", "userId": self.buyer.id})
        self._send(pro_client, {"type": "join", "userId": self.pro_user.id})

        for content in ("Bonjour", "Vous faites les devis ?", "Merci"):
            ack = self._send(buyer_client, {
                "type": "chat_message",
                "conversationId": self.conversation.id,
                "senderId": self.buyer.id,
                "content": content,
            })
            self.assertEqual(ack["type"], "ack")

        pushed = self._events(pro_client, "new_message")
        self.assertEqual([e["message"]["content"] for e in pushed], ["Bonjour", "Vous faites les devis ?", "Merci"])
        self.assertEqual(len(self._events(buyer_client, "message_sent")), 3)

        listed = self.client.get(f"/conversations/{self.conversation.id}/messages",
                                 headers=self.user_headers(self.pro_user)).get_json()
        self.assertEqual([m["id"] for m in listed], [e["message"]["id"] for e in pushed])

    def test_rest_send_is_pushed_to_connected_recipient(self):
        pro_client = self._connect(user_token(self.pro_user))
        self._send(pro_client, {"type": "join", "userId": self.pro_user.id})

        response = self.client.post(f"/conversations/{self.conversation.id}/messages",
                                    json={"content": "Envoyé par REST"}, headers=self.user_headers(self.buyer))

        self.assertEqual(response.status_code, 201)
        pushed = self._events(pro_client, "new_message")
        self.assertEqual(pushed[0]["message"]["id"], response.get_json()["id"])

    def test_unknown_type_returns_error(self):
        client = self._connect(user_token(self.buyer))

        ack = self._send(client, {"type": "typing", "conversationId": self.conversation.id})

        self.assertEqual(ack["type"], "error")
        self.assertEqual(ack["error"], "validation_error")
        self.assertEqual(self._events(client, "error"), [])

    def test_moderators_hear_about_new_support_chats(self):
        moderator = self.make_moderator()
        mod_client = self._connect(moderator_token(moderator))
        ack = self._send(mod_client, {"type": "moderator_join", "moderatorId": moderator.id})
        self.assertEqual(ack["type"], "ack")

        response = self.client.post("/support/chat", json={"subject": "Aide"}, headers=self.user_headers(self.buyer))

        announced = self._events(mod_client, "new_support_chat")
        self.assertEqual(announced[0]["chat"]["id"], response.get_json()["id"])

    def test_user_token_cannot_join_as_moderator(self):
        moderator = self.make_moderator()
        client = self._connect(user_token(self.buyer))

        ack = self._send(client, {"type": "moderator_join", "moderatorId": moderator.id})

        self.assertEqual(ack["status"], 403)


if __name__ == "__main__":
    unittest.main()
