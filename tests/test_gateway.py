import tempfile
import unittest
from pathlib import Path

from aiohttp.test_utils import TestClient, TestServer

from gateway_ws import make_app

ROOM = "lobby@muc.example.org"


class GatewayTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        app = make_app(str(Path(self._tmp.name) / "gateway.sqlite"))
        server = TestServer(app)
        await server.start_server()
        self.client = TestClient(server)
        await self.client.start_server()

    async def asyncTearDown(self):
        await self.client.close()
        self._tmp.cleanup()

    async def _login(self, jid: str, password: str = "pw"):
        ws = await self.client.ws_connect("/v1/ws")
        await ws.send_json({"type": "login", "jid": jid, "password": password})
        connection = await ws.receive_json()
        return ws, connection

    async def test_health(self):
        resp = await self.client.get("/v1/health")
        self.assertEqual(resp.status, 200)
        body = await resp.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["sessions"], 0)

    async def test_login_adds_default_resource_and_sends_roster(self):
        ws, connection = await self._login("alice@example.org")
        self.assertEqual(connection["type"], "connection")
        self.assertEqual(connection["status"], "connected")
        self.assertEqual(connection["jid"], "alice@example.org/jabterm")

        roster = await ws.receive_json()
        self.assertEqual(roster, {"type": "roster", "items": [], "push": False})
        await ws.close()

    async def test_wrong_password_fails(self):
        ws, _ = await self._login("alice@example.org/laptop", "secret")
        await ws.close()

        ws, connection = await self._login("alice@example.org/laptop", "guess")
        self.assertEqual(connection["status"], "failed")
        self.assertEqual(connection["message"], "Not authorized")
        await ws.close()

    async def test_first_frame_must_be_login(self):
        ws = await self.client.ws_connect("/v1/ws")
        await ws.send_json({"type": "message", "jid": "bob@example.org", "body": "hi"})
        connection = await ws.receive_json()
        self.assertEqual(connection["status"], "failed")
        self.assertEqual(connection["message"], "Bad login")
        await ws.close()

    async def test_message_between_sessions(self):
        alice, _ = await self._login("alice@example.org/laptop")
        await alice.receive_json()
        bob, _ = await self._login("bob@example.org/phone")
        await bob.receive_json()

        await alice.send_json({"type": "message", "jid": "bob@example.org", "id": "m1",
                               "body": "hello", "receipt_request": True})
        msg = await bob.receive_json()
        self.assertEqual(msg["type"], "message")
        self.assertEqual(msg["jid"], "alice@example.org/laptop")
        self.assertEqual(msg["body"], "hello")
        self.assertTrue(msg["receipt_request"])
        self.assertNotIn("delay", msg)
        await alice.close()
        await bob.close()

    async def test_offline_message_delivered_on_login(self):
        alice, _ = await self._login("alice@example.org/laptop")
        await alice.receive_json()
        await alice.send_json({"type": "message", "jid": "bob@example.org", "body": "later"})
        # round trip so the message is stored before bob connects
        await alice.send_json({"type": "nonsense"})
        err = await alice.receive_json()
        self.assertEqual(err["type"], "error")

        bob, _ = await self._login("bob@example.org/phone")
        roster = await bob.receive_json()
        self.assertEqual(roster["type"], "roster")
        msg = await bob.receive_json()
        self.assertEqual(msg["body"], "later")
        self.assertIn("delay", msg)
        await alice.close()
        await bob.close()

    async def test_room_create_and_join(self):
        alice, _ = await self._login("alice@example.org/laptop")
        await alice.receive_json()
        await alice.send_json({"type": "join_room", "room": ROOM, "nick": "alice"})
        me = await alice.receive_json()
        self.assertEqual(me["type"], "room_self_presence")
        self.assertEqual(me["affiliation"], "owner")
        self.assertEqual(me["role"], "moderator")
        self.assertTrue(me["config_required"])

        bob, _ = await self._login("bob@example.org/phone")
        await bob.receive_json()
        await bob.send_json({"type": "join_room", "room": ROOM, "nick": "bob"})
        err = await bob.receive_json()
        self.assertEqual(err["type"], "room_error")
        self.assertEqual(err["message"], "This room is locked")

        await alice.send_json({"type": "room_accept_defaults", "room": ROOM})
        await alice.send_json({"type": "room_message", "room": ROOM, "body": "welcome"})
        echo = await alice.receive_json()
        self.assertEqual((echo["type"], echo["nick"], echo["body"]), ("room_message", "alice", "welcome"))

        await bob.send_json({"type": "join_room", "room": ROOM, "nick": "bob"})
        occupant = await bob.receive_json()
        self.assertEqual((occupant["type"], occupant["nick"]), ("room_occupant_presence", "alice"))
        me = await bob.receive_json()
        self.assertEqual(me["type"], "room_self_presence")
        self.assertEqual((me["role"], me["affiliation"]), ("participant", "none"))
        self.assertFalse(me["config_required"])
        history = await bob.receive_json()
        self.assertEqual(history["body"], "welcome")
        self.assertIn("delay", history)

        joined = await alice.receive_json()
        self.assertEqual((joined["type"], joined["nick"]), ("room_occupant_presence", "bob"))
        await alice.close()
        await bob.close()

    async def test_nick_conflict(self):
        alice, _ = await self._login("alice@example.org/laptop")
        await alice.receive_json()
        await alice.send_json({"type": "join_room", "room": ROOM, "nick": "alice"})
        await alice.receive_json()
        await alice.send_json({"type": "room_accept_defaults", "room": ROOM})

        bob, _ = await self._login("bob@example.org/phone")
        await bob.receive_json()
        # accept_defaults has no reply; wait on an error round trip first
        await alice.send_json({"type": "nonsense"})
        await alice.receive_json()
        await bob.send_json({"type": "join_room", "room": ROOM, "nick": "alice"})
        err = await bob.receive_json()
        self.assertEqual(err["message"], "Nickname conflict")
        await alice.close()
        await bob.close()

    async def test_roster_set_and_remove(self):
        alice, _ = await self._login("alice@example.org/laptop")
        await alice.receive_json()
        await alice.send_json({"type": "roster_set", "jid": "bob@example.org", "name": "Bob"})
        push = await alice.receive_json()
        self.assertEqual(push["type"], "roster")
        self.assertTrue(push["push"])
        self.assertEqual(push["items"][0]["jid"], "bob@example.org")
        self.assertEqual(push["items"][0]["name"], "Bob")
        self.assertEqual(push["items"][0]["subscription"], "none")

        await alice.send_json({"type": "roster_remove", "jid": "bob@example.org"})
        push = await alice.receive_json()
        self.assertEqual(push["items"][0]["subscription"], "remove")

        await alice.send_json({"type": "roster_remove", "jid": "bob@example.org"})
        err = await alice.receive_json()
        self.assertEqual((err["type"], err["message"]), ("error", "Item not found"))
        await alice.close()

    async def test_room_listing_skips_locked_rooms(self):
        alice, _ = await self._login("alice@example.org/laptop")
        await alice.receive_json()
        await alice.send_json({"type": "join_room", "room": ROOM, "nick": "alice"})
        await alice.receive_json()
        await alice.send_json({"type": "room_list_request", "service": "muc.example.org"})
        listing = await alice.receive_json()
        self.assertEqual(listing, {"type": "rooms", "service": "muc.example.org", "items": []})

        await alice.send_json({"type": "room_accept_defaults", "room": ROOM})
        await alice.send_json({"type": "room_list_request", "service": "muc.example.org"})
        listing = await alice.receive_json()
        self.assertEqual(listing["items"], [{"jid": ROOM, "name": ""}])
        await alice.close()
