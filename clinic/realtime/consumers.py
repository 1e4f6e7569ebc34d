import json
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer

from clinic.authentication import user_for_credential
from clinic.services.cache import UPDATES_GROUP


class UpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes cache refresh events so open clients reload stale lists.

    Browsers cannot set headers on a websocket, so the session token (or
    API key) travels as ``?token=``.  Unauthenticated sockets are closed,
    and the credential is checked again before each event so a revoked
    key or deactivated user stops receiving updates.
    """

    token = ''

    async def connect(self):
        query = parse_qs(self.scope.get('query_string', b'').decode())
        self.token = (query.get('token') or [''])[0]
        user = await database_sync_to_async(user_for_credential)(self.token)
        if user is None:
            await self.close(code=4401)
            return
        self.scope['user'] = user
        await self.channel_layer.group_add(UPDATES_GROUP, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "message": "connected"}))

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(UPDATES_GROUP, self.channel_name)

    async def broadcast_refresh(self, event):
        # event: {"type": "broadcast.refresh", "version": int, "ts": "...", "keys": [...]}
        user = await database_sync_to_async(user_for_credential)(self.token)
        if user is None:
            await self.channel_layer.group_discard(UPDATES_GROUP, self.channel_name)
            await self.close(code=4401)
            return
        await self.send(json.dumps(event))
