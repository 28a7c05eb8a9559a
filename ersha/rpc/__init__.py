"""Framed, multiplexed asyncio RPC between dispatchers and the central service."""