"""Real-time infrastructure — in-process broadcast hub + SSE streams.

Learn: Events flow through two hops:
1. Route handlers → BroadcastHub.publish (server-side fan-out)
2. Subscriber queue → /events SSE response → client SyncEngine

This decouples event producers (item/preferences routes) from consumers
(connected browsers and CLI watchers).
"""
