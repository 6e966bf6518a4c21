"""
infrastructure - Concrete implementations of domain ports.

Contains all vendor-specific code: Redis Stack, LangChain, transformers,
the Jetstream websocket and the Bluesky XRPC API.
Depends on domain/ only (implements ports). Never imported by application/.
"""
