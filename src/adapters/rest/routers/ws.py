"""WebSocket endpoint for asking the bot interactively."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from domain.exceptions import DomainError
from adapters.rest.dependencies import get_factory

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws/ask")
async def websocket_ask(ws: WebSocket):
    """
    Conversational access to the bot.

    Protocol:
      - Client sends: plain text question
      - Server sends: {"answer": str, "routes": [str], "cached": bool}
      - On a failed answer: {"error": str}, connection stays open
      - On unhandled error: close 1011
    """
    await ws.accept()
    bot = get_factory().bot_service()

    try:
        while True:
            question = await ws.receive_text()
            logger.info("WS question | %s", question[:200])
            if not question.strip():
                await ws.send_json({"error": "Empty question."})
                continue
            try:
                reply = await bot.process_user_request(question)
            except DomainError as e:
                logger.error("WS answer failed: %s", e)
                await ws.send_json({"error": str(e)})
                continue
            await ws.send_json({
                "answer": reply.answer,
                "routes": sorted(reply.routes),
                "cached": reply.cached,
            })
    except WebSocketDisconnect:
        logger.info("WS client disconnected")
    except Exception:
        logger.exception("Unhandled error in WS handler")
        await ws.close(code=1011)
