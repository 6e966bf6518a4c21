"""Ask the analysis bot a question without posting to Bluesky."""

from fastapi import APIRouter, Depends

from domain.models import split_into_chunks
from factory import ServiceFactory
from adapters.rest.dependencies import get_factory
from adapters.rest.schemas import AskBody, AskOut

router = APIRouter(tags=["bot"])


@router.post("/ask", response_model=AskOut)
async def ask(
    body: AskBody,
    factory: ServiceFactory = Depends(get_factory),
):
    """
    Answer a question exactly as the bot would on Bluesky.

    `chunks` is the answer split into the ≤300-character posts the bot
    would reply with.
    """
    reply = await factory.bot_service().process_user_request(body.question)
    return AskOut(
        answer=reply.answer,
        routes=sorted(reply.routes),
        cached=reply.cached,
        chunks=split_into_chunks(reply.answer),
    )
