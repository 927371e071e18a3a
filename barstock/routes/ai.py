# barstock/routes/ai.py
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from barstock.database import get_db
from barstock.services.stock import get_movement_history, get_stock_with_levels
from barstock.utils.audit import write_log
from barstock.utils.auth import TeamContext, route_required
from barstock.utils.gemini_client import (
    GeminiClient, RECENT_MOVEMENTS_IN_PROMPT, build_context_prompt, get_gemini_client,
)
from barstock.schemas.ai import ChatRequest, ChatResponse

router = APIRouter(prefix="/api/ai", tags=["AI"])


def _stock_context(db: Session, team_id) -> str:
    levels, movements = [], []
    if team_id is not None:
        levels = get_stock_with_levels(db, team_id)
        movements = get_movement_history(db, team_id, limit=RECENT_MOVEMENTS_IN_PROMPT)
    return build_context_prompt(levels, movements)


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    db: Session = Depends(get_db),
    ctx: TeamContext = Depends(route_required("ai")),
    gemini: GeminiClient = Depends(get_gemini_client),
):
    # Database work stays off the event loop; only the Gemini call is awaited here
    system_prompt = await run_in_threadpool(_stock_context, db, ctx.team_id)

    model = payload.model or gemini.default_model
    reply = await gemini.generate(
        system_prompt,
        payload.message,
        history=[h.model_dump() for h in payload.history],
        model=model,
    )

    await run_in_threadpool(
        write_log, db, user_id=ctx.user_id, team_id=ctx.team_id, action="AI_CHAT", resource="ai",
        meta={"model": model},
    )
    return {"reply": reply, "model": model}
