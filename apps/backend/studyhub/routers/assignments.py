from datetime import date
from functools import partial

import anyio
from fastapi import APIRouter, Depends, HTTPException

from ..assignment_parser import AssignmentParseError, AssignmentParser
from ..deps import get_assignment_parser
from ..logging import logger
from ..models.assignment import AssignmentParseRequest, AssignmentParseResponse

router = APIRouter(tags=["assignments"])


@router.post("/parse", response_model=AssignmentParseResponse)
async def parse_assignment(
    req: AssignmentParseRequest,
    parser: AssignmentParser = Depends(get_assignment_parser),
) -> AssignmentParseResponse:
    """自由記述の課題テキストを構造化する。

    - LLM 応答から課題を組み立てられない: 422
    - LLM 呼び出し自体の失敗（タイムアウト等）: 502
    """
    today = req.today or date.today()
    try:
        # LLM 呼び出しはブロッキングなのでワーカースレッドへオフロードする
        assignment = await anyio.to_thread.run_sync(
            partial(parser.parse, req.text, today=today)
        )
    except AssignmentParseError as exc:
        logger.info("assignment_parse_rejected", reason=str(exc))
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RuntimeError as exc:
        logger.error("assignment_parse_llm_failed", error=str(exc)[:256])
        raise HTTPException(status_code=502, detail="assignment parsing service unavailable") from exc

    return AssignmentParseResponse(
        title=assignment.title,
        subject=assignment.subject,
        due_date=assignment.due_date,
        priority=assignment.priority,
        time_estimate=assignment.time_estimate,
        time_estimate_minutes=assignment.time_estimate_minutes,
    )
