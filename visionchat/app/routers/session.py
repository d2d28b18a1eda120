from fastapi import APIRouter, Depends, File, UploadFile

from visionchat.app.schemas.session import ChatRequest, ChatResponse, RunInfo, SessionState
from visionchat.app.services.session_services import (
    chat,
    get_session,
    process_video,
    session_state,
    upload_video,
)
from visionchat.video_pipeline.session import VisionChatSession

router = APIRouter()


@router.post("/video", response_model=SessionState, tags=["video"])
async def post_video(file: UploadFile = File(...), session: VisionChatSession = Depends(get_session)):
    return await upload_video(session, file)


@router.post("/video/process", response_model=RunInfo, tags=["video"])
async def post_process(wait: bool = True, session: VisionChatSession = Depends(get_session)):
    return await process_video(session, wait)


@router.get("/session", response_model=SessionState, tags=["session"])
async def get_state(session: VisionChatSession = Depends(get_session)):
    return session_state(session)


@router.post("/chat", response_model=ChatResponse, tags=["chat"])
async def post_chat(request: ChatRequest, session: VisionChatSession = Depends(get_session)):
    return await chat(session, request.question)
