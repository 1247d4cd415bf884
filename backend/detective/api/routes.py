import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, Response, UploadFile

from detective.agents.report_agent import ReportAgent, get_agent, has_agent, remove_agent
from detective.models.schemas import (
    ChatMessageRequest,
    ChatMessageResponse,
    ConversationCreated,
    EvidenceUploadResponse,
    HealthResponse,
    MergeRequest,
    SketchRequest,
    SketchResponse,
    TranslateRequest,
    TranslateResponse,
)
from detective.services.airtable import airtable_client
from detective.services.evidence import EvidenceValidationError, evidence_service, observations_text
from detective.services.field_codec import report_to_fields
from detective.services.geocoding import geocoding_service
from detective.services.pdf_export import render_report_pdf
from detective.services.report_merge import merge_fields
from detective.services.session_store import get_session_store
from detective.services.sketch_service import sketch_service
from detective.services.storage import storage_service
from detective.services.translation_service import translation_service

logger = logging.getLogger(__name__)

router = APIRouter()


async def _require_agent(conversation_id: str) -> ReportAgent:
    """Agent of a known conversation; 404 for unknown ids."""
    if has_agent(conversation_id):
        return get_agent(conversation_id)
    store = get_session_store()
    # Idle agents are evicted; their conversation survives in the session store
    if await store.get_record_id(conversation_id) or await store.get_history(conversation_id):
        return get_agent(conversation_id)
    raise HTTPException(status_code=404, detail="Conversation not found")


# ── Conversations ─────────────────────────────────────────


@router.post("/conversations", response_model=ConversationCreated)
async def create_conversation():
    conversation_id = str(uuid.uuid4())
    agent = get_agent(conversation_id)
    logger.info(f"Created conversation {conversation_id}")
    return ConversationCreated(conversation_id=conversation_id, greeting=agent.greeting())


@router.post("/conversations/{conversation_id}/messages", response_model=ChatMessageResponse)
async def send_message(conversation_id: str, message: ChatMessageRequest):
    """Send a reporter message and get the detective's reply."""
    if not message.content.strip():
        raise HTTPException(status_code=400, detail="Message content is empty")

    agent = await _require_agent(conversation_id)
    reply, function_results = await agent.process_message(message.content)
    report = await agent.tools.current_report()
    return ChatMessageResponse(
        conversation_id=conversation_id,
        reply=reply,
        report=report_to_fields(report),
        function_results=function_results,
    )


@router.get("/conversations/{conversation_id}/report")
async def get_report(conversation_id: str):
    agent = await _require_agent(conversation_id)
    report = await agent.tools.current_report()
    return {"recordId": report.record_id, "fields": report_to_fields(report)}


@router.get("/conversations/{conversation_id}/report/pdf")
async def export_report_pdf(conversation_id: str):
    agent = await _require_agent(conversation_id)
    report = await agent.tools.current_report()
    pdf_bytes = render_report_pdf(report)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=report_{conversation_id}.pdf"},
    )


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str):
    """Forget a conversation. The stored report itself is kept."""
    await _require_agent(conversation_id)
    remove_agent(conversation_id)
    await get_session_store().forget_conversation(conversation_id)
    logger.info(f"Deleted conversation {conversation_id}")
    return {"success": True, "conversation_id": conversation_id}


# ── Evidence & sketches ───────────────────────────────────


@router.post("/evidence", response_model=EvidenceUploadResponse, response_model_by_alias=True)
async def upload_evidence(
    files: List[UploadFile] = File(...),
    conversation_id: Optional[str] = Form(None),
):
    """Store evidence files, describe images, and optionally add them to a report."""
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    agent = await _require_agent(conversation_id) if conversation_id else None

    items = []
    for upload in files:
        data = await upload.read()
        try:
            item = await evidence_service.process_upload(upload.filename or "upload", data, upload.content_type)
        except EvidenceValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if item is None:
            raise HTTPException(status_code=502, detail=f"Could not store {upload.filename}")
        items.append(item)

    report_update = None
    if agent is not None:
        report_update = await agent.tools.update_crime_report({
            "evidence": ", ".join(item.url for item in items),
            "evidence_observations": observations_text(items) or None,
        })

    return EvidenceUploadResponse(
        success=True,
        file_urls=[item.url for item in items],
        observations=[item.observation for item in items],
        report_update=report_update,
    )


@router.post("/sketch", response_model=SketchResponse, response_model_by_alias=True)
async def generate_sketch(request: SketchRequest, response: Response):
    url = await sketch_service.generate(request)
    if not url:
        response.status_code = 502
        return SketchResponse(success=False, message="Error generating image")
    return SketchResponse(success=True, suspect_sketch_url=url)


# ── Utilities ─────────────────────────────────────────────


@router.post("/translate", response_model=TranslateResponse)
async def translate_text(request: TranslateRequest):
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text is empty")
    translated, source_language = await translation_service.translate(
        request.text, target_language=request.target_language
    )
    return TranslateResponse(success=True, translation=translated, source_language=source_language)


@router.get("/geocode")
async def geocode(address: str = Query("", max_length=500)):
    if not address.strip():
        raise HTTPException(status_code=400, detail="Address is required")
    verification = await geocoding_service.verify_location(address)
    return verification.to_dict()


@router.post("/merge")
async def merge_report_fields(request: MergeRequest):
    """Merge a partial update into a stored row without persisting anything."""
    return merge_fields(request.existing, request.update)


@router.get("/health", response_model=HealthResponse)
async def health_check():
    services = {
        "session_store": await get_session_store().health_check(),
        "storage": storage_service.health_check(),
        "airtable": airtable_client.is_configured,
        "gemini": translation_service.client is not None,
    }
    return HealthResponse(
        status="healthy" if all(services.values()) else "degraded",
        services=services,
    )
