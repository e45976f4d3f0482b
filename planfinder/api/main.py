"""
FastAPI main application for PlanFinder.
Provides REST API endpoints for plan upload, editing, search and the AI helpers.
"""

from fastapi import FastAPI, HTTPException, UploadFile, File, Form, Depends, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import uvicorn
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Dict, Any, Optional
from loguru import logger

from .. import __version__
from .models import *
from ..config import Settings
from ..core.filename_codec import (
    UNKNOWN, PlanMetadata, build_title, generate_filename, parse_filename,
    parse_multiple_filenames, validate_plan_fields,
)
from ..core.llm_client import AnthropicClient, LLMNotConfiguredError
from ..core.pdf_processor import PDFProcessor, PDFProcessingError
from ..core.permissions import Permission, has_permission
from ..core.plan_analysis import AnalysisDecodeError, decode_analysis, to_filename
from ..indexing.database import DatabaseManager, StaleVersionError, DRAWING_TYPES
from ..indexing.file_store import FileStore, safe_storage_name
from ..search.assistant import PlanAssistant
from ..search.plan_filter import SearchFilters, search_plans


class PlanFinderAPI:
    """Main API application class."""

    def __init__(self):
        """Initialize API components."""
        self.settings = None
        self.database_manager = None
        self.file_store = None
        self.pdf_processor = None
        self.llm_client = None

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing PlanFinder API...")

        self.settings = Settings.load(os.getenv('PLANFINDER_CONFIG', 'config.yaml'))

        self.database_manager = DatabaseManager(self.settings.database_url)
        self.file_store = FileStore(self.settings.storage_dir)
        self.pdf_processor = PDFProcessor(thumbnail_width=self.settings.thumbnail_width)

        try:
            self.llm_client = AnthropicClient()
        except LLMNotConfiguredError:
            self.llm_client = None
            logger.warning("ANTHROPIC_API_KEY not set, AI analysis and assistant are disabled")

        logger.info("PlanFinder API initialized successfully")

    async def cleanup(self):
        """Cleanup resources."""
        logger.info("Cleaning up PlanFinder API...")

        if self.database_manager:
            self.database_manager.close()


# Global API instance
api_instance = PlanFinderAPI()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await api_instance.initialize()
    yield
    await api_instance.cleanup()


# Create FastAPI app
app = FastAPI(
    title="PlanFinder API",
    description="Catalog and search for pre-designed housing plans",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StaleVersionError)
async def stale_version_handler(request: Request, exc: StaleVersionError):
    """Concurrent plan edits surface as 409 from every mutating endpoint."""
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# Caller identity, supplied by the authentication proxy
@dataclass
class Caller:
    company_id: str
    role: str
    user_id: Optional[str] = None


def get_caller(x_company_id: Optional[str] = Header(None),
               x_user_role: str = Header("viewer"),
               x_user_id: Optional[str] = Header(None)) -> Caller:
    if not x_company_id:
        raise HTTPException(status_code=401, detail="認証が必要です")
    return Caller(company_id=x_company_id, role=x_user_role, user_id=x_user_id)


def require(permission: Permission):
    """Dependency factory checking the caller's role."""
    def dependency(caller: Caller = Depends(get_caller)) -> Caller:
        if not has_permission(caller.role, permission):
            raise HTTPException(status_code=403, detail=f"権限がありません: {permission.value}")
        return caller
    return dependency


def _owned_plan(plan_id: str, caller: Caller) -> Dict[str, Any]:
    plan = api_instance.database_manager.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="プランが見つかりません")
    if plan["companyId"] != caller.company_id:
        raise HTTPException(status_code=403, detail="このプランを操作する権限がありません")
    return plan


def _require_llm() -> AnthropicClient:
    if api_instance.llm_client is None:
        raise HTTPException(status_code=503, detail="ANTHROPIC_API_KEYが設定されていません")
    return api_instance.llm_client


# Health check endpoint
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    components = {}

    try:
        api_instance.database_manager.get_database_stats()
        components["database"] = "healthy"
    except Exception as e:
        components["database"] = f"error: {str(e)}"

    components["storage"] = "healthy" if api_instance.file_store.root_dir.exists() else "error: missing"
    components["llm"] = "configured" if api_instance.llm_client else "disabled"

    overall_status = "healthy" if all("error" not in status for status in components.values()) else "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        components=components
    )


# Plan endpoints
@app.get("/api/plans", response_model=PlanListResponse)
async def list_plans(request: Request, caller: Caller = Depends(require(Permission.VIEW_PLANS))):
    """Search the caller's plans."""
    try:
        params = dict(request.query_params)
        filters = SearchFilters.from_params(params)

        plans = api_instance.database_manager.list_plans(caller.company_id)
        plan_id = params.get("id")
        if plan_id:
            plans = [plan for plan in plans if plan["id"] == plan_id]

        results = search_plans(plans, filters)
        return PlanListResponse(plans=results, count=len(results))

    except Exception as e:
        logger.error(f"Plans fetch failed: {e}")
        raise HTTPException(status_code=500, detail="プランの取得中にエラーが発生しました")


@app.get("/api/plans/count", response_model=CountResponse)
async def count_plans(caller: Caller = Depends(require(Permission.VIEW_PLANS))):
    try:
        return CountResponse(count=api_instance.database_manager.count_plans(caller.company_id))
    except Exception as e:
        logger.error(f"Plans count failed: {e}")
        raise HTTPException(status_code=500, detail="プラン件数の取得中にエラーが発生しました")


def _upload_metadata(filename: str, layout: Optional[str], floors: Optional[str],
                     total_area: Optional[float], direction: Optional[str],
                     site_area: Optional[float], features: Optional[str]) -> PlanMetadata:
    """Take metadata from the form when given, otherwise from the filename."""
    if layout is None and floors is None and direction is None:
        result = parse_filename(filename)
        if not result.success:
            raise HTTPException(status_code=400, detail=result.error.message)
        metadata = result.data
    else:
        try:
            feature_list = json.loads(features) if features else []
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="features はJSON配列で指定してください")
        if not isinstance(feature_list, list) or not all(isinstance(f, str) for f in feature_list):
            raise HTTPException(status_code=400, detail="features はJSON配列で指定してください")

        layout = layout or UNKNOWN
        floors = floors or UNKNOWN
        direction = direction or UNKNOWN
        total_area = total_area or 0.0
        site_area = site_area or 0.0
        metadata = PlanMetadata(
            title=build_title(total_area, layout, floors, direction),
            layout=layout,
            floors=floors,
            total_area=total_area,
            direction=direction,
            site_area=site_area,
            features=[f.strip() for f in feature_list if f.strip()],
            original_filename=filename,
        )

    if metadata.total_area < 0 or metadata.site_area < 0:
        raise HTTPException(status_code=400, detail="面積は0以上で指定してください")

    errors = validate_plan_fields(metadata.layout, metadata.floors, metadata.direction)
    if errors:
        raise HTTPException(status_code=400, detail=" / ".join(errors))
    return metadata


@app.post("/api/plans/upload", response_model=PlanResponse)
async def upload_plan(
    file: UploadFile = File(...),
    layout: Optional[str] = Form(None),
    floors: Optional[str] = Form(None),
    totalArea: Optional[float] = Form(None),
    direction: Optional[str] = Form(None),
    siteArea: Optional[float] = Form(None),
    features: Optional[str] = Form(None),
    caller: Caller = Depends(require(Permission.CREATE_PLANS)),
):
    """Upload a plan PDF with metadata from the form or the filename."""
    if not file.filename or not file.filename.lower().endswith('.pdf'):
        raise HTTPException(status_code=400, detail="PDFファイルのみアップロードできます")

    metadata = _upload_metadata(file.filename, layout, floors, totalArea, direction, siteArea, features)

    stored_paths: List[str] = []
    try:
        data = await file.read()
        storage_name = safe_storage_name(file.filename)
        pdf_path = api_instance.file_store.save(storage_name, data)
        stored_paths.append(pdf_path)

        thumbnail_path = None
        try:
            png = api_instance.pdf_processor.render_thumbnail(data)
            thumbnail_path = api_instance.file_store.save(
                f"{Path(storage_name).stem}.png", png, folder="thumbnails"
            )
            stored_paths.append(thumbnail_path)
        except PDFProcessingError as e:
            logger.warning(f"Thumbnail generation failed for {file.filename}: {e}")

        plan = api_instance.database_manager.create_plan(
            company_id=caller.company_id,
            metadata=metadata,
            pdf_path=pdf_path,
            thumbnail_path=thumbnail_path,
            created_by=caller.user_id,
        )
        return PlanResponse(plan=plan)

    except Exception as e:
        logger.error(f"Upload failed: {e}")
        if stored_paths:
            api_instance.file_store.remove(stored_paths)
        raise HTTPException(status_code=500, detail="アップロード処理中にエラーが発生しました")


@app.patch("/api/plans/{plan_id}", response_model=PlanResponse)
async def update_plan(plan_id: str, request: PlanUpdateRequest,
                      caller: Caller = Depends(require(Permission.EDIT_PLANS))):
    """Edit plan fields; the title is regenerated."""
    current = _owned_plan(plan_id, caller)

    changes = request.model_dump(exclude_none=True)
    expected_version = changes.pop("version", None)

    errors = validate_plan_fields(
        changes.get("layout", current["layout"]),
        changes.get("floors", current["floors"]),
        changes.get("direction", current["direction"]),
    )
    if errors:
        raise HTTPException(status_code=400, detail=" / ".join(errors))

    try:
        plan = api_instance.database_manager.update_plan(plan_id, changes, expected_version)
    except StaleVersionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Plan update failed {plan_id}: {e}")
        raise HTTPException(status_code=500, detail="プランの更新中にエラーが発生しました")

    if plan is None:
        raise HTTPException(status_code=404, detail="プランが見つかりません")
    return PlanResponse(plan=plan)


@app.delete("/api/plans/{plan_id}", response_model=MessageResponse)
async def delete_plan(plan_id: str, caller: Caller = Depends(require(Permission.DELETE_PLANS))):
    """Delete a plan together with its stored files."""
    _owned_plan(plan_id, caller)

    try:
        paths = api_instance.database_manager.delete_plan(plan_id)
    except StaleVersionError:
        raise
    except Exception as e:
        logger.error(f"Plan deletion failed {plan_id}: {e}")
        raise HTTPException(status_code=500, detail="削除処理中にエラーが発生しました")

    if paths is None:
        raise HTTPException(status_code=404, detail="プランが見つかりません")

    api_instance.file_store.remove(paths)
    return MessageResponse(message="プランを削除しました")


@app.post("/api/plans/{plan_id}/favorite", response_model=PlanResponse)
async def toggle_favorite(plan_id: str, caller: Caller = Depends(require(Permission.VIEW_PLANS))):
    _owned_plan(plan_id, caller)
    plan = api_instance.database_manager.toggle_favorite(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="プランが見つかりません")
    return PlanResponse(plan=plan)


@app.post("/api/plans/{plan_id}/drawings", response_model=PlanResponse)
async def add_drawing(plan_id: str,
                      file: UploadFile = File(...),
                      drawing_type: str = Form(..., alias="type"),
                      caller: Caller = Depends(require(Permission.EDIT_PLANS))):
    """Attach an extra drawing to a plan."""
    _owned_plan(plan_id, caller)
    if drawing_type not in DRAWING_TYPES:
        raise HTTPException(status_code=400, detail=f"図面種別は{'・'.join(DRAWING_TYPES)}のいずれかです")

    data = await file.read()
    file_path = api_instance.file_store.save(
        safe_storage_name(file.filename or "drawing"), data, folder=f"drawings/{plan_id}"
    )
    try:
        plan = api_instance.database_manager.add_drawing(plan_id, drawing_type, file_path, file.filename or "")
    except StaleVersionError:
        api_instance.file_store.remove([file_path])
        raise
    except Exception as e:
        logger.error(f"Drawing upload failed {plan_id}: {e}")
        api_instance.file_store.remove([file_path])
        raise HTTPException(status_code=500, detail="図面のアップロードに失敗しました")
    return PlanResponse(plan=plan)


@app.delete("/api/plans/{plan_id}/drawings/{drawing_id}", response_model=MessageResponse)
async def remove_drawing(plan_id: str, drawing_id: str,
                         caller: Caller = Depends(require(Permission.EDIT_PLANS))):
    _owned_plan(plan_id, caller)
    file_path = api_instance.database_manager.remove_drawing(plan_id, drawing_id)
    if file_path is None:
        raise HTTPException(status_code=404, detail="図面が見つかりません")
    api_instance.file_store.remove([file_path])
    return MessageResponse(message="図面を削除しました")


@app.post("/api/plans/{plan_id}/photos", response_model=PlanResponse)
async def add_photo(plan_id: str,
                    file: UploadFile = File(...),
                    caller: Caller = Depends(require(Permission.EDIT_PLANS))):
    """Attach a photo to a plan."""
    _owned_plan(plan_id, caller)

    data = await file.read()
    file_path = api_instance.file_store.save(
        safe_storage_name(file.filename or "photo"), data, folder=f"photos/{plan_id}"
    )
    try:
        plan = api_instance.database_manager.add_photo(plan_id, file_path, file.filename or "")
    except StaleVersionError:
        api_instance.file_store.remove([file_path])
        raise
    except Exception as e:
        logger.error(f"Photo upload failed {plan_id}: {e}")
        api_instance.file_store.remove([file_path])
        raise HTTPException(status_code=500, detail="写真のアップロードに失敗しました")
    return PlanResponse(plan=plan)


@app.delete("/api/plans/{plan_id}/photos/{photo_id}", response_model=MessageResponse)
async def remove_photo(plan_id: str, photo_id: str,
                       caller: Caller = Depends(require(Permission.EDIT_PLANS))):
    _owned_plan(plan_id, caller)
    file_path = api_instance.database_manager.remove_photo(plan_id, photo_id)
    if file_path is None:
        raise HTTPException(status_code=404, detail="写真が見つかりません")
    api_instance.file_store.remove([file_path])
    return MessageResponse(message="写真を削除しました")


# Filename helpers
@app.post("/api/filenames/parse", response_model=FilenameParseResponse)
async def parse_filenames(request: FilenameParseRequest):
    """Parse a batch of filenames; each entry succeeds or fails on its own."""
    results = parse_multiple_filenames(request.filenames)
    parsed = []
    for filename, result in zip(request.filenames, results):
        parsed.append(ParsedFilename(
            filename=filename,
            success=result.success,
            data=result.data.to_dict() if result.data else None,
            error=result.error.to_dict() if result.error else None,
        ))

    valid = sum(1 for result in results if result.success)
    return FilenameParseResponse(results=parsed, valid=valid, invalid=len(results) - valid)


@app.post("/api/filenames/generate", response_model=FilenameGenerateResponse)
async def generate_plan_filename(request: FilenameGenerateRequest):
    filename = generate_filename(
        total_area=request.totalArea,
        layout=request.layout,
        floors=request.floors,
        direction=request.direction,
        site_area=request.siteArea,
        features=request.features,
    )
    title = build_title(request.totalArea, request.layout, request.floors, request.direction)
    return FilenameGenerateResponse(filename=filename, title=title)


# AI helpers
@app.post("/api/analyze-plan/decode", response_model=AnalysisResponse)
async def decode_plan_analysis(request: AnalysisDecodeRequest):
    """Decode a raw analysis reply into plan fields."""
    try:
        analysis = decode_analysis(request.reply)
    except AnalysisDecodeError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return AnalysisResponse(
        analysis=analysis.model_dump(by_alias=True),
        suggestedFilename=to_filename(analysis),
    )


@app.post("/api/analyze-plan", response_model=AnalysisResponse)
async def analyze_plan(file: UploadFile = File(...),
                       caller: Caller = Depends(require(Permission.CREATE_PLANS))):
    """Extract plan fields from a PDF with the analysis model."""
    client = _require_llm()

    try:
        reply = await client.analyze_pdf(await file.read())
        analysis = decode_analysis(reply)
    except AnalysisDecodeError as e:
        logger.warning(f"Analysis reply could not be decoded: {e}")
        raise HTTPException(status_code=502, detail="PDFの解析結果を読み取れませんでした")
    except Exception as e:
        logger.error(f"Plan analysis failed: {e}")
        raise HTTPException(status_code=500, detail="PDFの解析中にエラーが発生しました")

    return AnalysisResponse(
        analysis=analysis.model_dump(by_alias=True),
        suggestedFilename=to_filename(analysis),
    )


@app.post("/api/ai-assistant", response_model=AssistantResponse)
async def ai_assistant(request: AssistantRequest,
                       caller: Caller = Depends(require(Permission.VIEW_PLANS))):
    """Recommend plans from the caller's catalog in conversation."""
    client = _require_llm()

    try:
        plans = api_instance.database_manager.list_plans(caller.company_id)
        reply = await PlanAssistant(client.complete).ask(request.message, plans, request.conversationHistory)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"AI assistant failed: {e}")
        raise HTTPException(status_code=500, detail="AIアシスタントの処理中にエラーが発生しました")

    return AssistantResponse(**reply.to_dict())


def main():
    """Run the API server."""
    uvicorn.run(
        "planfinder.api.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
    )


if __name__ == "__main__":
    main()
