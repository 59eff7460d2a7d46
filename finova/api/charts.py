from functools import lru_cache
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from ..core.config import settings
from ..vision.errors import (
    ChartNotFoundError,
    InferenceError,
    InvalidImageError,
    InvalidSymbolError,
    RenderError,
)
from ..vision.pipeline import ChartAnalyzer
from ..vision.schema import DateRange, TechnicalAnalysisRecord

router = APIRouter(prefix="/charts", tags=["charts"])

@lru_cache(maxsize=1)
def get_analyzer() -> ChartAnalyzer:
    return ChartAnalyzer(settings)

def _inference_http_error(e: InferenceError) -> HTTPException:
    if e.timeout:
        return HTTPException(504, "Chart analysis timed out. Try again in a moment.")
    return HTTPException(502, f"Chart analysis failed: {e}")

@router.get("/{symbol}/analysis", response_model=TechnicalAnalysisRecord)
async def analyze_symbol(
    symbol: str,
    date_range: DateRange = Query(DateRange.ONE_MONTH, alias="dateRange"),
    analyzer: ChartAnalyzer = Depends(get_analyzer),
):
    try:
        return await analyzer.capture_and_analyze(symbol, date_range)
    except InvalidSymbolError as e:
        raise HTTPException(400, str(e))
    except RenderError as e:
        raise HTTPException(502, f"Chart capture failed: {e}")
    except InferenceError as e:
        raise _inference_http_error(e)

@router.post("/analyze", response_model=TechnicalAnalysisRecord)
async def analyze_upload(
    image: UploadFile = File(...),
    date_range: DateRange = Form(DateRange.ONE_MONTH, alias="dateRange"),
    analyzer: ChartAnalyzer = Depends(get_analyzer),
):
    raw = await image.read()
    if not raw:
        raise HTTPException(400, "Empty image upload")

    try:
        return await analyzer.analyze_chart_bytes(raw, date_range)
    except InvalidImageError as e:
        raise HTTPException(400, str(e))
    except InferenceError as e:
        raise _inference_http_error(e)

@router.get("/analysis", response_model=TechnicalAnalysisRecord)
async def analyze_stored(
    ref: str = Query(..., description="Chart reference returned by the renderer, e.g. /snapshots/AAPL_x.png"),
    date_range: DateRange = Query(DateRange.ONE_MONTH, alias="dateRange"),
    analyzer: ChartAnalyzer = Depends(get_analyzer),
):
    try:
        return await analyzer.analyze_chart_image(ref, date_range)
    except ChartNotFoundError as e:
        raise HTTPException(404, str(e))
    except InvalidImageError as e:
        raise HTTPException(400, str(e))
    except InferenceError as e:
        raise _inference_http_error(e)
