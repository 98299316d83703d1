from fastapi import FastAPI, UploadFile, File, Form, HTTPException, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.security.api_key import APIKeyHeader
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
import os, uuid, json, logging, time
from pathlib import Path
from typing import Optional, Dict, Any, List
from contextlib import asynccontextmanager

from prometheus_fastapi_instrumentator import Instrumentator
from medauth.calibration import calibrate
from medauth.exceptions import InvalidCalibrationInput, NoViableCalibration, ConfigurationError
from medauth.pipeline import analyze_image_async, AnalyzerConfig
from medauth.preproc import ImageInput
from medauth.profiles import load_profile
from medauth.sources import deep_forensics
from medauth.store import ConfigStore, get_store

API_KEY_NAME = "x-api-key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


def _runs_dir() -> Path:
    d = Path(os.getenv("DATA_DIR", "/app/data")) / "runs"
    d.mkdir(parents=True, exist_ok=True)
    return d


def get_api_key(api_key: str = Depends(api_key_header)):
    expected = os.environ.get("API_KEY")
    if not expected:
        # auth disabled when no key is configured (dev)
        return None
    if api_key is None:
        raise HTTPException(status_code=401, detail="Missing API key")
    if api_key != expected:
        raise HTTPException(status_code=403, detail="Forbidden")
    return api_key

def live_store() -> ConfigStore:
    try:
        return get_store()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=f"Ensemble configuration unavailable: {e}")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    try:
        cfg = get_store().current()
        logging.getLogger("medauth.app").info("ensemble config ready: %s", cfg.to_dict())
    except ConfigurationError as e:
        # requests needing the config answer 503 until the file is fixed
        logging.getLogger("medauth.app").error("ensemble config not loaded: %s", e)
    yield

app = FastAPI(
    lifespan=lifespan,
    title="MedAuth",
    version=os.getenv("APP_VERSION", "0.1.0"),
    description="Ensemble authenticity checks for medical images (X-ray, MRI, CT).",
)

logger = logging.getLogger("medauth.http")
handler = logging.StreamHandler()
handler.setFormatter(
    logging.Formatter(
        "%(asctime)s %(levelname)s path=%(path)s method=%(method)s status=%(status)s duration_ms=%(duration_ms)s msg=%(message)s"
    )
)
logger.addHandler(handler)
logger.setLevel(logging.INFO)
logger.propagate = False

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    dur = (time.time() - start) * 1000
    logger.info(
        "request",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": round(dur, 2),
        },
    )
    return response

Instrumentator().instrument(app).expose(app, endpoint="/metrics")

@app.get("/healthz")
def healthz():
    return {"status": "ok"}

@app.get("/version")
def version():
    return {
        "version": os.getenv("APP_VERSION", "0.1.0"),
        "git": os.getenv("GIT_SHA", "unknown"),
    }

@app.get("/protected")
def protected(_api_key: str = Depends(get_api_key)):
    return {"ok": True}

@app.get("/v1/health")
def health():
    return {"ok": True}


class Verdict(BaseModel):
    confidence: int
    aiProbability: float
    status: str
    details: List[str]
    isAI: bool

class AnalyzeResponse(BaseModel):
    image: str
    overall: Verdict
    methods: Dict[str, Any]
    unavailable: List[str]
    config: Dict[str, Any]
    imageType: Optional[str] = None
    imageTypeConfidence: Optional[float] = None
    classificationDetails: Optional[List[str]] = None
    metrics: Optional[Dict[str, Any]] = None
    run_id: Optional[str] = None
    profile_id: Optional[str] = None

class CalibrationResponse(BaseModel):
    accuracy: float
    f1: float
    weights: Dict[str, float]
    threshold: float
    persisted: bool


def _json_form(raw: Optional[str], field: str):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"{field} is not valid JSON: {e}")


@app.post("/v1/analyze", response_model=AnalyzeResponse)
async def analyze_endpoint(
    file: UploadFile = File(...),
    profile: Optional[str] = Form(None),
    weights_json: Optional[str] = Form(None),
    threshold: Optional[float] = Form(None),
    save_artifacts: bool = Form(False),
    _api_key: str = Depends(get_api_key),
    store: ConfigStore = Depends(live_store),
):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty upload")

    prof: Dict[str, Any] = {}
    if profile:
        try:
            prof = load_profile(profile)
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    weights = dict(prof.get("weights") or {})
    weights.update(_json_form(weights_json, "weights_json") or {})
    thr = threshold if threshold is not None else prof.get("threshold")

    cfg = AnalyzerConfig(
        sources=prof.get("sources"),
        weights=weights or None,
        threshold=thr,
        external=prof.get("external"),
    )
    image = ImageInput(data, file.filename or "upload")
    try:
        rep = await analyze_image_async(image, cfg, store)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    run_id = str(uuid.uuid4())
    if save_artifacts:
        out = _runs_dir() / run_id
        out.mkdir(parents=True, exist_ok=True)
        ext = os.path.splitext(file.filename or "")[1] or ".bin"
        (out / f"original{ext}").write_bytes(data)
        (out / "report.json").write_text(json.dumps(rep, ensure_ascii=False, indent=2))
    rep["run_id"] = run_id
    rep["profile_id"] = profile
    return JSONResponse(rep)


# deep forensics endpoint consumed by remote ``backend`` sources
@app.post("/analyze")
async def forensics_endpoint(image: UploadFile = File(...)):
    data = await image.read()
    if not data:
        raise HTTPException(status_code=400, detail="no file")
    return JSONResponse(await run_in_threadpool(deep_forensics, data, image.filename or "image"))


@app.get("/v1/config")
def current_config(_api_key: str = Depends(get_api_key), store: ConfigStore = Depends(live_store)):
    return store.current().to_dict()


@app.post("/v1/calibrate", response_model=CalibrationResponse)
async def calibrate_endpoint(
    file: UploadFile = File(...),
    persist: bool = Form(True),
    _api_key: str = Depends(get_api_key),
    store: ConfigStore = Depends(live_store),
):
    raw = await file.read()
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise HTTPException(status_code=400, detail=f"Calibration failed: not valid JSON: {e}")
    try:
        result = await run_in_threadpool(calibrate, data)
    except InvalidCalibrationInput as e:
        raise HTTPException(status_code=400, detail=f"Calibration failed: {e}")
    except NoViableCalibration as e:
        raise HTTPException(status_code=422, detail=f"Calibration failed: {e}")

    try:
        store.apply(result.weights, result.threshold, persist=persist)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Calibration failed: cannot persist config: {e}")
    return {**result.to_dict(), "persisted": persist}
