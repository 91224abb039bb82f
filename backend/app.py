from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

from schemas.sequence import ActionType, ConditionType
from schemas.campaign import CampaignDraft, PreparedCampaign
from services.sequence_serializer import from_flat, to_flat_dicts, DeserializeResult
from services.sequence_graph import validate_sequence
from services.sequence_templates import SequenceTemplatesService, TemplateChannel
from services.template_variables import ALLOWED_VARIABLES, VARIABLE_ALIASES, extract_variables, ordered_variables
from services.campaign_payload import prepare_campaign
from translators.reactflow_translator import ReactFlowTranslator

# Initialize services
templates_service = SequenceTemplatesService()
reactflow_translator = ReactFlowTranslator()

app = FastAPI(
    title="Campaign Sequence Engine",
    version="1.0.0",
)

# Configure CORS - comma separated list in CORS_ORIGINS
default_origins = "http://localhost:5173,http://localhost:3000,http://localhost:8080"
allowed_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", default_origins).split(",") if o.strip()]

logger.info(f"CORS enabled for origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

# Add validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


# ============================================================================
# REQUEST MODELS
# ============================================================================

class SequenceRequest(BaseModel):
    steps: List[Dict[str, Any]] = Field(default_factory=list)
    relayout: bool = False

class ExtractVariablesRequest(BaseModel):
    text: str = ""


def _sequence_response(result: DeserializeResult) -> Dict[str, Any]:
    return {
        "steps": to_flat_dicts(result.graph),
        "adjacency": {
            node_id: connections.model_dump(by_alias=True)
            for node_id, connections in result.adjacency.items()
        },
        "reactflow": reactflow_translator.translate(result.graph),
        "warnings": [w.model_dump(mode="json", by_alias=True) for w in result.warnings],
        "relaidOut": result.relaid_out,
    }


# ============================================================================
# SEQUENCE ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    return {"message": "Campaign Sequence Engine API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

@app.get("/api/sequence/step-types")
async def get_step_types():
    """List the step types the sequence editor can add"""
    return {
        "actions": [a.value for a in ActionType],
        "conditions": [c.value for c in ConditionType],
        "variables": list(ALLOWED_VARIABLES),
        "aliases": VARIABLE_ALIASES,
    }

@app.get("/api/sequence/templates")
async def get_templates(channel: Optional[TemplateChannel] = None):
    """List starter sequences"""
    return [
        {
            "id": t.id,
            "name": t.name,
            "description": t.description,
            "channel": t.channel.value,
            "stepCount": len(t.steps),
        }
        for t in templates_service.list_templates(channel)
    ]

@app.get("/api/sequence/templates/{template_id}")
async def get_template(template_id: str):
    """Load a starter sequence, laid out and ready to edit"""
    result = templates_service.build(template_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
    return _sequence_response(result)

@app.post("/api/sequence/load")
async def load_sequence(request: SequenceRequest):
    """Load stored flat steps into editor form: positions, connections and React Flow data"""
    logger.info(f"Loading sequence with {len(request.steps)} steps")
    result = from_flat(request.steps, relayout=request.relayout)
    return _sequence_response(result)

@app.post("/api/sequence/layout")
async def layout_sequence(request: SequenceRequest):
    """Re-layout a sequence from its topology, ignoring stored positions"""
    result = from_flat(request.steps, relayout=True)
    return _sequence_response(result)

@app.post("/api/sequence/validate")
async def validate_sequence_endpoint(request: SequenceRequest):
    """Report problems in a sequence without changing it"""
    result = from_flat(request.steps, relayout=request.relayout)
    problems = validate_sequence(result.graph)
    return {
        "valid": not problems and not result.warnings,
        "problems": problems,
        "warnings": [w.model_dump(mode="json", by_alias=True) for w in result.warnings],
    }

@app.post("/api/variables/extract")
async def extract_variables_endpoint(request: ExtractVariablesRequest):
    """Allowed {{variables}} referenced by a piece of text"""
    return {"variables": ordered_variables(extract_variables(request.text))}


# ============================================================================
# CAMPAIGN ENDPOINTS
# ============================================================================

@app.post("/api/campaigns/prepare", response_model=PreparedCampaign)
async def prepare_campaign_endpoint(draft: CampaignDraft):
    """Normalise a campaign draft into the payload the campaign service expects"""
    prepared = prepare_campaign(draft)
    logger.info(f"Prepared campaign '{draft.name}' with {len(prepared.warnings)} warnings")
    return prepared


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
