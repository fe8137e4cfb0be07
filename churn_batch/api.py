"""
HTTP surface for batch runs.

POST /churn/analyze with {"fileName": ...} and a bearer token.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from .auth import IdentityProvider, bearer_token
from .errors import AuthError, MissingColumnsError, SummaryPersistenceError, ValidationError
from .pipeline import ChurnPipeline

logger = logging.getLogger(__name__)


class AnalyzeRequest(BaseModel):
    file_name: str = Field(..., alias="fileName", min_length=1)


def create_app(pipeline: ChurnPipeline, identity: IdentityProvider) -> FastAPI:
    """Build the API around an already wired pipeline."""
    app = FastAPI(title="Churn Batch Scoring API", version="1.0.0")

    @app.post("/churn/analyze")
    async def analyze(request: AnalyzeRequest,
                      authorization: Optional[str] = Header(default=None)):
        try:
            owner_id = identity.resolve(bearer_token(authorization))
        except AuthError as e:
            raise HTTPException(status_code=401, detail={"error": str(e)})

        try:
            report = await pipeline.analyze(owner_id, request.file_name)
        except MissingColumnsError as e:
            raise HTTPException(status_code=400,
                                detail={"error": str(e), "missing_columns": e.missing})
        except ValidationError as e:
            raise HTTPException(status_code=400, detail={"error": str(e)})
        except SummaryPersistenceError as e:
            logger.error("Batch aborted for %s: %s", request.file_name, e)
            raise HTTPException(status_code=500, detail={"error": str(e)})

        return report.to_dict()

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app
