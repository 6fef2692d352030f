"""On-demand scrape endpoint."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ...collectors.aggregator import Aggregator, RunStatus
from ...models.property import PartialListing, SearchFilters
from ..deps import get_aggregator

router = APIRouter()
logger = logging.getLogger(__name__)

PREVIEW_SIZE = 5


class ScrapeRequest(BaseModel):
    source: Literal["ml", "ic", "both"] = "both"
    pages: Optional[int] = Field(default=None, ge=1, le=50)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    save: bool = False


class SourceStatusResponse(BaseModel):
    status: RunStatus
    count: int = 0
    pages: int = 0
    error: Optional[str] = None


class SkippedResponse(BaseModel):
    identity: str
    problems: list[str]


class ScrapeResponse(BaseModel):
    """Outcome of a scrape run: one status per source plus a short preview."""
    success: bool
    statuses: dict[str, SourceStatusResponse]
    total_found: int
    total_saved: int = 0
    skipped: list[SkippedResponse] = Field(default_factory=list)
    preview: list[PartialListing] = Field(default_factory=list)


@router.post("", response_model=ScrapeResponse)
async def scrape(
    body: ScrapeRequest,
    aggregator: Aggregator = Depends(get_aggregator),
) -> ScrapeResponse:
    """Scrape the selected sources now and optionally save the results.

    A source that fails is reported in ``statuses`` with its error; the
    request only fails as a whole when saving to the store fails.
    """
    logger.info(f"Scrape requested: source={body.source}, pages={body.pages}, save={body.save}")
    try:
        result = await aggregator.run(
            source=body.source,
            max_pages=body.pages,
            filters=body.filters,
            save=body.save,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    report = result.report
    ran = [s for s in result.statuses.values() if s.status != RunStatus.SKIPPED]
    return ScrapeResponse(
        success=any(s.status != RunStatus.ERROR for s in ran),
        statuses={
            name: SourceStatusResponse(
                status=status.status,
                count=status.count,
                pages=status.pages,
                error=status.error,
            )
            for name, status in result.statuses.items()
        },
        total_found=result.total_found,
        total_saved=report.saved if report else 0,
        skipped=[
            SkippedResponse(identity=s.identity, problems=s.problems)
            for s in (report.skipped if report else [])
        ],
        preview=result.listings[:PREVIEW_SIZE],
    )
