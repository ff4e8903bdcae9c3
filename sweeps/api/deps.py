from collections.abc import AsyncIterator

from fastapi import Depends

from sweeps.core.config import Settings, get_settings
from sweeps.services.fetcher import DiagnosticFetcher, build_http_client
from sweeps.services.orchestrator import SweepOrchestrator
from sweeps.services.registry import SourceRegistry
from sweeps.services.repository import get_repository
from sweeps.services.review import ReviewService


async def get_fetcher(settings: Settings = Depends(get_settings)) -> AsyncIterator[DiagnosticFetcher]:
    async with build_http_client(settings) as client:
        yield DiagnosticFetcher.from_settings(client, settings)


def get_orchestrator(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    fetcher: DiagnosticFetcher = Depends(get_fetcher),
) -> SweepOrchestrator:
    return SweepOrchestrator(repository, fetcher, settings)


def get_review_service(repository=Depends(get_repository)) -> ReviewService:
    return ReviewService(repository)


def get_source_registry(repository=Depends(get_repository)) -> SourceRegistry:
    return SourceRegistry(repository)
