"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends

from app.core.cache import ResultCache
from app.core.orchestrator import DeploymentOrchestrator, get_orchestrator


async def get_deployer() -> DeploymentOrchestrator:
    """Get the deployment orchestrator."""
    return get_orchestrator()


async def get_cache(
    deployer: Annotated[DeploymentOrchestrator, Depends(get_deployer)],
) -> ResultCache:
    """Get the result cache shared with the orchestrator."""
    return deployer.cache


# Type aliases for cleaner signatures
DeployerDep = Annotated[DeploymentOrchestrator, Depends(get_deployer)]
CacheDep = Annotated[ResultCache, Depends(get_cache)]
