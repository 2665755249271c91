"""Static site deployment endpoints."""

from fastapi import APIRouter, status

from app.api.deps import DeployerDep
from app.models.deployment import DeploymentRequest, DeploymentResult

router = APIRouter()


@router.post(
    "/static",
    response_model=DeploymentResult,
    status_code=status.HTTP_200_OK,
    summary="Deploy a static site",
    description=(
        "Clone a GitHub repository, build it and publish the output to the CDN. "
        "Repeat requests for the same project and repository are served from cache."
    ),
)
async def deploy_static_site(
    request: DeploymentRequest,
    deployer: DeployerDep,
) -> DeploymentResult:
    return await deployer.deploy(request)
