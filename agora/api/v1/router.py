from fastapi import APIRouter
from agora.api.v1.endpoints import challenges, clients

# Create main API router
api_router = APIRouter(redirect_slashes=False)

# Include all endpoint routers
api_router.include_router(challenges.router, prefix="/challenges", tags=["Challenges"])
api_router.include_router(clients.router, prefix="/clients", tags=["Client State"])
