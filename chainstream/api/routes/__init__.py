from chainstream.api.routes.entities import router as entities_router
from chainstream.api.routes.health import router as health_router
from chainstream.api.routes.pipeline import router as pipeline_router
from chainstream.api.routes.rpc import router as rpc_router
from chainstream.api.routes.search import router as search_router
from chainstream.api.routes.stats import router as stats_router
from chainstream.api.routes.stream import router as stream_router

__all__ = [
    "entities_router",
    "health_router",
    "pipeline_router",
    "rpc_router",
    "search_router",
    "stats_router",
    "stream_router",
]
