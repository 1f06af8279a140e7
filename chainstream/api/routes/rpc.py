"""RPC route - JSON-RPC 2.0 proxy to the chain node."""

from fastapi import APIRouter, Depends, Request

from chainstream.api.deps import get_runtime
from chainstream.services.runtime import Runtime

router = APIRouter(tags=["rpc"])


@router.post("/rpc")
async def rpc_proxy(request: Request, runtime: Runtime = Depends(get_runtime)):
    """Forward an arbitrary JSON-RPC request; upstream failures come back as JSON-RPC errors."""
    body = await request.body()
    return await runtime.rpc.forward(body)
