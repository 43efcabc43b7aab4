"""API key attribution used by the MQTT bridge."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from credit_server.api.deps import get_wallet_resolver
from credit_server.modules.wallets import WalletResolver
from credit_server.schemas import WalletResolutionResponse

router = APIRouter()


@router.get("/wallet-address", response_model=WalletResolutionResponse, summary="根据 API key 解析钱包地址")
async def resolve_wallet_address(
    api_key: str = Query(..., alias="apiKey", min_length=1),
    resolver: WalletResolver = Depends(get_wallet_resolver),
) -> WalletResolutionResponse:
    return WalletResolutionResponse.model_validate(await resolver.resolve(api_key))
