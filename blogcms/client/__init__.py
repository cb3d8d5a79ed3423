"""클라이언트 모듈.

토큰 자동 갱신을 수행하는 요청 게이트웨이를 제공합니다.
"""

from .gateway import (
    AiohttpTransport,
    GatewayResponse,
    GatewayState,
    RequestGateway,
    TokenState,
    Transport,
)

__all__ = [
    "AiohttpTransport",
    "GatewayResponse",
    "GatewayState",
    "RequestGateway",
    "TokenState",
    "Transport",
]
