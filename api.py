"""FastAPI 서버 (인증/세션).

구성
- 인증: 인증 코드 기반 회원가입, 로그인, 토큰 갱신/로그아웃, 비밀번호 변경
- 요청 제한: 티어별 슬라이딩 윈도우 (login, register, 인증 코드, 일반 API)
- 모니터링: Prometheus 메트릭, 헬스체크
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response as StarletteResponse

from blogcms.config import get_config
from blogcms.core.exceptions import AppError, RateLimitError, StoreUnavailableError
from blogcms.core.logging import setup_logging

# 인증 모듈
from blogcms.auth import (
    ApiRateLimitMiddleware,
    AuthRepository,
    Principal,
    RateLimiter,
    SessionService,
    VerificationService,
    get_auth_repo,
    get_current_principal,
    get_rate_limiter,
    get_session_service,
    get_verification_service,
)
from blogcms.auth.dependencies import (
    client_ip,
    enforce_rate_limit,
    enforce_verification_limits,
    get_bearer_token,
    login_rate_key,
    rate_limit,
)
from blogcms.auth.models import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    VerifyRequest,
)
from blogcms.monitoring import PrometheusMiddleware, RequestIdMiddleware, set_app_info
from blogcms.store import get_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    setup_logging(level=config.app.log_level, json_format=config.app.log_json)
    set_app_info(config.app.name, config.app.version, config.app.environment)
    logger.info(f"{config.app.name} {config.app.version} 시작 ({config.app.environment})")

    yield

    await get_store().close()


app = FastAPI(title="Blog CMS Auth API", version="0.3.0", lifespan=lifespan)

# 일반 API 요청 제한 (가장 안쪽)
app.add_middleware(ApiRateLimitMiddleware)

# CORS 미들웨어
# 프로덕션에서는 allow_origins를 관리 화면/블로그 도메인으로 제한하세요
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)

# Prometheus 모니터링 미들웨어
app.add_middleware(PrometheusMiddleware)

# 요청 ID (가장 바깥쪽)
app.add_middleware(RequestIdMiddleware)


# -------- 전역 예외 핸들러 --------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """애플리케이션 예외 핸들러."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(RateLimitError)
async def rate_limit_error_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Rate Limit 예외 핸들러."""
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(int(exc.retry_after))
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """요청 본문 검증 실패 핸들러."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "입력값이 유효하지 않습니다",
                "details": {
                    "errors": [
                        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
                        for err in exc.errors()
                    ],
                },
            },
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """일반 예외 핸들러."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "내부 서버 오류가 발생했습니다",
            },
        },
    )


def ok(data: Any = None) -> Dict[str, Any]:
    """성공 응답 봉투."""
    return {"success": True, "data": data}


# -------- Monitoring --------


@app.get("/healthz")
async def healthz() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> StarletteResponse:
    """Prometheus 메트릭 엔드포인트."""
    return StarletteResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


@app.get("/health")
async def health_check(repo: AuthRepository = Depends(get_auth_repo)) -> Dict[str, Any]:
    """상세 헬스체크 (공유 저장소, 계정 DB)."""
    health: Dict[str, Any] = {
        "status": "healthy",
        "components": {},
    }

    try:
        await get_store().ping()
        health["components"]["store"] = {"status": "up", "backend": get_config().store.backend}
    except StoreUnavailableError as e:
        health["components"]["store"] = {"status": "down", "reason": str(e.cause)}
        health["status"] = "degraded"

    try:
        repo.ping()
        health["components"]["database"] = {"status": "up"}
    except sqlite3.Error as e:
        health["components"]["database"] = {"status": "down", "reason": str(e)}
        health["status"] = "degraded"

    return health


# -------- Authentication --------


@app.post("/auth/register")
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter),
    service: VerificationService = Depends(get_verification_service),
) -> Dict[str, Any]:
    """회원가입 인증 코드 발송."""
    await enforce_verification_limits(limiter, response, body.email, client_ip(request))
    await service.send_code(body.email)
    return ok({
        "message": "인증 코드를 발송했습니다",
        "expiresIn": service.code_ttl_seconds,
    })


@app.post(
    "/auth/verify",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("register"))],
)
async def verify(
    body: VerifyRequest,
    service: VerificationService = Depends(get_verification_service),
) -> Dict[str, Any]:
    """인증 코드 확인 후 회원가입."""
    user = await service.verify_and_register(body.email, body.code, body.password, body.name)
    return ok({"user": user.to_response().model_dump()})


@app.post("/auth/login")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter),
    service: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """로그인."""
    await enforce_rate_limit(limiter, response, login_rate_key(body.email, request), "login")
    result = await service.login(body.email, body.password)
    return ok(result.to_dict())


@app.post("/admin/auth/login")
async def admin_login(
    body: LoginRequest,
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter),
    service: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """관리자 로그인 (관리자 외 FORBIDDEN)."""
    await enforce_rate_limit(limiter, response, login_rate_key(body.email, request), "login")
    result = await service.login(body.email, body.password, require_admin=True)
    return ok(result.to_dict())


@app.post("/auth/refresh")
async def refresh_token(
    body: RefreshRequest,
    service: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """토큰 갱신 (리프레시 토큰 회전)."""
    pair = await service.refresh(body.refresh_token)
    return ok(pair.to_response().model_dump(by_alias=True))


@app.post("/auth/logout")
async def logout(
    token: str = Depends(get_bearer_token),
    principal: Principal = Depends(get_current_principal),
    service: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """로그아웃 (액세스 토큰 폐기, 리프레시 토큰 제거)."""
    await service.logout(token, principal.id)
    return ok({"message": "로그아웃되었습니다"})


@app.put("/auth/password")
async def change_password(
    body: ChangePasswordRequest,
    token: str = Depends(get_bearer_token),
    principal: Principal = Depends(get_current_principal),
    service: SessionService = Depends(get_session_service),
) -> Dict[str, Any]:
    """비밀번호 변경 (모든 세션 무효화)."""
    await service.change_password(principal.id, body.old_password, body.new_password, token)
    return ok({"message": "비밀번호가 변경되었습니다. 다시 로그인하세요"})


@app.get("/auth/me")
async def get_me(
    principal: Principal = Depends(get_current_principal),
    repo: AuthRepository = Depends(get_auth_repo),
) -> Dict[str, Any]:
    """현재 주체 정보."""
    data: Dict[str, Any] = {"id": principal.id, "email": principal.email, "role": principal.role}
    user = repo.get_user_by_id(principal.id)
    if user:
        data["name"] = user.name
        data["isActive"] = user.is_active
    return ok(data)


if __name__ == "__main__":
    import uvicorn

    server_cfg = get_config().app
    uvicorn.run("api:app", host=server_cfg.host, port=server_cfg.port)
