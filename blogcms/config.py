"""통합 설정 로더 모듈.

configs/ 디렉토리의 YAML 설정 파일을 로드하고 관리합니다.
환경변수 오버라이드를 지원합니다.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


# 기본 설정 디렉토리
DEFAULT_CONFIG_DIR = Path(os.environ.get("BLOGCMS_CONFIG_DIR", "configs"))

# 개발용 기본 시크릿 (액세스/리프레시 서로 다름)
DEV_ACCESS_SECRET = "dev-access-secret-change-in-production"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-in-production"


def load_yaml(path: Path | str) -> Dict[str, Any]:
    """YAML 파일 로드."""
    path = Path(path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_env_or_default(key: str, default: Any) -> Any:
    """환경변수 또는 기본값 반환."""
    env_val = os.environ.get(key)
    if env_val is not None:
        # 타입 변환
        if isinstance(default, bool):
            return env_val.lower() in ("true", "1", "yes")
        if isinstance(default, int):
            return int(env_val)
        if isinstance(default, float):
            return float(env_val)
        return env_val
    return default


@dataclass
class AppConfig:
    """앱 전역 설정."""

    name: str = "blogcms"
    version: str = "0.3.0"
    description: str = "블로그 CMS 인증/세션 코어"
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_json: bool = True


@dataclass
class JWTConfig:
    """JWT 설정.

    액세스 토큰과 리프레시 토큰은 서로 다른 시크릿으로 서명합니다.
    """

    secret_key: str = DEV_ACCESS_SECRET
    refresh_secret_key: str = DEV_REFRESH_SECRET
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_days: int = 7
    auto_refresh_threshold_minutes: int = 5
    uses_dev_secrets: bool = False


@dataclass
class RateLimitPolicy:
    """요청 제한 티어 정책 (슬라이딩 윈도우)."""

    name: str
    window_seconds: int
    max_requests: int
    key_prefix: str = ""

    def __post_init__(self):
        if not self.key_prefix:
            self.key_prefix = f"rate_limit:{self.name}"

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000


# 티어별 기본 정책: (window_seconds, max_requests)
DEFAULT_RATE_LIMIT_TIERS: Dict[str, tuple] = {
    "login": (60, 5),
    "register": (3600, 3),
    "verify_email_minute": (60, 1),
    "verify_email_hour": (3600, 5),
    "verify_ip_hour": (3600, 10),
    "api": (60, 100),
    "api_authenticated": (60, 1000),
}


def _default_policies() -> Dict[str, RateLimitPolicy]:
    return {
        name: RateLimitPolicy(name=name, window_seconds=window, max_requests=limit)
        for name, (window, limit) in DEFAULT_RATE_LIMIT_TIERS.items()
    }


@dataclass
class RateLimitConfig:
    """요청 제한 설정."""

    enabled: bool = True
    policies: Dict[str, RateLimitPolicy] = field(default_factory=_default_policies)


@dataclass
class StoreConfig:
    """공유 키-값 저장소 설정."""

    backend: str = "memory"  # memory, redis
    redis_url: str = "redis://localhost:6379/0"
    operation_timeout: float = 5.0
    # 저장소 장애 시 블랙리스트/요청 제한 검사를 통과시킬지 여부
    fail_open: bool = True


@dataclass
class VerificationConfig:
    """이메일 인증 코드 설정."""

    code_length: int = 6
    code_ttl_seconds: int = 600


@dataclass
class GatewayConfig:
    """클라이언트 게이트웨이 설정."""

    base_url: str = "http://localhost:8000"
    request_timeout: float = 30.0
    refresh_timeout: float = 10.0
    max_rate_limit_wait: float = 60.0


@dataclass
class PathsConfig:
    """경로 설정."""

    sqlite_path: str = "data/blogcms.db"


class Config:
    """통합 설정 클래스."""

    _instance: Optional["Config"] = None

    def __init__(self, config_dir: Path | str = DEFAULT_CONFIG_DIR):
        self.config_dir = Path(config_dir)
        self._app: Optional[AppConfig] = None
        self._jwt: Optional[JWTConfig] = None
        self._rate_limit: Optional[RateLimitConfig] = None
        self._store: Optional[StoreConfig] = None
        self._verification: Optional[VerificationConfig] = None
        self._gateway: Optional[GatewayConfig] = None
        self._paths: Optional[PathsConfig] = None
        self._raw: Dict[str, Dict[str, Any]] = {}
        self._load_all()

    @classmethod
    def get_instance(cls, config_dir: Path | str = DEFAULT_CONFIG_DIR) -> "Config":
        """싱글톤 인스턴스 반환."""
        if cls._instance is None:
            cls._instance = cls(config_dir)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """싱글톤 인스턴스 리셋 (테스트용)."""
        cls._instance = None

    def _load_all(self) -> None:
        """모든 설정 파일 로드."""
        self._raw["app"] = load_yaml(self.config_dir / "app.yaml")
        self._raw["auth"] = load_yaml(self.config_dir / "auth.yaml")
        self._raw["paths"] = load_yaml(self.config_dir / "paths.yaml")

    @property
    def app(self) -> AppConfig:
        """앱 설정."""
        if self._app is None:
            raw = self._raw.get("app", {})
            app_cfg = raw.get("app", {})
            server_cfg = raw.get("server", {})
            logging_cfg = raw.get("logging", {})

            self._app = AppConfig(
                name=app_cfg.get("name", "blogcms"),
                version=str(app_cfg.get("version", "0.3.0")),
                description=app_cfg.get("description", ""),
                environment=get_env_or_default("APP_ENV", app_cfg.get("environment", "development")),
                host=get_env_or_default("APP_HOST", server_cfg.get("host", "0.0.0.0")),
                port=get_env_or_default("APP_PORT", server_cfg.get("port", 8000)),
                log_level=get_env_or_default("LOG_LEVEL", logging_cfg.get("level", "INFO")),
                log_json=get_env_or_default("LOG_JSON", logging_cfg.get("json", True)),
            )
        return self._app

    @property
    def jwt(self) -> JWTConfig:
        """JWT 설정 (시크릿은 환경변수 우선)."""
        if self._jwt is None:
            raw = self._raw.get("auth", {}).get("jwt", {})

            secret = get_env_or_default("JWT_SECRET_KEY", raw.get("secret_key", ""))
            refresh_secret = get_env_or_default(
                "JWT_REFRESH_SECRET_KEY", raw.get("refresh_secret_key", "")
            )
            uses_dev = not secret or not refresh_secret

            self._jwt = JWTConfig(
                secret_key=secret or DEV_ACCESS_SECRET,
                refresh_secret_key=refresh_secret or DEV_REFRESH_SECRET,
                algorithm=raw.get("algorithm", "HS256"),
                access_token_expire_minutes=get_env_or_default(
                    "JWT_ACCESS_EXPIRE_MINUTES", raw.get("access_token_expire_minutes", 30)
                ),
                refresh_token_expire_days=get_env_or_default(
                    "JWT_REFRESH_EXPIRE_DAYS", raw.get("refresh_token_expire_days", 7)
                ),
                auto_refresh_threshold_minutes=get_env_or_default(
                    "JWT_AUTO_REFRESH_THRESHOLD", raw.get("auto_refresh_threshold_minutes", 5)
                ),
                uses_dev_secrets=uses_dev,
            )
        return self._jwt

    @property
    def rate_limit(self) -> RateLimitConfig:
        """요청 제한 설정."""
        if self._rate_limit is None:
            raw = self._raw.get("auth", {}).get("rate_limit", {})
            tiers_cfg = raw.get("tiers", {}) or {}

            policies = _default_policies()
            for name, tier_cfg in tiers_cfg.items():
                default_window, default_limit = DEFAULT_RATE_LIMIT_TIERS.get(name, (60, 100))
                policies[name] = RateLimitPolicy(
                    name=name,
                    window_seconds=tier_cfg.get("window_seconds", default_window),
                    max_requests=tier_cfg.get("max_requests", default_limit),
                    key_prefix=tier_cfg.get("key_prefix", ""),
                )

            self._rate_limit = RateLimitConfig(
                enabled=get_env_or_default("RATE_LIMIT_ENABLED", raw.get("enabled", True)),
                policies=policies,
            )
        return self._rate_limit

    @property
    def store(self) -> StoreConfig:
        """저장소 설정."""
        if self._store is None:
            raw = self._raw.get("auth", {}).get("store", {})
            self._store = StoreConfig(
                backend=get_env_or_default("STORE_BACKEND", raw.get("backend", "memory")),
                redis_url=get_env_or_default("REDIS_URL", raw.get("redis_url", "redis://localhost:6379/0")),
                operation_timeout=float(raw.get("operation_timeout", 5.0)),
                fail_open=get_env_or_default("STORE_FAIL_OPEN", raw.get("fail_open", True)),
            )
        return self._store

    @property
    def verification(self) -> VerificationConfig:
        """인증 코드 설정."""
        if self._verification is None:
            raw = self._raw.get("auth", {}).get("verification", {})
            self._verification = VerificationConfig(
                code_length=raw.get("code_length", 6),
                code_ttl_seconds=raw.get("code_ttl_seconds", 600),
            )
        return self._verification

    @property
    def gateway(self) -> GatewayConfig:
        """클라이언트 게이트웨이 설정."""
        if self._gateway is None:
            raw = self._raw.get("auth", {}).get("gateway", {})
            self._gateway = GatewayConfig(
                base_url=get_env_or_default("GATEWAY_BASE_URL", raw.get("base_url", "http://localhost:8000")),
                request_timeout=float(raw.get("request_timeout", 30.0)),
                refresh_timeout=float(raw.get("refresh_timeout", 10.0)),
                max_rate_limit_wait=float(raw.get("max_rate_limit_wait", 60.0)),
            )
        return self._gateway

    @property
    def paths(self) -> PathsConfig:
        """경로 설정."""
        if self._paths is None:
            raw = self._raw.get("paths", {})
            storage = raw.get("storage", {})
            self._paths = PathsConfig(
                sqlite_path=get_env_or_default("SQLITE_PATH", storage.get("sqlite_path", "data/blogcms.db")),
            )
        return self._paths

    def get_raw(self, section: str) -> Dict[str, Any]:
        """원시 설정 데이터 반환."""
        return self._raw.get(section, {})


# 편의 함수
def get_config(config_dir: Path | str = DEFAULT_CONFIG_DIR) -> Config:
    """설정 인스턴스 반환."""
    return Config.get_instance(config_dir)
