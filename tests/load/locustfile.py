"""부하 테스트 스크립트.

Locust를 사용한 인증/세션 API 부하 테스트.

사전 준비 (테스트 계정 생성):
    python scripts/create_admin.py --email load@example.com --password loadtest123

실행 방법:
    LOAD_TEST_EMAIL=load@example.com LOAD_TEST_PASSWORD=loadtest123 \
        locust -f tests/load/locustfile.py --host=http://localhost:8000

웹 UI:
    http://localhost:8089
"""

import os
import random

from locust import HttpUser, between, task

LOAD_TEST_EMAIL = os.environ.get("LOAD_TEST_EMAIL", "load@example.com")
LOAD_TEST_PASSWORD = os.environ.get("LOAD_TEST_PASSWORD", "loadtest123")


class SessionUser(HttpUser):
    """로그인 -> 조회 -> 갱신 -> 로그아웃 세션 시뮬레이션."""

    wait_time = between(1, 3)  # 요청 간 1-3초 대기

    def on_start(self):
        """사용자 세션 시작 시 로그인."""
        self.access_token = None
        self.refresh_token = None
        self.login()

    def login(self):
        with self.client.post(
            "/auth/login",
            json={"email": LOAD_TEST_EMAIL, "password": LOAD_TEST_PASSWORD},
            name="/auth/login",
            catch_response=True,
        ) as response:
            if response.status_code == 200:
                data = response.json()["data"]
                self.access_token = data["accessToken"]
                self.refresh_token = data["refreshToken"]
                response.success()
            elif response.status_code == 429:
                # 계정당 로그인 제한은 정상 동작
                response.success()
            else:
                response.failure(f"Status code: {response.status_code}")

    @property
    def auth_headers(self):
        """인증 헤더."""
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    @task(10)
    def healthz(self):
        """헬스체크 (가장 빈번)."""
        self.client.get("/healthz")

    @task(2)
    def health_detailed(self):
        """상세 헬스체크."""
        self.client.get("/health")

    @task(8)
    def get_me(self):
        """현재 주체 조회."""
        if not self.access_token:
            self.login()
            return
        with self.client.get("/auth/me", headers=self.auth_headers, name="/auth/me", catch_response=True) as response:
            if response.status_code == 401:
                # 만료/폐기된 토큰은 갱신으로 복구
                response.success()
                self.refresh()

    @task(2)
    def refresh(self):
        """토큰 갱신 (리프레시 토큰 회전)."""
        if not self.refresh_token:
            return
        with self.client.post(
            "/auth/refresh",
            json={"refreshToken": self.refresh_token},
            name="/auth/refresh",
            catch_response=True,
        ) as response:
            if response.status_code == 200:
                data = response.json()["data"]
                self.access_token = data["accessToken"]
                self.refresh_token = data["refreshToken"]
                response.success()
            elif response.status_code == 401:
                # 같은 계정의 다른 사용자가 먼저 로그인/갱신한 경우
                self.access_token = None
                self.refresh_token = None
                response.success()
            else:
                response.failure(f"Status code: {response.status_code}")

    @task(1)
    def logout(self):
        """로그아웃 후 재로그인."""
        if not self.access_token:
            return
        self.client.post("/auth/logout", headers=self.auth_headers, name="/auth/logout")
        self.access_token = None
        self.refresh_token = None


class FailedLoginUser(HttpUser):
    """로그인 요청 제한 확인용 사용자 (잘못된 비밀번호 반복)."""

    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.email = f"attacker_{random.randint(1000, 9999)}@example.com"

    @task
    def failed_login(self):
        """401 또는 429만 정상 응답으로 간주."""
        with self.client.post(
            "/auth/login",
            json={"email": self.email, "password": "wrongpass1"},
            name="/auth/login (wrong password)",
            catch_response=True,
        ) as response:
            if response.status_code == 401:
                response.success()
            elif response.status_code == 429:
                if "Retry-After" in response.headers:
                    response.success()
                else:
                    response.failure("Retry-After 헤더 누락")
            else:
                response.failure(f"Status code: {response.status_code}")
