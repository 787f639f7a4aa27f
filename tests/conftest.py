"""Fixtures comunes para los tests.

El entorno se fija antes de importar la app: sin archivos de log y con
valores de configuración deterministas.
"""
import os

os.environ.setdefault("LOG_FILES_ENABLED", "false")
os.environ.setdefault("RIOT_API_KEY", "test-riot-key")
os.environ.setdefault("SUPABASE_URL", "https://abcdref.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-key")
os.environ.setdefault("INTERNAL_REVALIDATE_SECRET", "s3cret")

import pytest
from fastapi.testclient import TestClient

from riftboard.main import app


class FakeClock:
    """Reloj manual para TTLs deterministas"""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client():
    """TestClient con los overrides de dependencias limpios al terminar"""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
