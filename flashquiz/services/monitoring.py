"""
Health checks and monitoring with Prometheus metrics
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response
from sqlalchemy import func
from sqlmodel import Session, select
import time
import psutil
import structlog

from flashquiz.models import UserRecord

logger = structlog.get_logger()

# Prometheus metrics
REQUEST_COUNT = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('http_request_duration_seconds', 'HTTP request duration', ['method', 'endpoint'])
AI_GENERATION_REQUESTS = Counter('ai_generation_requests_total', 'Total AI generation requests', ['type', 'status'])
DOCUMENT_EXTRACTIONS = Counter('document_extractions_total', 'Document text extractions', ['kind', 'status'])
STORE_WRITE_FAILURES = Counter('store_write_failures_total', 'Best-effort remote writes that failed', ['action'])


class HealthChecker:
    def __init__(self, engine, cache, settings):
        self.engine = engine
        self.cache = cache
        self.settings = settings
        self.start_time = time.time()

    def check_database(self) -> dict:
        """Check database connectivity and health"""
        try:
            with Session(self.engine) as session:
                users = session.exec(select(func.count()).select_from(UserRecord)).one()
            return {
                "status": "healthy",
                "message": "Database connection successful",
                "users_count": users
            }
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "message": f"Database connection failed: {str(e)}"
            }

    def check_cache(self) -> dict:
        """Check cache connectivity"""
        try:
            test_key = "health_check_test"
            self.cache.set(test_key, "test_value", expire=10)
            value = self.cache.get(test_key)
            self.cache.delete(test_key)

            if value == "test_value":
                return {
                    "status": "healthy",
                    "message": "Cache operations successful",
                    "backend": self.cache.backend
                }
            return {
                "status": "unhealthy",
                "message": "Cache operations failed"
            }
        except Exception as e:
            logger.error("cache_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "message": f"Cache connection failed: {str(e)}"
            }

    def check_generation_provider(self) -> dict:
        """Generation is usable when a key is present or mock data is enabled"""
        if self.settings.use_mock_data:
            return {"status": "healthy", "message": "Mock data mode enabled"}
        if self.settings.provider_configured:
            return {"status": "healthy", "message": f"Provider configured ({self.settings.openai_model})"}
        return {"status": "unhealthy", "message": "OPENAI_API_KEY not set and mock data disabled"}

    def get_system_metrics(self) -> dict:
        """Get system resource metrics"""
        try:
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')

            return {
                "cpu_percent": psutil.cpu_percent(interval=None),
                "memory_percent": memory.percent,
                "memory_available_gb": round(memory.available / (1024**3), 2),
                "disk_percent": disk.percent,
                "disk_free_gb": round(disk.free / (1024**3), 2),
                "uptime_seconds": time.time() - self.start_time
            }
        except Exception as e:
            logger.error("system_metrics_failed", error=str(e))
            return {"error": str(e)}

    def get_health_status(self) -> dict:
        """Get overall health status"""
        checks = {
            "database": self.check_database(),
            "cache": self.check_cache(),
            "generation_provider": self.check_generation_provider()
        }

        unhealthy_checks = [name for name, check in checks.items() if check["status"] == "unhealthy"]
        overall_status = "healthy" if not unhealthy_checks else "unhealthy"

        return {
            "status": overall_status,
            "timestamp": time.time(),
            "checks": checks,
            "system_metrics": self.get_system_metrics(),
            "unhealthy_components": unhealthy_checks
        }


def get_metrics():
    """Get Prometheus metrics"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
