"""API Endpoint Wrappers - Type-safe API calls"""

from typing import Any

from .base import APIClient, DownloaderError
from ..utils.config_manager import config

__all__ = ["DownloaderClient", "DownloaderError"]


class DownloaderClient:
    """High-level client with typed endpoint methods"""

    def __init__(self, base_url: str | None = None, timeout: int | None = None):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")

        self.api = APIClient(
            base_url=final_base_url,
            timeout=timeout or api_config.get("timeout", 30),
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Download Endpoints
    def initiate_download(
        self, file_ids: list[int], job_id: str | None = None
    ) -> dict[str, Any]:
        """Submit a batch of file ids"""
        payload: dict[str, Any] = {"file_ids": file_ids}
        if job_id:
            payload["job_id"] = job_id
        return self.api.post("/download/initiate", json=payload)

    def get_job_status(self, job_id: str) -> dict[str, Any]:
        """Get the polling status of a job"""
        return self.api.get(f"/download/jobs/{job_id}")

    def check_file(self, file_id: int) -> dict[str, Any]:
        """Check availability of a single file"""
        return self.api.post("/download/check", json={"file_id": file_id})

    def list_jobs(
        self, status: str | None = None, limit: int = 20, offset: int = 0
    ) -> dict[str, Any]:
        """List jobs with optional state filter"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        return self.api.get("/download/jobs", params)

    def get_job_stats(self) -> dict[str, Any]:
        """Get job statistics"""
        return self.api.get("/download/jobs/stats/overview")
