"""
Download jobs: durable queue, worker pool and polling status.

This package provides:
- SQL-backed job store with lease-based ownership and atomic claims
- Worker pool with per-item progress and exponential backoff retries
- Dead-lettering of jobs that exhaust their attempts
- Retention sweeping of finished jobs
- Status projection for polling clients
"""
