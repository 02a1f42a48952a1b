"""
Orchestration Layer - Coordinates crawl jobs.

Components:
- job_manager: concurrent job lifecycle (start, stop, status)
"""

from .job_manager import CrawlJob, CrawlJobManager

__all__ = ["CrawlJob", "CrawlJobManager"]
