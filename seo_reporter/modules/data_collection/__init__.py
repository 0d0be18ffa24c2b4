"""Data collection module: Search Console ingestion and technical checks."""

from seo_reporter.modules.data_collection.collector import DataCollector
from seo_reporter.modules.data_collection.technical_issues import TechnicalIssueScanner

__all__ = ["DataCollector", "TechnicalIssueScanner"]
