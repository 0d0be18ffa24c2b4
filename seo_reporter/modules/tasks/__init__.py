"""Task module: AI-generated weekly action items."""

from seo_reporter.modules.tasks.task_generator import AITaskGenerator

__all__ = ["AITaskGenerator"]
