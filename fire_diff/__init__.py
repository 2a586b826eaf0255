"""Find the Cloud Functions endpoints affected by working-tree changes."""

from fire_diff.config import AnalyzerConfig
from fire_diff.models import Endpoint, Seed
from fire_diff.runner import analyze_changes, list_endpoints

__version__ = "0.1.0"

__all__ = ["AnalyzerConfig", "Endpoint", "Seed", "analyze_changes", "list_endpoints"]
