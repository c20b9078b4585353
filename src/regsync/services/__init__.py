"""Service layer orchestrations for RegSync."""

from .changes import ChangeOrchestrator
from .digest import build_digest, compute_digest, resolve_period
from .summarizer import LlamaFarmSummarizer, Summarizer, SummarizerConfig, TemplateSummarizer, parse_summary

__all__ = [
    "ChangeOrchestrator",
    "LlamaFarmSummarizer",
    "Summarizer",
    "SummarizerConfig",
    "TemplateSummarizer",
    "build_digest",
    "compute_digest",
    "parse_summary",
    "resolve_period",
]
