from . import chat, citations, extraction, gap_analysis, worker

__all__ = ["chat", "citations", "extraction", "gap_analysis", "worker"]
