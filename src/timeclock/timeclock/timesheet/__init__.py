from .calculator import SessionSummary, derive_status, summarize_session

__all__ = ["SessionSummary", "derive_status", "summarize_session"]
