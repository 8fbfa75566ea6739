from .tracker import STATUS_TABLE, RefreshStatusTracker, validate_transition

__all__ = ["RefreshStatusTracker", "STATUS_TABLE", "validate_transition"]
