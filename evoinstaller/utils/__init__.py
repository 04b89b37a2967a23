from .cancel import CancelToken, wait_or_cancel

__all__ = ["CancelToken", "wait_or_cancel"]
