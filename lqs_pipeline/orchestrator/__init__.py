"""Background upload orchestration and the task registry."""

from .service import UploadOrchestrator
from .tasks import REGISTRY, UploadContext, UploadRegistry, UploadState, UploadTask

__all__ = ["REGISTRY", "UploadContext", "UploadOrchestrator", "UploadRegistry", "UploadState", "UploadTask"]
