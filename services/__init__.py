from .email_service import EmailService, NotificationError
from .order_orchestrator import OrderOrchestrator, UploadMissing
