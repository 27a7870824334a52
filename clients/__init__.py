from .gemini_client import GeminiClient, GenerationArtifactMissing, GenerationError, PollTimeout, VideoOperation
from .payment_client import PaidSession, PaymentClient, PaymentError, PaymentUnconfirmed, WebhookSignatureError
