from .order_schemas import CheckoutRequest, CheckoutResponse, OrderStatusResponse, UploadResponse
